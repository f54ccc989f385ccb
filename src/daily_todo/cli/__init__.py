"""
Console front-end.

- bootstrap.py: composition root (settings -> stores -> session)
- commands.py: slash-command registry
- console.py: REPL loop
- main.py: `daily-todo` entry point
"""
