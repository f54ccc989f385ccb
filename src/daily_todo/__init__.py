"""
daily_todo: a personal todo list with daily recurring items.

Subpackages:
- core: ports (store contracts), errors, the per-user session
- tasks: models, SQLite store + change feed, reconciler, daily rollover
- stats: calendar completion stats
- cli: console front-end
"""

__version__ = "0.1.0"
