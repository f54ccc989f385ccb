# src/daily_todo/cli/console.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..core.session import TodoSession
from .commands import registry as command_registry

logger = logging.getLogger(__name__)

ReadLine = Callable[[str], Awaitable[str]]


async def _read_stdin(prompt: str) -> str:
    # input() blocks; keep the event loop (feed pumps, rollover timer) running meanwhile.
    return await asyncio.to_thread(input, prompt)


async def run_console_loop(
    session: TodoSession,
    *,
    read_line: ReadLine = _read_stdin,
    write: Callable[[str], None] = print,
) -> None:
    """
    Interactive REPL over a started session.

    - "/command args" is routed through the command registry
    - a plain line adds it as a new todo
    - /quit, /exit or EOF ends the loop
    """
    write(f"Daily todos for {session.user_id}. Type /help for commands.")

    while True:
        try:
            line = (await read_line("> ")).strip()
        except (EOFError, KeyboardInterrupt):
            write("")
            break

        if not line:
            continue
        if line.lower() in ("/quit", "/exit", "/q"):
            break
        if not line.startswith("/"):
            line = f"/add {line}"

        try:
            reply = await command_registry.handle(session, line)
        except Exception:
            logger.exception("Command failed: %s", line)
            reply = "Something went wrong; see the log for details."

        if reply:
            write(reply)
