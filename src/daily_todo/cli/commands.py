# src/daily_todo/cli/commands.py

from __future__ import annotations

import calendar
import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..core.errors import TodoError
from ..core.session import TodoSession
from ..stats.aggregator import DensityLevel, density_level
from ..tasks.task_models import Task

CommandHandler = Callable[[TodoSession, list[str]], Awaitable[str]]

logger = logging.getLogger(__name__)

_DENSITY_GLYPH = {
    DensityLevel.NONE: ".",
    DensityLevel.LOW: "-",
    DensityLevel.PARTIAL: "+",
    DensityLevel.FULL: "#",
}


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(self, session: TodoSession, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Todo errors become a reply; the session keeps running.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return await handler(session, args)
        except TodoError as exc:
            logger.debug("Command /%s failed: %s", name, exc)
            return f"Error: {exc}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    suffix = " (daily)" if task.recurring else ""
    return f"[{mark}] {task.id:>4}  {task.title}{suffix}"


def _task_id(args: list[str]) -> int | None:
    if not args:
        return None
    try:
        return int(args[0])
    except ValueError:
        return None


async def cmd_help(session: TodoSession, args: list[str]) -> str:
    return registry.build_help()


async def cmd_list(session: TodoSession, args: list[str]) -> str:
    tasks = session.tasks
    if not tasks:
        return "No todos yet. Add one with /add <title>."
    done = sum(1 for t in tasks if t.completed)
    lines = [f"Todos ({done}/{len(tasks)} done):"]
    lines.extend(format_task(t) for t in tasks)
    return "\n".join(lines)


async def cmd_add(session: TodoSession, args: list[str]) -> str:
    task = await session.add_task(" ".join(args))
    return f"Added: {format_task(task)}"


async def cmd_done(session: TodoSession, args: list[str]) -> str:
    task_id = _task_id(args)
    if task_id is None:
        return "Usage: /done <id>"
    task = await session.toggle_completed(task_id)
    return format_task(task)


async def cmd_recur(session: TodoSession, args: list[str]) -> str:
    task_id = _task_id(args)
    if task_id is None:
        return "Usage: /recur <id>"
    task = await session.toggle_recurring(task_id)
    return format_task(task)


async def cmd_rm(session: TodoSession, args: list[str]) -> str:
    task_id = _task_id(args)
    if task_id is None:
        return "Usage: /rm <id>"
    task = await session.delete_task(task_id)
    return f"Deleted: {task.title}"


async def cmd_sync(session: TodoSession, args: list[str]) -> str:
    n = await session.resync()
    return f"Reloaded {n} todos."


async def cmd_rollover(session: TodoSession, args: list[str]) -> str:
    ran = await session.check_rollover()
    if ran:
        return f"New day: reset {session.rollover.last_reset_count or 0} recurring todos."
    return f"No rollover needed (state: {session.rollover.state.value})."


def render_month(year: int, month: int, rates: dict[date, float]) -> str:
    """Text calendar, weeks starting on Sunday, one density glyph per day."""
    cal = calendar.Calendar(firstweekday=calendar.SUNDAY)
    lines = [f"{calendar.month_name[month]} {year}", " Su  Mo  Tu  We  Th  Fr  Sa"]
    for week in cal.monthdatescalendar(year, month):
        cells = []
        for d in week:
            if d.month != month:
                cells.append("    ")
                continue
            glyph = _DENSITY_GLYPH[density_level(rates.get(d, 0.0))]
            cells.append(f"{d.day:>2}{glyph} ")
        lines.append("".join(cells).rstrip())
    lines.append("Legend: . none  - <50%  + <100%  # all done")
    return "\n".join(lines)


async def cmd_cal(session: TodoSession, args: list[str]) -> str:
    """
    /cal          -> current month
    /cal 2024-03  -> given month
    """
    today = session.today()
    year, month = today.year, today.month
    if args:
        try:
            y, m = args[0].split("-", 1)
            year, month = int(y), int(m)
            if not 1 <= month <= 12:
                raise ValueError(args[0])
        except ValueError:
            return "Usage: /cal [YYYY-MM]"

    await session.show_month(year, month)
    stats = session.calendar_stats()
    rates = {s.day: s.rate for s in stats}
    lines = [render_month(year, month, rates)]
    for s in stats:
        lines.append(f"  {s.day.isoformat()}  {s.completed_count}/{s.total_count}  {s.rate:.0%}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show your todos.", aliases=["ls"])
registry.register("add", cmd_add, help_text="Add a daily todo: /add <title>.")
registry.register("done", cmd_done, help_text="Toggle completed: /done <id>.", aliases=["x"])
registry.register("recur", cmd_recur, help_text="Toggle daily recurrence: /recur <id>.")
registry.register("rm", cmd_rm, help_text="Delete a todo: /rm <id>.", aliases=["del"])
registry.register("cal", cmd_cal, help_text="Completion calendar: /cal [YYYY-MM].")
registry.register("sync", cmd_sync, help_text="Reload todos from the store.")
registry.register("rollover", cmd_rollover, help_text="Run the day-boundary check now.")
