import asyncio
import dataclasses
import sys
from collections.abc import Awaitable, Callable
from datetime import date
from typing import TypeVar

from fncli import UsageError, cli

from . import config
from .completion import daily_score
from .coordinator import MutationCoordinator
from .core.errors import NotAuthenticatedError, NotFoundError
from .core.models import TOP_PRAYER_QUALITY, Habit, HabitLog, HabitType, LogStatus, Session
from .lib import ansi, clock
from .lib.dates import parse_day
from .lib.errors import echo
from .lib.fuzzy import find_in_pool
from .metrics import habit_metrics, prayer_metrics
from .notify import Notification, Notifier
from .streaks import Outcome, best_streak, current_streak, outcome, should_show_streak
from .visibility import visible_habits

__all__ = [
    "archive",
    "default_value",
    "log",
    "render_day",
    "resolve_habit",
    "rm",
    "streaks",
    "today",
    "undo",
]


# ── domain ───────────────────────────────────────────────────────────────────


def resolve_habit(ref: str, habits: list[Habit]) -> Habit:
    habit = find_in_pool(ref, habits)
    if not habit:
        raise NotFoundError(f"No habit found: '{ref}'")
    return habit


def default_value(habit: Habit) -> int:
    if habit.type is HabitType.PRAYER:
        return TOP_PRAYER_QUALITY
    if habit.type is HabitType.COUNTER:
        return habit.daily_target or 1
    return 1


def _day(text: str | None) -> date:
    if text is None:
        return clock.today()
    try:
        return parse_day(text)
    except ValueError as e:
        raise UsageError(str(e)) from e


def _print_notification(note: Notification) -> None:
    if note.kind == "error":
        sys.stderr.write(ansi.red(note.message) + "\n")
    else:
        echo(ansi.green(note.message))


def _session(cloud: bool) -> Session:
    if not cloud:
        return Session.local()
    user_id = config.get_remote_user()
    if not user_id:
        raise NotAuthenticatedError(
            "no remote user configured, run: haseeb config remote URL --user ID"
        )
    return Session(id=user_id, is_local_only=False, access_token=config.get_access_token())


T = TypeVar("T")


def _with_coordinator(
    fn: Callable[[MutationCoordinator], Awaitable[T]], cloud: bool = False
) -> T:
    session = _session(cloud)

    async def _run() -> T:
        notifier = Notifier()
        notifier.subscribe(_print_notification)
        async with MutationCoordinator(session, notifier=notifier) as coordinator:
            await coordinator.refresh()
            return await fn(coordinator)

    return asyncio.run(_run())


def _glyph(habit: Habit, entry: HabitLog | None) -> str:
    if entry is None:
        return ansi.muted("·")
    result = outcome(habit, entry)
    if result is Outcome.SUCCESS:
        return ansi.green("✓")
    if result is Outcome.EXCUSED:
        return ansi.yellow("~")
    return ansi.red("✗")


def render_day(habits: list[Habit], logs: list[HabitLog], on: date) -> str:
    language = config.get_language()
    day_logs = {entry.habit_id: entry for entry in logs if entry.date == on}
    lines = [ansi.bold(on.strftime("%a %Y-%m-%d"))]
    for habit in visible_habits(habits, on):
        entry = day_logs.get(habit.id)
        name = habit.display_name(language)
        if not habit.affects_score:
            name = ansi.muted(name)
        line = f"  {_glyph(habit, entry)} {name}"
        if habit.type is HabitType.COUNTER and entry is not None:
            line += ansi.muted(f" {entry.value}/{habit.daily_target or 1}")
        streak = current_streak(habit, logs, on)
        if should_show_streak(streak):
            line += ansi.orange(f" 🔥{streak}")
        lines.append(line)
    score = daily_score(habits, logs, on)
    if score.required:
        summary = f"{score.logged}/{score.required} logged, {score.succeeded} kept"
        lines.append(ansi.green(summary) if score.complete else ansi.muted(summary))
    else:
        lines.append(ansi.muted("nothing scheduled"))
    return "\n".join(lines)


# ── commands ─────────────────────────────────────────────────────────────────


@cli("haseeb", flags={"date": ["-d", "--date"]})
def today(date: str | None = None, cloud: bool = False) -> None:
    """Show the day's habits"""
    on = _day(date)

    async def _show(coordinator: MutationCoordinator) -> str:
        return render_day(coordinator.habits, coordinator.logs, on)

    echo(_with_coordinator(_show, cloud))


@cli(
    "haseeb",
    flags={
        "value": ["-n", "--value"],
        "status": ["-s", "--status"],
        "reason": ["-r", "--reason"],
        "date": ["-d", "--date"],
    },
)
def log(
    ref: str,
    value: int | None = None,
    status: str | None = None,
    reason: str | None = None,
    date: str | None = None,
    cloud: bool = False,
) -> None:
    """Log a habit for a day"""
    on = _day(date)
    if status and status.strip().upper() not in {s.value for s in LogStatus} | {"SKIP"}:
        raise UsageError(f"status must be one of: {', '.join(s.value for s in LogStatus)}")
    parsed_status = LogStatus.parse(status) if status else LogStatus.DONE

    async def _log(coordinator: MutationCoordinator) -> bool:
        habit = resolve_habit(ref, coordinator.habits)
        entry = HabitLog(
            habit_id=habit.id,
            date=on,
            value=default_value(habit) if value is None else value,
            status=parsed_status,
            reason=reason.strip() if reason else None,
        )
        if habit.require_reason and not entry.reason and outcome(habit, entry) is Outcome.FAIL:
            raise UsageError(f"'{habit.name}' needs a --reason when not kept")
        if entry.reason:
            await coordinator.save_custom_reason(entry.reason)
        return await coordinator.save_log(entry)

    if not _with_coordinator(_log, cloud):
        sys.exit(1)


@cli("haseeb", flags={"date": ["-d", "--date"]})
def undo(ref: str, date: str | None = None, cloud: bool = False) -> None:
    """Remove a habit's log for a day"""
    on = _day(date)

    async def _undo(coordinator: MutationCoordinator) -> bool:
        habit = resolve_habit(ref, coordinator.habits)
        if not any(entry.key == (habit.id, on) for entry in coordinator.logs):
            raise NotFoundError(f"'{habit.name}' has no log on {on.isoformat()}")
        return await coordinator.delete_log(habit.id, on)

    if not _with_coordinator(_undo, cloud):
        sys.exit(1)


@cli("haseeb")
def streaks(ref: str | None = None, cloud: bool = False) -> None:
    """Show current and best streaks"""
    on = clock.today()

    async def _report(coordinator: MutationCoordinator) -> list[str]:
        habits = coordinator.habits
        if ref is not None:
            habits = [resolve_habit(ref, habits)]
        lines = []
        for habit in habits:
            current = current_streak(habit, coordinator.logs, on)
            best = best_streak(habit, coordinator.logs)
            line = f"{habit.display_name(config.get_language())}  {current} now, {best} best"
            if ref is not None and habit.type is HabitType.PRAYER:
                stats = prayer_metrics(habit, coordinator.logs)
                line += ansi.muted(f"  takbirah {stats.takbirah_rate}% of {stats.total}")
            elif ref is not None:
                stats = habit_metrics(habit, coordinator.logs)
                line += ansi.muted(f"  kept {stats.completion_rate}% of {stats.total}")
            lines.append(line if habit.is_active else ansi.dim(line))
        return lines

    for line in _with_coordinator(_report, cloud):
        echo(line)


@cli("haseeb")
def archive(ref: str, restore: bool = False, cloud: bool = False) -> None:
    """Archive a habit, or bring it back with --restore"""

    async def _archive(coordinator: MutationCoordinator) -> bool:
        habit = resolve_habit(ref, coordinator.habits)
        return await coordinator.save_habit(dataclasses.replace(habit, is_active=restore))

    if not _with_coordinator(_archive, cloud):
        sys.exit(1)


@cli("haseeb")
def rm(ref: str, cloud: bool = False) -> None:
    """Delete a habit and all of its logs"""

    async def _rm(coordinator: MutationCoordinator) -> bool:
        habit = resolve_habit(ref, coordinator.habits)
        return await coordinator.delete_habit(habit.id)

    if not _with_coordinator(_rm, cloud):
        sys.exit(1)
