from collections.abc import Iterable
from datetime import date, timedelta
from enum import Enum

from .core.models import TOP_PRAYER_QUALITY, Habit, HabitLog, HabitType, LogStatus
from .lib.dates import days_back

__all__ = [
    "Outcome",
    "best_streak",
    "current_streak",
    "current_streaks",
    "is_excused",
    "is_success",
    "outcome",
    "should_show_streak",
    "streak_opacity",
    "worst_fail_streak",
]

STREAK_VISIBLE_FROM = 3
STREAK_FADE_START = 21
STREAK_FADE_END = 30


class Outcome(Enum):
    SUCCESS = "success"
    EXCUSED = "excused"
    FAIL = "fail"


def is_excused(log: HabitLog) -> bool:
    return log.status is LogStatus.EXCUSED


def is_success(habit: Habit, log: HabitLog) -> bool:
    """Streak-preserving result. Prayers only count at the top quality level."""
    if is_excused(log):
        return False
    if habit.type is HabitType.PRAYER:
        return log.value == TOP_PRAYER_QUALITY
    if habit.type is HabitType.COUNTER:
        return log.status is LogStatus.DONE or log.value >= (habit.daily_target or 1)
    return log.status is LogStatus.DONE


def outcome(habit: Habit, log: HabitLog) -> Outcome:
    if is_excused(log):
        return Outcome.EXCUSED
    return Outcome.SUCCESS if is_success(habit, log) else Outcome.FAIL


def _by_day(habit: Habit, logs: Iterable[HabitLog]) -> dict[date, HabitLog]:
    """The habit's logs keyed by day, ignoring anything before its start date."""
    out: dict[date, HabitLog] = {}
    for log in logs:
        if log.habit_id != habit.id:
            continue
        if habit.start_date is not None and log.date < habit.start_date:
            continue
        out[log.date] = log
    return out


def current_streak(habit: Habit, logs: Iterable[HabitLog], on: date) -> int:
    """Run of successes ending at `on`, or at the day before if `on` is unlogged.

    Excused days are transparent: they neither count nor break the run. A gap
    (no log) or a failure ends it, and the walk stops at the habit's start date.
    """
    by_day = _by_day(habit, logs)
    seed_day = on
    seed = by_day.get(seed_day)
    if seed is None:
        seed_day = on - timedelta(days=1)
        seed = by_day.get(seed_day)
        if seed is None:
            return 0

    first = outcome(habit, seed)
    if first is Outcome.FAIL:
        return 0
    streak = 1 if first is Outcome.SUCCESS else 0

    for day in days_back(seed_day - timedelta(days=1), habit.start_date):
        log = by_day.get(day)
        if log is None:
            break
        result = outcome(habit, log)
        if result is Outcome.FAIL:
            break
        if result is Outcome.SUCCESS:
            streak += 1
    return streak


def current_streaks(habits: Iterable[Habit], logs: Iterable[HabitLog], on: date) -> dict[str, int]:
    log_list = list(logs)
    return {h.id: current_streak(h, log_list, on) for h in habits}


def best_streak(habit: Habit, logs: Iterable[HabitLog]) -> int:
    """Longest run of successes on consecutive days, excused days bridging."""
    by_day = _by_day(habit, logs)
    best = run = 0
    prev: date | None = None
    for day in sorted(by_day):
        if prev is not None and (day - prev).days > 1:
            run = 0
        result = outcome(habit, by_day[day])
        if result is Outcome.SUCCESS:
            run += 1
            best = max(best, run)
        elif result is Outcome.FAIL:
            run = 0
        prev = day
    return best


def worst_fail_streak(habit: Habit, logs: Iterable[HabitLog]) -> int:
    """Longest run of consecutive days explicitly logged as FAIL."""
    by_day = _by_day(habit, logs)
    worst = run = 0
    prev: date | None = None
    for day in sorted(by_day):
        if by_day[day].status is LogStatus.FAIL:
            run = run + 1 if prev is not None and (day - prev).days == 1 and run else 1
            worst = max(worst, run)
        else:
            run = 0
        prev = day
    return worst


def should_show_streak(streak: int) -> bool:
    return streak >= STREAK_VISIBLE_FROM


def streak_opacity(streak: int) -> float:
    """Flame opacity: hidden below 3, solid to 21, fading out by 30."""
    if streak < STREAK_VISIBLE_FROM:
        return 0.0
    if streak <= STREAK_FADE_START:
        return 1.0
    if streak >= STREAK_FADE_END:
        return 0.0
    faded = 1 - (streak - STREAK_FADE_START) / (STREAK_FADE_END - STREAK_FADE_START)
    return max(0.0, min(1.0, faded))
