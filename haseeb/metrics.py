import dataclasses
from collections import Counter
from collections.abc import Iterable

from .core.models import TOP_PRAYER_QUALITY, Habit, HabitLog, PrayerQuality
from .streaks import Outcome, best_streak, outcome, worst_fail_streak

__all__ = [
    "HabitMetrics",
    "PrayerMetrics",
    "ReasonCount",
    "habit_metrics",
    "prayer_metrics",
    "top_reasons",
]

TOP_REASONS = 3


@dataclasses.dataclass(frozen=True)
class ReasonCount:
    reason: str
    count: int
    pct: int


@dataclasses.dataclass(frozen=True)
class HabitMetrics:
    total: int
    done: int
    failed: int
    excused: int
    completion_rate: int
    best_streak: int
    worst_fail_streak: int
    top_reasons: list[ReasonCount]


@dataclasses.dataclass(frozen=True)
class PrayerMetrics:
    total: int
    missed: int
    on_time: int
    in_group: int
    takbirah: int
    takbirah_rate: int
    best_streak: int
    top_obstacles: list[ReasonCount]


def _pct(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def top_reasons(logs: Iterable[HabitLog], total: int, limit: int = TOP_REASONS) -> list[ReasonCount]:
    counts = Counter(log.reason.strip() for log in logs if log.reason and log.reason.strip())
    return [ReasonCount(r, n, _pct(n, total)) for r, n in counts.most_common(limit)]


def _own(habit: Habit, logs: Iterable[HabitLog]) -> list[HabitLog]:
    return sorted((log for log in logs if log.habit_id == habit.id), key=lambda log: log.date)


def habit_metrics(habit: Habit, logs: Iterable[HabitLog]) -> HabitMetrics:
    own = _own(habit, logs)
    results = [(log, outcome(habit, log)) for log in own]
    done = sum(1 for _, result in results if result is Outcome.SUCCESS)
    failed = [log for log, result in results if result is Outcome.FAIL]
    return HabitMetrics(
        total=len(own),
        done=done,
        failed=len(failed),
        excused=sum(1 for _, result in results if result is Outcome.EXCUSED),
        completion_rate=_pct(done, len(own)),
        best_streak=best_streak(habit, own),
        worst_fail_streak=worst_fail_streak(habit, own),
        top_reasons=top_reasons(failed, len(own)),
    )


def prayer_metrics(habit: Habit, logs: Iterable[HabitLog]) -> PrayerMetrics:
    own = _own(habit, logs)
    levels = Counter(log.value for log in own)
    below_top = [log for log in own if log.value < TOP_PRAYER_QUALITY]
    return PrayerMetrics(
        total=len(own),
        missed=levels[PrayerQuality.MISSED],
        on_time=levels[PrayerQuality.ON_TIME],
        in_group=levels[PrayerQuality.JAMAA],
        takbirah=levels[PrayerQuality.TAKBIRAH],
        takbirah_rate=_pct(levels[PrayerQuality.TAKBIRAH], len(own)),
        best_streak=best_streak(habit, own),
        top_obstacles=top_reasons(below_top, len(own)),
    )
