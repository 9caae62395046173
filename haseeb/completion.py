import dataclasses
from collections import defaultdict
from collections.abc import Iterable
from datetime import date

from .core.models import Habit, HabitLog
from .streaks import is_success
from .visibility import visible_habits

__all__ = ["DayScore", "completed_dates", "daily_score", "is_date_complete", "required_habits"]


@dataclasses.dataclass(frozen=True)
class DayScore:
    required: int = 0
    logged: int = 0
    succeeded: int = 0

    @property
    def complete(self) -> bool:
        return self.required > 0 and self.logged == self.required

    @property
    def rate(self) -> float | None:
        return self.succeeded / self.required if self.required else None


def required_habits(habits: Iterable[Habit], on: date) -> list[Habit]:
    """In-scope habits that count toward a day; bonus habits are left out."""
    return [h for h in visible_habits(habits, on) if h.affects_score]


def _logs_on(logs: Iterable[HabitLog], on: date) -> dict[str, HabitLog]:
    return {log.habit_id: log for log in logs if log.date == on}


def daily_score(habits: Iterable[Habit], logs: Iterable[HabitLog], on: date) -> DayScore:
    required = required_habits(habits, on)
    day_logs = _logs_on(logs, on)
    logged = [h for h in required if h.id in day_logs]
    return DayScore(
        required=len(required),
        logged=len(logged),
        succeeded=sum(1 for h in logged if is_success(h, day_logs[h.id])),
    )


def is_date_complete(habits: Iterable[Habit], logs: Iterable[HabitLog], on: date) -> bool:
    """Every required habit has some log that day, whatever its result."""
    return daily_score(habits, logs, on).complete


def completed_dates(
    habits: Iterable[Habit], logs: Iterable[HabitLog], extra: Iterable[date] = ()
) -> set[date]:
    """Fully accounted-for days among those with any log, plus `extra` days.

    Days with nothing required are never included.
    """
    habit_list = list(habits)
    logged_by_date: defaultdict[date, set[str]] = defaultdict(set)
    for log in logs:
        logged_by_date[log.date].add(log.habit_id)

    done: set[date] = set()
    for day in set(logged_by_date) | set(extra):
        required = required_habits(habit_list, day)
        if required and all(h.id in logged_by_date[day] for h in required):
            done.add(day)
    return done
