from collections.abc import Iterable
from datetime import date

from .core.models import Habit, LunarWindowRecurrence, NoRecurrence, WeekdayRecurrence
from .lib.dates import hijri_day

__all__ = ["is_in_scope", "visible_habits"]


def _recurs_on(habit: Habit, on: date) -> bool:
    rule = habit.recurrence
    if isinstance(rule, WeekdayRecurrence):
        return on.weekday() in rule.weekdays
    if isinstance(rule, LunarWindowRecurrence):
        day = hijri_day(on)
        return day is not None and rule.start_day <= day <= rule.end_day
    if isinstance(rule, NoRecurrence):
        return True
    return False


def is_in_scope(habit: Habit, on: date) -> bool:
    """Whether a habit applies to a day: shown that day and counted toward it.

    Pure in (habit, day), so it is safe for any historical or future date.
    """
    if not habit.is_active:
        return False
    if habit.start_date is not None and on < habit.start_date:
        return False
    return _recurs_on(habit, on)


def visible_habits(habits: Iterable[Habit], on: date) -> list[Habit]:
    """In-scope habits for a day, by display order (ties keep collection order)."""
    return sorted((h for h in habits if is_in_scope(h, on)), key=lambda h: h.order)
