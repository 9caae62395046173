from collections.abc import Mapping
from datetime import datetime
from typing import Any, cast

from haseeb.core.models import (
    NO_RECURRENCE,
    CustomReason,
    Habit,
    HabitLog,
    HabitType,
    LogStatus,
    LunarWindowRecurrence,
    Recurrence,
    WeekdayRecurrence,
)
from haseeb.presets import preset_recurrence

from .dates import parse_iso_date

__all__ = [
    "habit_to_row",
    "log_to_row",
    "reason_to_row",
    "recurrence_from_columns",
    "recurrence_to_columns",
    "row_to_habit",
    "row_to_log",
    "row_to_reason",
]

Row = Mapping[str, Any]


def _parse_datetime(val: object) -> datetime:
    """Parse a timestamp that may be an ISO string or epoch milliseconds/seconds."""
    if isinstance(val, datetime):
        return val
    if isinstance(val, (int, float)):
        seconds = val / 1000 if val > 1e11 else val
        return datetime.fromtimestamp(seconds)
    if isinstance(val, str) and val:
        try:
            return datetime.fromisoformat(val.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.min


def _parse_days(raw: object) -> list[int]:
    if isinstance(raw, (list, tuple)):
        return [int(d) for d in raw]
    if isinstance(raw, str) and raw.strip():
        return [int(part) for part in raw.split(",") if part.strip()]
    return []


def recurrence_to_columns(rule: Recurrence) -> tuple[str, str | None]:
    if isinstance(rule, WeekdayRecurrence):
        return "weekday", ",".join(str(d) for d in sorted(rule.weekdays))
    if isinstance(rule, LunarWindowRecurrence):
        return "lunar", f"{rule.start_day},{rule.end_day}"
    return "none", None


def recurrence_from_columns(kind: object, days: object, preset_id: str | None) -> Recurrence:
    """Explicit recurrence columns win; legacy rows fall back to the preset marker."""
    if kind == "weekday":
        return WeekdayRecurrence(frozenset(_parse_days(days)))
    if kind == "lunar":
        bounds = _parse_days(days)
        if len(bounds) == 2:
            return LunarWindowRecurrence(bounds[0], bounds[1])
        return LunarWindowRecurrence()
    if kind == "none":
        return NO_RECURRENCE
    return preset_recurrence(preset_id)


def row_to_habit(row: Row) -> Habit:
    """
    Converts a habits row (sqlite or remote JSON) into a Habit.
    Missing optional columns take the Habit defaults.
    """
    habit_id = cast(str, row["id"])
    preset_id = row.get("preset_id")
    daily_target = row.get("daily_target")
    affects = row.get("affects_score")
    active = row.get("is_active")
    return Habit(
        id=habit_id,
        name=cast(str, row.get("name") or ""),
        name_ar=row.get("name_ar"),
        type=HabitType(row.get("type") or HabitType.REGULAR.value),
        daily_target=int(daily_target) if daily_target is not None else None,
        is_active=True if active is None else bool(active),
        order=int(row.get("order_index") or 0),
        start_date=parse_iso_date(row.get("start_date")),
        affects_score=True if affects is None else bool(affects),
        require_reason=bool(row.get("require_reason") or False),
        preset_id=preset_id,
        emoji=row.get("emoji"),
        recurrence=recurrence_from_columns(
            row.get("recurrence_kind"), row.get("recurrence_days"), preset_id or habit_id
        ),
    )


def habit_to_row(habit: Habit) -> dict[str, Any]:
    kind, days = recurrence_to_columns(habit.recurrence)
    return {
        "id": habit.id,
        "name": habit.name,
        "name_ar": habit.name_ar,
        "type": habit.type.value,
        "daily_target": habit.daily_target,
        "is_active": habit.is_active,
        "order_index": habit.order,
        "start_date": habit.start_date.isoformat() if habit.start_date else None,
        "affects_score": habit.affects_score,
        "require_reason": habit.require_reason,
        "preset_id": habit.preset_id,
        "emoji": habit.emoji,
        "recurrence_kind": kind,
        "recurrence_days": days,
    }


def row_to_log(row: Row) -> HabitLog | None:
    """
    Converts a habit_logs row into a HabitLog.
    Rows without a parseable date carry no identity and are dropped.
    """
    on = parse_iso_date(row.get("log_date"))
    if on is None:
        return None
    return HabitLog(
        habit_id=cast(str, row["habit_id"]),
        date=on,
        value=int(row.get("value") or 0),
        status=LogStatus.parse(row.get("status")),
        reason=row.get("reason"),
        notes=row.get("notes"),
        timestamp=_parse_datetime(row.get("created_at")),
    )


def log_to_row(log: HabitLog) -> dict[str, Any]:
    return {
        "id": log.id,
        "habit_id": log.habit_id,
        "log_date": log.date.isoformat(),
        "value": log.value,
        "status": log.status.value,
        "reason": log.reason,
        "notes": log.notes,
        "created_at": log.timestamp.isoformat(),
    }


def row_to_reason(row: Row) -> CustomReason:
    return CustomReason(
        id=str(row["id"]),
        text=cast(str, row.get("reason_text") or ""),
        created_at=_parse_datetime(row.get("created_at")),
    )


def reason_to_row(reason: CustomReason) -> dict[str, Any]:
    return {
        "id": reason.id,
        "reason_text": reason.text.strip(),
        "created_at": reason.created_at.isoformat(),
    }
