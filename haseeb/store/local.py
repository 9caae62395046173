import sqlite3
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger

from haseeb import db
from haseeb.core.errors import PersistenceError, StorageQuotaError
from haseeb.core.models import CustomReason, Habit, HabitLog
from haseeb.lib.converters import (
    habit_to_row,
    log_to_row,
    reason_to_row,
    row_to_habit,
    row_to_log,
    row_to_reason,
)

T = TypeVar("T")

_HABIT_COLS = (
    "id",
    "name",
    "name_ar",
    "type",
    "daily_target",
    "is_active",
    "order_index",
    "start_date",
    "affects_score",
    "require_reason",
    "preset_id",
    "emoji",
    "recurrence_kind",
    "recurrence_days",
)
_LOG_COLS = ("id", "habit_id", "log_date", "value", "status", "reason", "notes", "created_at")

_QUOTA_MARKERS = ("database or disk is full", "disk i/o error")


def _upsert_sql(table: str, cols: tuple[str, ...], conflict: str) -> str:
    keys = {c.strip() for c in conflict.split(",")}
    updates = ", ".join(f"{c} = excluded.{c}" for c in cols if c not in keys)
    placeholders = ", ".join("?" * len(cols))
    return (
        f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders}) "  # noqa: S608
        f"ON CONFLICT ({conflict}) DO UPDATE SET {updates}"
    )


_UPSERT_HABIT = _upsert_sql("habits", _HABIT_COLS, "id")
_UPSERT_LOG = _upsert_sql("habit_logs", _LOG_COLS, "habit_id, log_date")


class LocalStore:
    """On-device sqlite backend for the single local-only identity.

    Every call finishes its sqlite work before returning; the coroutine never
    suspends, so the coordinator sees it as an instant write.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path
        db.init(db_path)

    def _run(self, action: str, fn: Callable[[sqlite3.Connection], T]) -> T:
        try:
            with db.get_db(self.db_path) as conn:
                return fn(conn)
        except sqlite3.OperationalError as e:
            if any(marker in str(e).lower() for marker in _QUOTA_MARKERS):
                logger.error(f"[local] storage full during {action}: {e}")
                raise StorageQuotaError(f"local storage full: {e}") from e
            logger.error(f"[local] {action} failed: {e}")
            raise PersistenceError(f"{action} failed: {e}") from e
        except sqlite3.Error as e:
            logger.error(f"[local] {action} failed: {e}")
            raise PersistenceError(f"{action} failed: {e}") from e

    @staticmethod
    def _values(row: dict[str, Any], cols: tuple[str, ...]) -> tuple[Any, ...]:
        return tuple(row[c] for c in cols)

    # ── habits ───────────────────────────────────────────────────────────────

    @staticmethod
    def _select_habits(conn: sqlite3.Connection) -> list[Habit]:
        rows = conn.execute(
            f"SELECT {', '.join(_HABIT_COLS)} FROM habits ORDER BY order_index, rowid"  # noqa: S608
        ).fetchall()
        return [row_to_habit(dict(row)) for row in rows]

    async def list_habits(self) -> list[Habit]:
        habits = self._run("list habits", self._select_habits)
        logger.debug(f"[local] loaded {len(habits)} habits")
        return habits

    async def upsert_habit(self, habit: Habit) -> list[Habit]:
        def _write(conn: sqlite3.Connection) -> list[Habit]:
            conn.execute(_UPSERT_HABIT, self._values(habit_to_row(habit), _HABIT_COLS))
            return self._select_habits(conn)

        habits = self._run("save habit", _write)
        logger.info(f"[local] saved habit {habit.id}")
        return habits

    async def delete_habit(self, habit_id: str) -> list[Habit]:
        def _write(conn: sqlite3.Connection) -> list[Habit]:
            conn.execute("DELETE FROM habit_logs WHERE habit_id = ?", (habit_id,))
            conn.execute("DELETE FROM habits WHERE id = ?", (habit_id,))
            return self._select_habits(conn)

        habits = self._run("delete habit", _write)
        logger.info(f"[local] deleted habit {habit_id} and its logs")
        return habits

    # ── logs ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _select_logs(conn: sqlite3.Connection) -> list[HabitLog]:
        rows = conn.execute(
            f"SELECT {', '.join(_LOG_COLS)} FROM habit_logs ORDER BY log_date DESC, habit_id"  # noqa: S608
        ).fetchall()
        logs = (row_to_log(dict(row)) for row in rows)
        return [log for log in logs if log is not None]

    async def list_logs(self) -> list[HabitLog]:
        logs = self._run("list logs", self._select_logs)
        logger.debug(f"[local] loaded {len(logs)} logs")
        return logs

    async def upsert_log(self, log: HabitLog) -> list[HabitLog]:
        def _write(conn: sqlite3.Connection) -> list[HabitLog]:
            conn.execute(_UPSERT_LOG, self._values(log_to_row(log), _LOG_COLS))
            return self._select_logs(conn)

        return self._run("save log", _write)

    async def delete_log(self, habit_id: str, on: date) -> list[HabitLog]:
        def _write(conn: sqlite3.Connection) -> list[HabitLog]:
            conn.execute(
                "DELETE FROM habit_logs WHERE habit_id = ? AND log_date = ?",
                (habit_id, on.isoformat()),
            )
            return self._select_logs(conn)

        return self._run("delete log", _write)

    # ── custom reasons ───────────────────────────────────────────────────────

    @staticmethod
    def _select_reasons(conn: sqlite3.Connection) -> list[CustomReason]:
        rows = conn.execute(
            "SELECT id, reason_text, created_at FROM custom_reasons ORDER BY created_at, rowid"
        ).fetchall()
        return [row_to_reason(dict(row)) for row in rows]

    async def list_reasons(self) -> list[CustomReason]:
        return self._run("list reasons", self._select_reasons)

    async def upsert_reason(self, reason: CustomReason) -> list[CustomReason]:
        row = reason_to_row(reason)

        def _write(conn: sqlite3.Connection) -> list[CustomReason]:
            conn.execute(
                "INSERT INTO custom_reasons (id, reason_text, created_at) VALUES (?, ?, ?) "
                "ON CONFLICT DO NOTHING",
                (row["id"], row["reason_text"], row["created_at"]),
            )
            return self._select_reasons(conn)

        return self._run("save reason", _write)

    async def delete_reason(self, reason_id: str) -> list[CustomReason]:
        def _write(conn: sqlite3.Connection) -> list[CustomReason]:
            conn.execute("DELETE FROM custom_reasons WHERE id = ?", (reason_id,))
            return self._select_reasons(conn)

        return self._run("delete reason", _write)

    async def close(self) -> None:
        return None
