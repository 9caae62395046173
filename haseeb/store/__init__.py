"""Uniform CRUD contract over the local and remote backends.

Every write returns the refreshed collection of its record kind. Failures are
raised as PersistenceError (or a subclass) and never swallowed here.
"""

from datetime import date
from pathlib import Path
from typing import Protocol

from haseeb import config
from haseeb.core.errors import NotAuthenticatedError, ValidationError
from haseeb.core.models import CustomReason, Habit, HabitLog, Session

__all__ = ["RecordStore", "open_store"]


class RecordStore(Protocol):
    async def list_habits(self) -> list[Habit]: ...

    async def upsert_habit(self, habit: Habit) -> list[Habit]: ...

    async def delete_habit(self, habit_id: str) -> list[Habit]:
        """Delete the habit and every log it owns."""
        ...

    async def list_logs(self) -> list[HabitLog]: ...

    async def upsert_log(self, log: HabitLog) -> list[HabitLog]: ...

    async def delete_log(self, habit_id: str, on: date) -> list[HabitLog]: ...

    async def list_reasons(self) -> list[CustomReason]: ...

    async def upsert_reason(self, reason: CustomReason) -> list[CustomReason]: ...

    async def delete_reason(self, reason_id: str) -> list[CustomReason]: ...

    async def close(self) -> None: ...


def open_store(session: Session | None, db_path: Path | None = None) -> RecordStore:
    """Pick the backend for a session once; callers never branch on the mode again."""
    if session is None:
        raise NotAuthenticatedError("no active session")
    if session.is_local_only:
        from .local import LocalStore

        return LocalStore(db_path)

    from .remote import RemoteStore

    base_url = config.get_remote_url()
    api_key = config.get_remote_key()
    if not base_url or not api_key:
        raise ValidationError("remote_url and api key must be configured for cloud sessions")
    return RemoteStore(base_url, api_key, session)
