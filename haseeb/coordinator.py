"""Optimistic mutation coordinator.

Every mutation is applied to the in-memory collections before the backend
write is awaited, so readers see it immediately. Writes to one key are
serialized in issue order; a failed write rolls its key back to the last value
known to be persisted, unless a newer mutation to the same key has already
been applied, in which case that newer mutation owns the key.
"""

import asyncio
import dataclasses
import uuid
from collections.abc import Awaitable, Callable
from datetime import date
from typing import Any

from loguru import logger

from . import config
from .core.errors import PersistenceError
from .core.models import CustomReason, Habit, HabitLog, HabitType, PrayerQuality, Session
from .lib import clock
from .notify import Notifier
from .presets import preset_habits
from .store import RecordStore, open_store

__all__ = ["MutationCoordinator", "Snapshot"]

PRAYER_LEVEL_NAMES: dict[int, dict[str, str]] = {
    PrayerQuality.TAKBIRAH: {"en": "1st Takbirah", "ar": "تكبيرة الإحرام"},
    PrayerQuality.JAMAA: {"en": "In Group", "ar": "جماعة"},
    PrayerQuality.ON_TIME: {"en": "On Time", "ar": "في الوقت"},
    PrayerQuality.MISSED: {"en": "Missed", "ar": "فائتة"},
}

Key = tuple[Any, ...]



@dataclasses.dataclass(frozen=True)
class Snapshot:
    habits: tuple[Habit, ...]
    logs: tuple[HabitLog, ...]
    reasons: tuple[CustomReason, ...]


@dataclasses.dataclass
class _KeyState:
    """Write queue for one key, alive only while a write to it is in flight."""

    lock: asyncio.Lock = dataclasses.field(default_factory=asyncio.Lock)
    version: int = 0
    pending: int = 0
    baseline: Any = None
    baseline_index: int = -1
    # records removed alongside the key's value (a deleted habit's logs)
    dependents: list[tuple[int, Any]] = dataclasses.field(default_factory=list)


def _index_of(items: list[Any], match: Callable[[Any], bool]) -> int:
    return next((i for i, item in enumerate(items) if match(item)), -1)


def _put(items: list[Any], match: Callable[[Any], bool], value: Any, at: int = -1) -> list[Any]:
    """Copy of items with the matching entry replaced, removed (value None) or added."""
    out = list(items)
    idx = _index_of(out, match)
    if idx >= 0:
        if value is None:
            del out[idx]
        else:
            out[idx] = value
    elif value is not None:
        if 0 <= at <= len(out):
            out.insert(at, value)
        else:
            out.append(value)
    return out


class MutationCoordinator:
    """Single writer of a session's habits, logs and custom reasons."""

    def __init__(
        self,
        session: Session | None,
        store: RecordStore | None = None,
        notifier: Notifier | None = None,
    ):
        self.session = session
        self.store = store if store is not None or session is None else open_store(session)
        self.notifier = notifier or Notifier()
        self.habits: list[Habit] = []
        self.logs: list[HabitLog] = []
        self.reasons: list[CustomReason] = []
        self._keys: dict[Key, _KeyState] = {}

    async def __aenter__(self) -> "MutationCoordinator":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        if self.store is not None:
            await self.store.close()

    def snapshot(self) -> Snapshot:
        return Snapshot(tuple(self.habits), tuple(self.logs), tuple(self.reasons))

    def _store_for(self, action: str) -> RecordStore | None:
        """The session's store, or None (with an error notification) when signed out."""
        if self.session is None or self.store is None:
            logger.error(f"Cannot {action}: no user session")
            self.notifier.error("Not signed in")
            return None
        return self.store

    # ── loading ──────────────────────────────────────────────────────────────

    async def refresh(self) -> bool:
        """Replace in-memory state with the backend's. Raises PersistenceError."""
        session = self.session
        store = self._store_for("load data")
        if store is None or session is None:
            return False
        mode = "LOCAL" if session.is_local_only else "CLOUD"
        habits, logs, reasons = await asyncio.gather(
            store.list_habits(), store.list_logs(), store.list_reasons()
        )
        if not habits and not session.is_local_only and config.seed_presets_enabled():
            logger.info("New account detected (0 habits). Seeding preset habits...")
            for habit in preset_habits(clock.today()):
                habits = await store.upsert_habit(habit)
        self.habits = sorted(habits, key=lambda h: h.order)
        self.logs = list(logs)
        self.reasons = list(reasons)
        logger.info(
            f"{mode}: loaded {len(self.habits)} habits, {len(self.logs)} logs, "
            f"{len(self.reasons)} custom reasons"
        )
        return True

    # ── per-key bookkeeping ──────────────────────────────────────────────────

    def _enter(self, key: Key, baseline: Any, baseline_index: int) -> tuple[_KeyState, int]:
        state = self._keys.setdefault(key, _KeyState())
        if state.pending == 0:
            state.baseline = baseline
            state.baseline_index = baseline_index
            state.dependents = []
        state.pending += 1
        state.version += 1
        return state, state.version

    def _leave(self, key: Key, state: _KeyState) -> None:
        state.pending -= 1
        if state.pending == 0 and self._keys.get(key) is state:
            del self._keys[key]

    # ── core optimistic path ─────────────────────────────────────────────────

    async def _mutate(
        self,
        key: Key,
        attr: str,
        match: Callable[[Any], bool],
        new: Any,
        persist: Callable[[], Awaitable[object]],
        ok: str,
        fail: str,
        detach: Callable[[], list[tuple[int, Any]]] | None = None,
        reattach: Callable[[list[tuple[int, Any]]], None] | None = None,
    ) -> bool:
        items: list[Any] = getattr(self, attr)
        idx = _index_of(items, match)
        state, version = self._enter(key, items[idx] if idx >= 0 else None, idx)
        if detach is not None:
            state.dependents.extend(detach())

        setattr(self, attr, _put(items, match, new))

        try:
            async with state.lock:
                await persist()
        except PersistenceError as e:
            logger.error(f"Error persisting {key}: {e}")
            if state.version == version:
                restored = _put(getattr(self, attr), match, state.baseline, state.baseline_index)
                setattr(self, attr, restored)
                if reattach is not None:
                    reattach(state.dependents)
            self.notifier.error(fail)
            return False
        else:
            state.baseline = new
            state.baseline_index = _index_of(getattr(self, attr), match)
            state.dependents = []
            self.notifier.success(ok)
            return True
        finally:
            self._leave(key, state)

    # ── logs ─────────────────────────────────────────────────────────────────

    def _log_message(self, log: HabitLog) -> str:
        habit = next((h for h in self.habits if h.id == log.habit_id), None)
        if habit is not None and habit.type is HabitType.PRAYER:
            names = PRAYER_LEVEL_NAMES.get(log.value)
            if names:
                return f"✓ {names[config.get_language()]}"
        return "✓ Saved"

    async def save_log(self, log: HabitLog) -> bool:
        """Replace-or-append the (habit_id, date) entry, then upsert it."""
        store = self._store_for("save log")
        if store is None:
            return False
        if not log.habit_id:
            logger.error("Cannot save log without a habit id")
            self.notifier.error("Failed to save")
            return False
        return await self._mutate(
            ("log", log.habit_id, log.date),
            "logs",
            lambda entry: entry.key == log.key,
            log,
            lambda: store.upsert_log(log),
            self._log_message(log),
            "Failed to save",
        )

    async def delete_log(self, habit_id: str, on: date) -> bool:
        store = self._store_for("delete log")
        if store is None:
            return False
        return await self._mutate(
            ("log", habit_id, on),
            "logs",
            lambda entry: entry.key == (habit_id, on),
            None,
            lambda: store.delete_log(habit_id, on),
            "✓ Removed",
            "Failed to delete",
        )

    # ── habits ───────────────────────────────────────────────────────────────

    async def save_habit(self, habit: Habit) -> bool:
        session = self.session
        store = self._store_for("save habit")
        if store is None or session is None:
            return False
        logger.info(f"Saving habit: {habit.name}")
        ok = "✓ Habit saved" if session.is_local_only else "✓ Habit synced"
        return await self._mutate(
            ("habit", habit.id),
            "habits",
            lambda entry: entry.id == habit.id,
            habit,
            lambda: store.upsert_habit(habit),
            ok,
            "Failed to save habit",
        )

    async def delete_habit(self, habit_id: str) -> bool:
        """Remove a habit and, in the same backend call, every log it owns."""
        store = self._store_for("delete habit")
        if store is None:
            return False
        logger.info(f"Deleting habit: {habit_id}")

        def _detach_logs() -> list[tuple[int, Any]]:
            removed = [(i, log) for i, log in enumerate(self.logs) if log.habit_id == habit_id]
            self.logs = [log for log in self.logs if log.habit_id != habit_id]
            return removed

        def _reattach_logs(removed: list[tuple[int, Any]]) -> None:
            present = {log.key for log in self.logs}
            logs = list(self.logs)
            for i, log in removed:
                if log.key not in present:
                    logs.insert(min(i, len(logs)), log)
            self.logs = logs

        return await self._mutate(
            ("habit", habit_id),
            "habits",
            lambda entry: entry.id == habit_id,
            None,
            lambda: store.delete_habit(habit_id),
            "✓ Habit deleted",
            "Failed to delete habit",
            detach=_detach_logs,
            reattach=_reattach_logs,
        )

    async def reorder_habits(self, new_order: list[Habit]) -> bool:
        """Give each habit its index as order; on failure re-read the backend's habits."""
        store = self._store_for("reorder habits")
        if store is None:
            return False
        logger.info("Reordering habits...")
        updated = [dataclasses.replace(h, order=i) for i, h in enumerate(new_order)]
        before = list(self.habits)
        previous = {h.id: h for h in before}
        reordered_ids = {h.id for h in updated}
        merged = updated + [h for h in before if h.id not in reordered_ids]
        self.habits = sorted(merged, key=lambda h: h.order)

        changed = [h for h in updated if previous.get(h.id) != h]
        entered = [
            (("habit", h.id), self._enter(("habit", h.id), previous.get(h.id), -1)[0])
            for h in changed
        ]
        try:
            for habit, (_, state) in zip(changed, entered):
                async with state.lock:
                    await store.upsert_habit(habit)
                state.baseline = habit
        except PersistenceError as e:
            logger.error(f"Error reordering habits: {e}")
            try:
                self.habits = sorted(await store.list_habits(), key=lambda h: h.order)
            except PersistenceError as refetch_error:
                logger.error(f"Re-sync after failed reorder also failed: {refetch_error}")
                self.habits = before
            self.notifier.error("Failed to save order")
            return False
        finally:
            for key, state in entered:
                self._leave(key, state)
        self.notifier.success("✓ Order saved")
        return True

    # ── custom reasons ───────────────────────────────────────────────────────

    async def save_custom_reason(self, text: str) -> bool:
        """Remember a typed reason for autocomplete; repeats are absorbed."""
        store = self._store_for("save custom reason")
        if store is None:
            return False
        cleaned = text.strip()
        if not cleaned:
            self.notifier.error("Failed to save reason")
            return False
        if any(r.text.strip().lower() == cleaned.lower() for r in self.reasons):
            self.notifier.success("✓ Reason saved")
            return True
        reason = CustomReason(id=str(uuid.uuid4()), text=cleaned, created_at=clock.now())
        return await self._mutate(
            ("reason", reason.id),
            "reasons",
            lambda entry: entry.id == reason.id,
            reason,
            lambda: store.upsert_reason(reason),
            "✓ Reason saved",
            "Failed to save reason",
        )

    async def delete_custom_reason(self, reason_id: str) -> bool:
        store = self._store_for("delete custom reason")
        if store is None:
            return False
        return await self._mutate(
            ("reason", reason_id),
            "reasons",
            lambda entry: entry.id == reason_id,
            None,
            lambda: store.delete_reason(reason_id),
            "✓ Reason deleted",
            "Failed to delete reason",
        )
