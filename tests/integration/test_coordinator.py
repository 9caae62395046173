import asyncio
import dataclasses
from datetime import date

import pytest

from haseeb import config
from haseeb.coordinator import MutationCoordinator
from haseeb.core.errors import PersistenceError
from haseeb.core.models import (
    CustomReason,
    Habit,
    HabitLog,
    HabitType,
    LogStatus,
    PrayerQuality,
    Session,
)
from haseeb.notify import Notifier
from haseeb.presets import PRESET_HABITS

D = date(2024, 3, 13)
CLOUD = Session(id="user-1", is_local_only=False, access_token="jwt")


@pytest.fixture(autouse=True)
def _isolated_config(tmp_haseeb_dir):
    return tmp_haseeb_dir


class MemoryStore:
    """RecordStore double. `fail` makes writes raise; `gate` holds writes until set."""

    def __init__(self, habits=(), logs=(), reasons=()):
        self.habits = list(habits)
        self.logs = list(logs)
        self.reasons = list(reasons)
        self.fail: set[object] = set()
        self.gate: asyncio.Event | None = None
        self.writes: list[tuple[str, object]] = []
        self.closed = False

    async def _write(self, kind: str, payload: object, key: object) -> None:
        if self.gate is not None:
            await self.gate.wait()
        self.writes.append((kind, payload))
        if key in self.fail or "*" in self.fail:
            raise PersistenceError(f"{kind} rejected")

    async def list_habits(self):
        return list(self.habits)

    async def upsert_habit(self, habit):
        await self._write("upsert_habit", habit, habit.id)
        self.habits = [h for h in self.habits if h.id != habit.id] + [habit]
        return list(self.habits)

    async def delete_habit(self, habit_id):
        await self._write("delete_habit", habit_id, habit_id)
        self.habits = [h for h in self.habits if h.id != habit_id]
        self.logs = [log for log in self.logs if log.habit_id != habit_id]
        return list(self.habits)

    async def list_logs(self):
        return list(self.logs)

    async def upsert_log(self, log):
        await self._write("upsert_log", log, log.value)
        self.logs = [e for e in self.logs if e.key != log.key] + [log]
        return list(self.logs)

    async def delete_log(self, habit_id, on):
        await self._write("delete_log", (habit_id, on), (habit_id, on))
        self.logs = [e for e in self.logs if e.key != (habit_id, on)]
        return list(self.logs)

    async def list_reasons(self):
        return list(self.reasons)

    async def upsert_reason(self, reason):
        await self._write("upsert_reason", reason, reason.text)
        self.reasons.append(reason)
        return list(self.reasons)

    async def delete_reason(self, reason_id):
        await self._write("delete_reason", reason_id, reason_id)
        self.reasons = [r for r in self.reasons if r.id != reason_id]
        return list(self.reasons)

    async def close(self):
        self.closed = True


FAJR = Habit(id="fajr", name="Fajr", type=HabitType.PRAYER, order=0)
QURAN = Habit(id="quran", name="Quran", order=1)
WALK = Habit(id="walk", name="Walk", order=2)


def _coordinator(store: MemoryStore, session: Session | None = CLOUD) -> MutationCoordinator:
    coordinator = MutationCoordinator(session, store=store, notifier=Notifier(timeout=2.0))
    asyncio.run(coordinator.refresh())
    return coordinator


def _seeded() -> MemoryStore:
    return MemoryStore(
        habits=[FAJR, QURAN, WALK],
        logs=[
            HabitLog(habit_id="quran", date=D, value=1),
            HabitLog(habit_id="fajr", date=D, value=PrayerQuality.JAMAA),
        ],
        reasons=[CustomReason("r1", "Traveling")],
    )


def _messages(coordinator: MutationCoordinator) -> list[tuple[str, str]]:
    return [(n.kind, n.message) for n in coordinator.notifier.history]


# ── logs ─────────────────────────────────────────────────────────────────────


def test_save_log_applies_and_persists():
    store = _seeded()
    coordinator = _coordinator(store)
    log = HabitLog(habit_id="walk", date=D, value=1)

    assert asyncio.run(coordinator.save_log(log))
    assert log in coordinator.logs
    assert store.writes == [("upsert_log", log)]
    assert _messages(coordinator)[-1] == ("success", "✓ Saved")


def test_save_log_replaces_same_day_entry():
    coordinator = _coordinator(_seeded())
    log = HabitLog(habit_id="quran", date=D, value=0, status=LogStatus.FAIL, reason="Busy")

    asyncio.run(coordinator.save_log(log))

    quran_logs = [e for e in coordinator.logs if e.habit_id == "quran"]
    assert quran_logs == [log]
    assert len(coordinator.logs) == 2


def test_failed_save_restores_exact_prior_state():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()
    store.fail.add("*")

    ok = asyncio.run(coordinator.save_log(HabitLog(habit_id="quran", date=D, value=0, status=LogStatus.FAIL)))

    assert not ok
    assert coordinator.snapshot() == before
    assert [e.status for e in coordinator.logs] == [e.status for e in before.logs]
    assert _messages(coordinator)[-1] == ("error", "Failed to save")


def test_failed_insert_is_removed_again():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()
    store.fail.add("*")

    asyncio.run(coordinator.save_log(HabitLog(habit_id="walk", date=D, value=1)))

    assert coordinator.snapshot() == before


def test_prayer_log_message_names_level():
    coordinator = _coordinator(_seeded())
    asyncio.run(coordinator.save_log(HabitLog(habit_id="fajr", date=D, value=PrayerQuality.TAKBIRAH)))
    assert _messages(coordinator)[-1] == ("success", "✓ 1st Takbirah")


def test_prayer_log_message_in_arabic():
    config.set_language("ar")
    coordinator = _coordinator(_seeded())
    asyncio.run(coordinator.save_log(HabitLog(habit_id="fajr", date=D, value=PrayerQuality.JAMAA)))
    assert _messages(coordinator)[-1] == ("success", "✓ جماعة")


def test_log_without_habit_is_rejected():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()

    assert not asyncio.run(coordinator.save_log(HabitLog(habit_id="", date=D, value=1)))
    assert store.writes == []
    assert coordinator.snapshot() == before


def test_delete_log_and_rollback():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()

    store.fail.add(("quran", D))
    assert not asyncio.run(coordinator.delete_log("quran", D))
    assert coordinator.snapshot() == before

    store.fail.clear()
    assert asyncio.run(coordinator.delete_log("quran", D))
    assert [e.habit_id for e in coordinator.logs] == ["fajr"]
    assert _messages(coordinator)[-1] == ("success", "✓ Removed")


# ── per-key ordering ─────────────────────────────────────────────────────────


def _two_writes(store: MemoryStore, coordinator: MutationCoordinator, first: int, second: int):
    async def _run():
        store.gate = asyncio.Event()
        a = asyncio.create_task(coordinator.save_log(HabitLog(habit_id="walk", date=D, value=first)))
        await asyncio.sleep(0)
        b = asyncio.create_task(coordinator.save_log(HabitLog(habit_id="walk", date=D, value=second)))
        await asyncio.sleep(0)
        optimistic = [e.value for e in coordinator.logs if e.habit_id == "walk"]
        store.gate.set()
        results = await asyncio.gather(a, b)
        return optimistic, results

    return asyncio.run(_run())


def test_same_key_writes_persist_in_issue_order():
    store = _seeded()
    coordinator = _coordinator(store)

    optimistic, results = _two_writes(store, coordinator, 1, 2)

    assert optimistic == [2]
    assert results == [True, True]
    assert [payload.value for _, payload in store.writes] == [1, 2]
    assert [e.value for e in coordinator.logs if e.habit_id == "walk"] == [2]


def test_older_failure_does_not_clobber_newer_write():
    store = _seeded()
    coordinator = _coordinator(store)
    store.fail.add(1)

    _, results = _two_writes(store, coordinator, 1, 2)

    assert results == [False, True]
    assert [e.value for e in coordinator.logs if e.habit_id == "walk"] == [2]


def test_newer_failure_rolls_back_to_last_persisted_value():
    store = _seeded()
    coordinator = _coordinator(store)
    store.fail.add(2)

    _, results = _two_writes(store, coordinator, 1, 2)

    assert results == [True, False]
    assert [e.value for e in coordinator.logs if e.habit_id == "walk"] == [1]


# ── habits ───────────────────────────────────────────────────────────────────


def test_save_habit_message_depends_on_mode():
    cloud = _coordinator(_seeded())
    asyncio.run(cloud.save_habit(dataclasses.replace(WALK, name="Evening walk")))
    assert _messages(cloud)[-1] == ("success", "✓ Habit synced")
    assert cloud.habits[2].name == "Evening walk"

    local = _coordinator(_seeded(), Session.local())
    asyncio.run(local.save_habit(dataclasses.replace(WALK, is_active=False)))
    assert _messages(local)[-1] == ("success", "✓ Habit saved")


def test_delete_habit_drops_its_logs():
    store = _seeded()
    coordinator = _coordinator(store)

    assert asyncio.run(coordinator.delete_habit("quran"))
    assert [h.id for h in coordinator.habits] == ["fajr", "walk"]
    assert all(e.habit_id != "quran" for e in coordinator.logs)
    assert all(e.habit_id != "quran" for e in store.logs)


def test_failed_habit_delete_restores_habit_and_logs():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()
    store.fail.add("quran")

    assert not asyncio.run(coordinator.delete_habit("quran"))
    assert coordinator.snapshot() == before
    assert _messages(coordinator)[-1] == ("error", "Failed to delete habit")


def test_rapid_failed_habit_deletes_keep_its_logs():
    store = _seeded()
    coordinator = _coordinator(store)
    before = coordinator.snapshot()
    store.fail.add("quran")

    async def _run():
        store.gate = asyncio.Event()
        first = asyncio.create_task(coordinator.delete_habit("quran"))
        await asyncio.sleep(0)
        second = asyncio.create_task(coordinator.delete_habit("quran"))
        await asyncio.sleep(0)
        store.gate.set()
        return await asyncio.gather(first, second)

    assert asyncio.run(_run()) == [False, False]
    assert coordinator.snapshot() == before
    assert any(e.habit_id == "quran" for e in store.logs)


def test_reorder_assigns_indices():
    store = _seeded()
    coordinator = _coordinator(store)

    assert asyncio.run(coordinator.reorder_habits([WALK, FAJR, QURAN]))
    assert [(h.id, h.order) for h in coordinator.habits] == [("walk", 0), ("fajr", 1), ("quran", 2)]
    assert _messages(coordinator)[-1] == ("success", "✓ Order saved")


def test_partial_reorder_keeps_other_habits_and_writes_only_changes():
    store = _seeded()
    coordinator = _coordinator(store)

    assert asyncio.run(coordinator.reorder_habits([WALK, QURAN]))

    assert [(h.id, h.order) for h in coordinator.habits] == [("walk", 0), ("fajr", 0), ("quran", 1)]
    assert [(kind, payload.id) for kind, payload in store.writes] == [("upsert_habit", "walk")]


def test_failed_reorder_resyncs_from_backend():
    store = _seeded()
    coordinator = _coordinator(store)
    store.fail.add("fajr")

    assert not asyncio.run(coordinator.reorder_habits([WALK, FAJR, QURAN]))

    persisted = sorted(store.habits, key=lambda h: h.order)
    assert coordinator.habits == persisted
    assert _messages(coordinator)[-1] == ("error", "Failed to save order")


# ── custom reasons ───────────────────────────────────────────────────────────


def test_duplicate_reason_is_not_written():
    store = _seeded()
    coordinator = _coordinator(store)

    assert asyncio.run(coordinator.save_custom_reason("  traveling "))
    assert store.writes == []
    assert len(coordinator.reasons) == 1


def test_new_reason_saved_trimmed():
    store = _seeded()
    coordinator = _coordinator(store)

    assert asyncio.run(coordinator.save_custom_reason(" Sick "))
    assert [r.text for r in coordinator.reasons] == ["Traveling", "Sick"]


def test_delete_reason():
    coordinator = _coordinator(_seeded())
    assert asyncio.run(coordinator.delete_custom_reason("r1"))
    assert coordinator.reasons == []


# ── sessions and loading ─────────────────────────────────────────────────────


def test_no_session_is_a_no_op():
    coordinator = MutationCoordinator(None, notifier=Notifier(timeout=2.0))

    assert coordinator.store is None
    assert not asyncio.run(coordinator.refresh())
    assert not asyncio.run(coordinator.save_log(HabitLog(habit_id="quran", date=D, value=1)))
    assert not asyncio.run(coordinator.delete_habit("quran"))
    assert coordinator.snapshot().logs == ()
    assert _messages(coordinator)[-1] == ("error", "Not signed in")


def test_refresh_seeds_presets_for_empty_cloud_account():
    store = MemoryStore()
    coordinator = _coordinator(store, CLOUD)

    assert [h.id for h in coordinator.habits] == [h.id for h in PRESET_HABITS]
    assert len(store.habits) == len(PRESET_HABITS)


def test_refresh_does_not_seed_local_or_disabled():
    assert _coordinator(MemoryStore(), Session.local()).habits == []

    config.Config().set("seed_presets", False)
    assert _coordinator(MemoryStore(), CLOUD).habits == []


def test_refresh_sorts_habits_by_order():
    store = MemoryStore(habits=[WALK, QURAN, FAJR])
    assert [h.id for h in _coordinator(store).habits] == ["fajr", "quran", "walk"]


def test_refresh_propagates_backend_failure():
    class Broken(MemoryStore):
        async def list_logs(self):
            raise PersistenceError("offline")

    coordinator = MutationCoordinator(CLOUD, store=Broken(), notifier=Notifier(timeout=2.0))
    with pytest.raises(PersistenceError):
        asyncio.run(coordinator.refresh())


def test_context_manager_closes_store():
    store = MemoryStore()

    async def _run():
        async with MutationCoordinator(CLOUD, store=store, notifier=Notifier(timeout=2.0)):
            pass

    asyncio.run(_run())
    assert store.closed


def test_local_session_end_to_end(local_store):
    async def _run():
        async with MutationCoordinator(Session.local(), store=local_store) as coordinator:
            await coordinator.refresh()
            await coordinator.save_habit(QURAN)
            await coordinator.save_log(HabitLog(habit_id="quran", date=D, value=1))
        reloaded = MutationCoordinator(Session.local(), store=local_store)
        await reloaded.refresh()
        return reloaded.snapshot()

    snap = asyncio.run(_run())
    assert [h.id for h in snap.habits] == ["quran"]
    assert [log.key for log in snap.logs] == [("quran", D)]


def test_settled_keys_are_released():
    store = _seeded()
    coordinator = _coordinator(store)

    asyncio.run(coordinator.save_log(HabitLog(habit_id="walk", date=D, value=1)))
    asyncio.run(coordinator.delete_habit("quran"))
    store.fail.add("*")
    asyncio.run(coordinator.save_habit(WALK))
    asyncio.run(coordinator.reorder_habits([WALK, FAJR]))

    assert coordinator._keys == {}
