import asyncio
import dataclasses
import random
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Literal

from fncli import UsageError, cli
from loguru import logger

from .core.models import (
    NO_RECURRENCE,
    Habit,
    HabitLog,
    HabitType,
    LogStatus,
    LunarWindowRecurrence,
    PrayerQuality,
    Recurrence,
    Session,
    WeekdayRecurrence,
)
from .lib import clock
from .lib.errors import echo

if TYPE_CHECKING:
    from .store import RecordStore

__all__ = [
    "PRAYER_IDS",
    "PRESET_HABITS",
    "preset_habits",
    "preset_recurrence",
    "seed_demo_data",
]

DemoPersona = Literal["devout", "struggler", "beginner", "intermediate", "advanced"]

PRAYER_IDS = ("fajr", "dhuhr", "asr", "maghrib", "isha")

_PRESET_RECURRENCE: dict[str, Recurrence] = {
    "fasting_monday": WeekdayRecurrence(frozenset({0})),
    "fasting_thursday": WeekdayRecurrence(frozenset({3})),
    "fasting_white_days": LunarWindowRecurrence(13, 15),
}

PRESET_HABITS: tuple[Habit, ...] = (
    Habit("fajr", "Fajr", HabitType.PRAYER, name_ar="الفجر", order=0, require_reason=True),
    Habit("dhuhr", "Dhuhr", HabitType.PRAYER, name_ar="الظهر", order=1, require_reason=True),
    Habit("asr", "Asr", HabitType.PRAYER, name_ar="العصر", order=2, require_reason=True),
    Habit("maghrib", "Maghrib", HabitType.PRAYER, name_ar="المغرب", order=3, require_reason=True),
    Habit("isha", "Isha", HabitType.PRAYER, name_ar="العشاء", order=4, require_reason=True),
    Habit("quran", "Read Quran", HabitType.REGULAR, name_ar="قراءة القرآن", order=5),
    Habit(
        "athkar_twice_daily",
        "Athkar (AM/PM)",
        HabitType.COUNTER,
        name_ar="أذكار الصباح والمساء",
        daily_target=2,
        order=6,
    ),
    Habit(
        "fasting_monday",
        "Fast Monday",
        HabitType.REGULAR,
        name_ar="صيام الاثنين",
        order=7,
        is_active=False,
        affects_score=False,
    ),
    Habit(
        "fasting_thursday",
        "Fast Thursday",
        HabitType.REGULAR,
        name_ar="صيام الخميس",
        order=8,
        is_active=False,
        affects_score=False,
    ),
    Habit(
        "fasting_white_days",
        "White Days Fast",
        HabitType.REGULAR,
        name_ar="صيام الأيام البيض",
        order=9,
        is_active=False,
        affects_score=False,
    ),
)

_DEMO_HABITS: tuple[Habit, ...] = (
    Habit("demo_fajr_sunnah", "Fajr Sunnah", HabitType.REGULAR, emoji="🌅", order=5),
    Habit("demo_morning_athkar", "Morning Athkar", HabitType.REGULAR, emoji="☀️", order=6),
    Habit("demo_read_quran", "Read Quran", HabitType.REGULAR, emoji="📖", order=7),
    Habit("demo_water", "Drink Water", HabitType.COUNTER, emoji="💧", daily_target=8, order=8),
)

_PERSONAS: dict[str, tuple[int, float]] = {
    "devout": (365, 0.95),
    "struggler": (90, 0.6),
    "beginner": (14, 0.3),
    "intermediate": (14, 0.3),
    "advanced": (14, 0.3),
}

_PERFECT_RECENT_DAYS = 7


def preset_recurrence(preset_id: str | None) -> Recurrence:
    """Recurrence implied by a built-in preset id, for rows that predate explicit rules."""
    if not preset_id:
        return NO_RECURRENCE
    return _PRESET_RECURRENCE.get(preset_id, NO_RECURRENCE)


def preset_habits(start: date | None = None) -> list[Habit]:
    """Built-in habits for a new account, tracked from `start`."""
    return [
        dataclasses.replace(
            h, preset_id=h.id, start_date=start, recurrence=preset_recurrence(h.id)
        )
        for h in PRESET_HABITS
    ]


def _demo_value(habit: Habit, success: bool, rng: random.Random) -> tuple[int, LogStatus]:
    if habit.type is HabitType.PRAYER:
        if not success:
            return PrayerQuality.MISSED, LogStatus.FAIL
        quality = rng.choice(
            [PrayerQuality.ON_TIME, PrayerQuality.JAMAA, PrayerQuality.TAKBIRAH]
        )
        return int(quality), LogStatus.DONE
    if habit.type is HabitType.COUNTER:
        target = habit.daily_target or 1
        if success:
            return target, LogStatus.DONE
        return rng.randint(0, target - 1), LogStatus.FAIL
    return (1, LogStatus.DONE) if success else (0, LogStatus.FAIL)


async def seed_demo_data(
    store: "RecordStore",
    persona: DemoPersona = "struggler",
    today: date | None = None,
    rng: random.Random | None = None,
) -> int:
    """Wipe the store and fill it with a persona's worth of history. Returns log count."""
    if persona not in _PERSONAS:
        raise ValueError(f"unknown persona '{persona}'")
    today = today or clock.today()
    rng = rng or random.Random()
    days, success_rate = _PERSONAS[persona]
    logger.info(f"Seeding demo data for persona: {persona}")

    for existing in await store.list_habits():
        await store.delete_habit(existing.id)

    start = today - timedelta(days=days - 1)
    prayers = [h for h in preset_habits(start) if h.id in PRAYER_IDS]
    habits = prayers + [dataclasses.replace(h, start_date=start) for h in _DEMO_HABITS]
    for habit in habits:
        await store.upsert_habit(habit)

    written = 0
    for offset in range(days):
        day = today - timedelta(days=offset)
        day_success = offset < _PERFECT_RECENT_DAYS or rng.random() < success_rate
        for habit in habits:
            value, status = _demo_value(habit, day_success, rng)
            await store.upsert_log(
                HabitLog(
                    habit_id=habit.id,
                    date=day,
                    value=value,
                    status=status,
                    timestamp=datetime.combine(day, time(12, 0)),
                )
            )
            written += 1

    logger.success(f"Seeding complete. Generated {days} days of history.")
    return written


@cli("haseeb")
def seed(persona: str = "struggler") -> None:
    """Replace local data with a demo persona's history"""
    from .store import open_store

    if persona not in _PERSONAS:
        raise UsageError(f"persona must be one of: {', '.join(_PERSONAS)}")

    async def _run() -> int:
        store = open_store(Session.local())
        try:
            return await seed_demo_data(store, persona)  # type: ignore[arg-type]
        finally:
            await store.close()

    count = asyncio.run(_run())
    echo(f"seeded {count} logs ({persona})")


@cli("haseeb", name="presets")
def install_presets() -> None:
    """Add the built-in habits to the local store, starting today"""
    from .store import open_store

    async def _run() -> int:
        store = open_store(Session.local())
        try:
            existing = {h.id for h in await store.list_habits()}
            added = [h for h in preset_habits(clock.today()) if h.id not in existing]
            for habit in added:
                await store.upsert_habit(habit)
            return len(added)
        finally:
            await store.close()

    echo(f"added {asyncio.run(_run())} preset habits")
