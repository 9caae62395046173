import dataclasses
from datetime import date, datetime
from enum import Enum, IntEnum

LOCAL_SESSION_ID = "local"


class HabitType(str, Enum):
    REGULAR = "REGULAR"
    COUNTER = "COUNTER"
    PRAYER = "PRAYER"


class PrayerQuality(IntEnum):
    MISSED = 0
    ON_TIME = 1
    JAMAA = 2
    TAKBIRAH = 3


TOP_PRAYER_QUALITY = PrayerQuality.TAKBIRAH


class LogStatus(str, Enum):
    DONE = "DONE"
    FAIL = "FAIL"
    EXCUSED = "EXCUSED"

    @classmethod
    def parse(cls, raw: object) -> "LogStatus":
        """Read a stored status. Legacy rows wrote SKIP for an excused day."""
        if isinstance(raw, LogStatus):
            return raw
        text = str(raw or "").strip().upper()
        if text == "SKIP":
            return cls.EXCUSED
        try:
            return cls(text)
        except ValueError:
            return cls.DONE


@dataclasses.dataclass(frozen=True)
class NoRecurrence:
    pass


@dataclasses.dataclass(frozen=True)
class WeekdayRecurrence:
    weekdays: frozenset[int]


@dataclasses.dataclass(frozen=True)
class LunarWindowRecurrence:
    start_day: int = 13
    end_day: int = 15


Recurrence = NoRecurrence | WeekdayRecurrence | LunarWindowRecurrence

NO_RECURRENCE = NoRecurrence()


@dataclasses.dataclass(frozen=True)
class Habit:
    id: str
    name: str
    type: HabitType = HabitType.REGULAR
    name_ar: str | None = None
    daily_target: int | None = None
    is_active: bool = True
    order: int = 0
    start_date: date | None = None
    affects_score: bool = True
    require_reason: bool = False
    preset_id: str | None = None
    emoji: str | None = None
    recurrence: Recurrence = NO_RECURRENCE

    def display_name(self, language: str = "en") -> str:
        if language == "ar" and self.name_ar:
            return self.name_ar
        return self.name


def log_id(habit_id: str, on: date) -> str:
    return f"{habit_id}-{on.isoformat()}"


@dataclasses.dataclass(frozen=True)
class HabitLog:
    habit_id: str
    date: date
    value: int
    status: LogStatus = LogStatus.DONE
    reason: str | None = None
    notes: str | None = None
    timestamp: datetime = dataclasses.field(default_factory=datetime.now, compare=False)

    @property
    def id(self) -> str:
        return log_id(self.habit_id, self.date)

    @property
    def key(self) -> tuple[str, date]:
        return (self.habit_id, self.date)


@dataclasses.dataclass(frozen=True)
class CustomReason:
    id: str
    text: str
    created_at: datetime = dataclasses.field(default_factory=datetime.now, compare=False)


@dataclasses.dataclass(frozen=True)
class Session:
    id: str
    is_local_only: bool
    access_token: str | None = None

    @classmethod
    def local(cls) -> "Session":
        return cls(id=LOCAL_SESSION_ID, is_local_only=True)
