import dataclasses
import time
from collections import deque
from collections.abc import Callable
from typing import Literal

from . import config

NotificationKind = Literal["success", "error"]

HISTORY_SIZE = 50


@dataclasses.dataclass(frozen=True)
class Notification:
    message: str
    kind: NotificationKind
    created: float
    timeout: float

    @property
    def expires_at(self) -> float:
        return self.created + self.timeout


class Notifier:
    """Holds the one transient notification on screen; a newer one replaces it."""

    def __init__(
        self,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout if timeout is not None else config.get_notification_timeout()
        self._clock = clock
        self._current: Notification | None = None
        self._listeners: list[Callable[[Notification], None]] = []
        self.history: deque[Notification] = deque(maxlen=HISTORY_SIZE)

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def emit(self, message: str, kind: NotificationKind = "success") -> Notification:
        note = Notification(message, kind, self._clock(), self.timeout)
        self._current = note
        self.history.append(note)
        for listener in self._listeners:
            listener(note)
        return note

    def success(self, message: str) -> Notification:
        return self.emit(message, "success")

    def error(self, message: str) -> Notification:
        return self.emit(message, "error")

    @property
    def current(self) -> Notification | None:
        """The visible notification, or None once its timeout has elapsed."""
        if self._current is not None and self._clock() >= self._current.expires_at:
            self._current = None
        return self._current

    def dismiss(self) -> None:
        self._current = None
