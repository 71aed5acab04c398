from __future__ import annotations

import logging
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from .settings import settings


logger = logging.getLogger("testbed")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class Event:
    ts: str
    level: str
    message: str
    workload: str | None = None
    namespace: str | None = None


class EventJournal:
    """Bounded in-memory history of provisioning events.

    Test harnesses dump `recent()` when a provision fails so the steps that led
    up to it show next to the assertion.
    """

    def __init__(self, maxlen: int = 500) -> None:
        self.lock = Lock()
        self._events: deque[Event] = deque(maxlen=max(1, int(maxlen)))

    def append(self, ev: Event) -> None:
        with self.lock:
            self._events.append(ev)

    def recent(self, limit: int = 100) -> list[dict[str, Any]]:
        """Newest first."""
        with self.lock:
            items = list(self._events)
        return [asdict(e) for e in reversed(items)][: max(0, limit)]

    def clear(self) -> None:
        with self.lock:
            self._events.clear()


journal = EventJournal(settings.event_history)


def log_event(level: str, message: str, workload: str | None = None, namespace: str | None = None) -> None:
    level = level.upper()
    journal.append(Event(ts=utc_now(), level=level, message=message, workload=workload, namespace=namespace))
    where = f"{namespace}/{workload}" if workload and namespace else (workload or namespace)
    if where:
        message = f"[{where}] {message}"
    logger.log(_LEVELS.get(level, logging.INFO), message)
