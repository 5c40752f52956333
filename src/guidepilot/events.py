"""Monitor event bus: notify listeners and per-session bounded queues."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

# Standard event types
EVENT_STATUS_CHANGED = "status_changed"
EVENT_GUIDANCE_PROVIDED = "guidance_provided"
EVENT_ANALYSIS_COMPLETE = "analysis_complete"
EVENT_ANALYSIS_ERROR = "analysis_error"

STATUS_ACTIVE = "ACTIVE"
STATUS_STANDBY = "STANDBY"

DEFAULT_QUEUE_SIZE = 100


@dataclass
class MonitorEvent:
    event_type: str
    session: Any
    payload: Any = None
    timestamp: float = field(default_factory=time.time)

    @property
    def session_id(self) -> str | None:
        return getattr(self.session, "id", None)


class MonitorEvents:
    """Fan-out of monitor events to callbacks and per-session queues.

    Queues are bounded; when one is full the oldest event is dropped so a
    slow consumer never blocks the analysis loop.
    """

    def __init__(self):
        self._listeners: list[Callable[[MonitorEvent], Any]] = []
        self._queues: dict[str, list[asyncio.Queue]] = {}

    def emit(self, event_type: str, session: Any, payload: Any = None) -> MonitorEvent:
        event = MonitorEvent(event_type=event_type, session=session, payload=payload)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Event listener error: {e}")

        for queue in self._queues.get(event.session_id or "", []):
            if queue.full():
                dropped = queue.get_nowait()
                logger.debug(f"Event queue full, dropped {dropped.event_type}")
            queue.put_nowait(event)

        return event

    def add_listener(self, callback: Callable[[MonitorEvent], Any]) -> None:
        """Register a listener for all events."""
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable) -> None:
        """Remove a registered listener."""
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    def subscribe(self, session_id: str, maxsize: int = DEFAULT_QUEUE_SIZE) -> asyncio.Queue:
        """Return a bounded queue receiving every event for ``session_id``."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.setdefault(session_id, []).append(queue)
        return queue

    def unsubscribe(self, session_id: str, queue: asyncio.Queue) -> None:
        queues = self._queues.get(session_id, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._queues.pop(session_id, None)

    def clear(self) -> None:
        self._listeners.clear()
        self._queues.clear()
