# app/controller/event_bus.py
from __future__ import annotations
from queue import Queue, Full, Empty
from typing import Optional
import structlog

from core.hooks.events import BaseEvent

log = structlog.get_logger()

class EventBus:
    """
    Bounded queue between producers (key hooks, countdown timer) and the
    single consumer that drives the controller.
    """
    def __init__(self, maxsize: int = 5000):
        self._q: Queue = Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, ev: BaseEvent) -> None:
        """Never blocks; when full, the oldest queued event is dropped."""
        try:
            self._q.put_nowait(ev)
        except Full:
            try:
                self._q.get_nowait()
                self.dropped += 1
            except Empty:
                pass
            self._q.put_nowait(ev)
            log.debug("bus.drop_oldest", dropped=self.dropped)

    def get(self, timeout: float = 0.5) -> Optional[BaseEvent]:
        try:
            return self._q.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> list:
        out = []
        while True:
            try:
                out.append(self._q.get_nowait())
            except Empty:
                return out
