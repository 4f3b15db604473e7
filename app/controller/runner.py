from __future__ import annotations
import threading
from typing import Callable, Optional
import structlog

from app.analytics.config import ProfilerConfig, StoreConfig
from app.controller.behavior_controller import InvalidKeyEvent
from app.controller.event_bus import EventBus
from app.controller.session import Session
from core.hooks.events import BaseEvent, BehaviorState, KeyEvent, TickEvent

log = structlog.get_logger()

class HookRuntime:
    """
    Owns the single consumer thread: every keystroke and countdown tick is
    applied to the controller in bus order.
    """
    def __init__(
        self,
        config: Optional[ProfilerConfig] = None,
        store_config: Optional[StoreConfig] = None,
        global_hook: bool = False,
        on_update: Optional[Callable[[BehaviorState], None]] = None,
        backend=None,
    ):
        self.bus = EventBus(maxsize=5000)
        self.session = Session.create(
            config=config,
            store_config=store_config,
            backend=backend,
            tick_sink=self._post_tick,
            on_update=on_update,
        )
        self.kbd = None
        if global_hook:
            # pynput needs a display server; only load it when asked for
            from core.hooks.keyboard_listener import KeyboardHook
            self.kbd = KeyboardHook(self.bus)
        self._consumer_thr: Optional[threading.Thread] = None
        self._stop_evt = threading.Event()

    @property
    def controller(self):
        return self.session.controller

    def _post_tick(self) -> None:
        self.bus.publish(TickEvent())

    def submit(self, ev: BaseEvent) -> None:
        self.bus.publish(ev)

    def start(self) -> bool:
        resumed = self.controller.start()
        self._stop_evt.clear()
        if self.kbd:
            self.kbd.start()
        self._consumer_thr = threading.Thread(target=self._consume_loop, daemon=True)
        self._consumer_thr.start()
        log.info("runtime.start", resumed=resumed)
        return resumed

    def stop(self) -> None:
        if self.kbd:
            self.kbd.stop()
        self.controller.shutdown()
        self._stop_evt.set()
        if self._consumer_thr:
            self._consumer_thr.join(timeout=1.0)
        log.info("runtime.stop", dropped=self.bus.dropped)

    def reset(self) -> None:
        # synchronous; ticks still queued are ignored once idle
        self.controller.reset()

    def dispatch(self, ev: BaseEvent) -> None:
        """Apply one bus event to the controller (consumer thread only)."""
        if isinstance(ev, KeyEvent):
            self.controller.handle_key(ev)
        elif isinstance(ev, TickEvent):
            self.controller.tick()

    def _consume_loop(self):
        while not self._stop_evt.is_set():
            ev = self.bus.get(timeout=0.5)
            if ev is None:
                continue
            try:
                self.dispatch(ev)
            except InvalidKeyEvent as e:
                log.warning("controller.bad_event", err=str(e))
            except Exception as e:
                log.warning("controller.error", err=str(e), etype=ev.etype.name)
