from __future__ import annotations
import threading
from typing import Callable, Optional
import structlog

log = structlog.get_logger()

class CountdownTimer:
    """
    Background periodic callback (daemon thread).
    Only signals; remaining time is computed by the receiver from its own start time.
    """
    def __init__(self, interval_s: float, on_tick: Callable[[], None]):
        self.interval_s = interval_s
        self.on_tick = on_tick
        self._thr: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._stop.clear()
        self._thr = threading.Thread(target=self._loop, daemon=True)
        self._thr.start()
        log.debug("countdown.start", interval_s=self.interval_s)

    def cancel(self) -> None:
        self._stop.set()
        thr, self._thr = self._thr, None
        # cancel() may run on the timer thread itself (expiry path)
        if thr and thr is not threading.current_thread():
            thr.join(timeout=1.0)
        log.debug("countdown.cancel")

    @property
    def running(self) -> bool:
        return bool(self._thr and self._thr.is_alive() and not self._stop.is_set())

    def _loop(self):
        while not self._stop.wait(self.interval_s):
            try:
                self.on_tick()
            except Exception as e:
                log.warning("countdown.tick.error", err=str(e))
