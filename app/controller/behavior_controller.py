# app/controller/behavior_controller.py
from __future__ import annotations
import math
import threading
import time
from typing import Any, Callable, Optional
import structlog

from app.analytics.autoencoder import AnomalyModel
from app.analytics.config import ProfilerConfig
from app.controller.countdown import CountdownTimer
from core.features.feature_extractor import FeatureExtractor
from core.hooks.events import BehaviorState, KeyEvent, NormalizationStats, Phase
from core.storage.profile_store import ProfileStore

log = structlog.get_logger()

TimerFactory = Callable[[float, Callable[[], None]], Any]

class InvalidKeyEvent(ValueError):
    """Key descriptor without a usable key code (integration bug, not a runtime fault)."""

class BehaviorController:
    """
    Phase machine: idle → training → predicting, back to idle only via reset().
    - First extracted feature starts a fixed-length training countdown.
    - Every `batch_size` collected samples trigger an incremental train.
    - Countdown expiry: final train, then persist (in that order).
    - Predicting: score each keystroke against stats frozen at training time.
    """
    def __init__(
        self,
        extractor: FeatureExtractor,
        model: AnomalyModel,
        store: ProfileStore,
        config: Optional[ProfilerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = CountdownTimer,
        tick_sink: Optional[Callable[[], None]] = None,
        on_update: Optional[Callable[[BehaviorState], None]] = None,
    ):
        self.extractor = extractor
        self.model = model
        self.store = store
        self.cfg = config or ProfilerConfig()
        self.clock = clock
        self.timer_factory = timer_factory
        # where timer ticks go; the runtime routes them through its event bus
        self.tick_sink = tick_sink or self.tick
        self.on_update = on_update

        self._lock = threading.RLock()
        self._timer: Optional[Any] = None
        self._train_start: Optional[float] = None
        self._frozen_stats: Optional[NormalizationStats] = None

        self.phase = Phase.IDLE
        self.time_remaining_s = self._full_countdown()
        self.prediction_score: Optional[float] = None
        self.samples_collected = 0
        self.flagged = False
        self._since_last_batch = 0

    def _full_countdown(self) -> int:
        return int(math.ceil(self.cfg.training_duration_s))

    # ---- observable state ----

    def snapshot(self) -> BehaviorState:
        with self._lock:
            return BehaviorState(
                phase=self.phase,
                time_remaining_s=self.time_remaining_s,
                prediction_score=self.prediction_score,
                samples_collected=self.samples_collected,
                flagged=self.flagged,
            )

    def _notify(self) -> None:
        if self.on_update is None:
            return
        try:
            self.on_update(self.snapshot())
        except Exception as e:
            log.warning("controller.on_update.error", err=str(e))

    def _set_phase(self, phase: Phase) -> None:
        if phase != self.phase:
            log.info("phase.change", src=self.phase.value, dst=phase.value, samples=self.samples_collected)
        self.phase = phase

    # ---- startup ----

    def start(self) -> bool:
        """Resume from a stored profile; True when we went straight to predicting."""
        state = self.store.load()
        if state is None:
            return False
        with self._lock:
            if not self.model.import_state(state):
                log.warning("controller.resume.rejected")
                return False
            self.extractor.adopt_stats(state.feature_stats)
            self._frozen_stats = state.feature_stats
            self.samples_collected = state.training_sample_count
            self.time_remaining_s = 0
            self._set_phase(Phase.PREDICTING)
        log.info("controller.resume", samples=state.training_sample_count)
        self._notify()
        return True

    # ---- events ----

    def handle_key(self, ev: KeyEvent) -> Optional[float]:
        """Route one keystroke by phase. Returns the score while predicting."""
        code = getattr(ev, "key_code", None)
        if isinstance(code, bool) or not isinstance(code, int) or not isinstance(getattr(ev, "t_ms", None), int):
            raise InvalidKeyEvent(f"key event needs integer key_code and t_ms, got {ev!r}")

        score: Optional[float] = None
        with self._lock:
            raw = self.extractor.extract_features(ev)
            if raw is None:
                return None

            if self.phase == Phase.IDLE:
                self._start_training()

            if self.phase == Phase.TRAINING:
                self._collect(self.extractor.normalize(raw))
            elif self.phase == Phase.PREDICTING:
                stats = self._frozen_stats or self.model.feature_stats or self.extractor.stats()
                vec = self.extractor.normalize_with_stats(raw, stats)
                score = self.model.score(vec)
                self.prediction_score = score
                self.flagged = score >= self.cfg.anomaly_threshold
                if self.flagged:
                    log.info("anomaly.flag", score=round(score, 4), interval_ms=raw.time_interval_ms)
        self._notify()
        return score

    def _start_training(self) -> None:
        self._train_start = self.clock()
        self.time_remaining_s = self._full_countdown()
        self._set_phase(Phase.TRAINING)
        self._timer = self.timer_factory(self.cfg.tick_interval_s, self.tick_sink)
        self._timer.start()

    def _collect(self, vec) -> None:
        if not self.model.add_sample(vec, self.extractor.stats()):
            return
        self.samples_collected += 1
        self._since_last_batch += 1
        if self._since_last_batch >= self.cfg.batch_size:
            self._since_last_batch = 0
            if self.model.train(batch_size=self.cfg.batch_size) and self.cfg.checkpoint_on_batch:
                self._persist()

    # ---- countdown ----

    def tick(self) -> None:
        """Recompute remaining time from the start timestamp; expire into predicting."""
        with self._lock:
            if self.phase != Phase.TRAINING or self._train_start is None:
                return
            elapsed = self.clock() - self._train_start
            remaining = max(0.0, self.cfg.training_duration_s - elapsed)
            self.time_remaining_s = int(math.ceil(remaining))
            if remaining <= 0:
                self._finish_training()
        self._notify()

    def _finish_training(self) -> None:
        self._cancel_timer()
        self._set_phase(Phase.PREDICTING)
        self.time_remaining_s = 0
        self._frozen_stats = self.model.feature_stats or self.extractor.stats()
        self.model.train(batch_size=self.cfg.batch_size)
        self._persist()

    def _persist(self) -> bool:
        state = self.model.export_state()
        if state is None:
            log.info("controller.persist.skipped", reason="no model")
            return False
        return self.store.save(state)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()

    def shutdown(self) -> None:
        """Stop the countdown without clearing anything (process exit)."""
        self._cancel_timer()

    # ---- reset ----

    def reset(self) -> None:
        # stop the timer before touching state so no stale tick lands afterwards
        self._cancel_timer()
        with self._lock:
            self._cancel_timer()
            self._train_start = None
            self._frozen_stats = None
            self._set_phase(Phase.IDLE)
            self.time_remaining_s = self._full_countdown()
            self.prediction_score = None
            self.samples_collected = 0
            self.flagged = False
            self._since_last_batch = 0
            self.extractor.reset()
            self.model.reset()
            self.store.clear()
        log.info("controller.reset")
        self._notify()
