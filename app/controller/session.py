from __future__ import annotations
import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.analytics.autoencoder import AnomalyModel
from app.analytics.config import ProfilerConfig, StoreConfig
from app.controller.behavior_controller import BehaviorController, TimerFactory
from app.controller.countdown import CountdownTimer
from core.features.feature_extractor import FeatureExtractor
from core.hooks.events import BehaviorState
from core.storage.profile_store import ProfileStore, SqliteKV

@dataclass
class Session:
    """One user's profile: extractor, model, store and the controller over them."""
    extractor: FeatureExtractor
    model: AnomalyModel
    store: ProfileStore
    controller: BehaviorController

    @classmethod
    def create(
        cls,
        config: Optional[ProfilerConfig] = None,
        store_config: Optional[StoreConfig] = None,
        backend=None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: TimerFactory = CountdownTimer,
        tick_sink: Optional[Callable[[], None]] = None,
        on_update: Optional[Callable[[BehaviorState], None]] = None,
    ) -> "Session":
        cfg = config or ProfilerConfig()
        scfg = store_config or StoreConfig()
        extractor = FeatureExtractor()
        model = AnomalyModel(cfg)
        store = ProfileStore(
            backend=backend if backend is not None else SqliteKV(scfg.db_path),
            key=scfg.key,
            format_version=scfg.format_version,
        )
        controller = BehaviorController(
            extractor, model, store,
            config=cfg, clock=clock, timer_factory=timer_factory,
            tick_sink=tick_sink, on_update=on_update,
        )
        return cls(extractor=extractor, model=model, store=store, controller=controller)

    def state(self) -> BehaviorState:
        return self.controller.snapshot()

    def reset(self) -> None:
        self.controller.reset()
