from __future__ import annotations
from dataclasses import dataclass

@dataclass(frozen=True)
class ProfilerConfig:
    # training phase (seconds)
    training_duration_s: float = 90.0
    tick_interval_s: float = 0.1  # countdown refresh, 10Hz

    # incremental training
    batch_size: int = 10          # train every N collected samples
    epochs: int = 10              # passes over the training set per call
    min_ready_samples: int = 10
    learning_rate: float = 0.001
    seed: int = 42                # weight init + shuffling
    checkpoint_on_batch: bool = False  # persist after every batch, not only at phase end

    # scoring
    score_scale: float = 10.0     # raw MSE × scale, clamped to [0,1]
    default_score: float = 0.5    # model missing / malformed input
    anomaly_threshold: float = 0.5

@dataclass(frozen=True)
class StoreConfig:
    db_path: str = "typing_profile.sqlite3"
    key: str = "typingBehaviorModel"
    format_version: str = "1.0"
