from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Dict, Any
import time
from datetime import datetime, timezone

# --- timing helpers ---
def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")

def now_ms() -> int:
    # Wall-clock milliseconds; intervals between keystrokes are measured on this
    return int(time.time() * 1000)

# --- core enums ---
class EventType(Enum):
    """Top-level classifier for event routing on the bus."""
    KEY = auto()
    TICK = auto()

class Phase(Enum):
    IDLE = "idle"
    TRAINING = "training"
    PREDICTING = "predicting"

# --- base event ---
@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all bus events."""
    etype: EventType = field(init=False)         # auto-set by subclasses
    t_utc: Optional[str] = None                  # lazy; materialized on serialize

    def to_record(self) -> Dict[str, Any]:
        return {
            "etype": self.etype.name,
            "t_utc": self.t_utc or utc_iso(),
        }

# --- key event ---
@dataclass(frozen=True)
class KeyEvent(BaseEvent):
    """One physical keystroke: key code + capture time, never the character."""
    key_code: Optional[int] = None
    t_ms: int = field(default_factory=now_ms)

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.KEY)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "key_code": self.key_code,
            "t_ms": self.t_ms,
        })
        return base

# --- countdown tick ---
@dataclass(frozen=True)
class TickEvent(BaseEvent):
    """Posted by the countdown timer; the consumer turns it into controller.tick()."""

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.TICK)

# --- feature records ---
@dataclass(frozen=True)
class RawFeature:
    prev_key_code: int
    next_key_code: int
    time_interval_ms: int

@dataclass(frozen=True)
class NormalizationStats:
    max_key_code: int = 255
    max_time_interval_ms: int = 1000

    def to_record(self) -> Dict[str, Any]:
        return {
            "maxKeyCode": self.max_key_code,
            "maxTimeIntervalMs": self.max_time_interval_ms,
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "NormalizationStats":
        # zero/missing values would divide by zero; fall back to the defaults
        return cls(
            max_key_code=int(rec.get("maxKeyCode") or 255),
            max_time_interval_ms=int(rec.get("maxTimeIntervalMs") or 1000),
        )

# --- observable controller state ---
@dataclass(frozen=True)
class BehaviorState:
    """Snapshot handed to display glue (window, CLI)."""
    phase: Phase = Phase.IDLE
    time_remaining_s: int = 90
    prediction_score: Optional[float] = None
    samples_collected: int = 0
    flagged: bool = False

    def to_record(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "time_remaining_s": self.time_remaining_s,
            "prediction_score": self.prediction_score,
            "samples_collected": self.samples_collected,
            "flagged": self.flagged,
        }
