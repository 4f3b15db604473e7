from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List

from core.hooks.events import NormalizationStats

@dataclass
class ModelState:
    """Plain-data snapshot of a trained profile (weights + stats + sample count)."""
    weights: List[Any] = field(default_factory=list)  # kernel, bias per dense layer
    feature_stats: NormalizationStats = field(default_factory=NormalizationStats)
    training_sample_count: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "weights": self.weights,
            "featureStats": self.feature_stats.to_record(),
            "trainingSampleCount": self.training_sample_count,
        }

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "ModelState":
        weights = rec["weights"]
        if not isinstance(weights, list) or not weights:
            raise ValueError("modelState.weights must be a non-empty list")
        stats = rec.get("featureStats")
        if not isinstance(stats, dict):
            raise ValueError("modelState.featureStats missing")
        return cls(
            weights=weights,
            feature_stats=NormalizationStats.from_record(stats),
            training_sample_count=int(rec.get("trainingSampleCount") or 0),
        )

@dataclass
class PersistedRecord:
    model_state: ModelState
    timestamp_ms: int
    format_version: str

    def to_record(self) -> Dict[str, Any]:
        return {
            "modelState": self.model_state.to_record(),
            "timestampMs": self.timestamp_ms,
            "formatVersion": self.format_version,
        }
