# core/features/feature_extractor.py
from __future__ import annotations
from dataclasses import replace
from typing import List, Optional

from core.hooks.events import KeyEvent, RawFeature, NormalizationStats

MAX_KEY_CODE = 255
DEFAULT_MAX_INTERVAL_MS = 1000

NormalizedVector = List[float]

def _clamp_code(code: int, max_code: int) -> int:
    return min(max(int(code), 0), max_code)

class FeatureExtractor:
    """
    Turns consecutive keystrokes into (prev key, next key, interval) triples.
    - First event after construction/reset only seeds history.
    - Tracks the largest interval seen so far for time normalization.
    - No characters are kept, only key codes + timing.
    """
    def __init__(self):
        self._last_key: Optional[int] = None
        self._last_t_ms: Optional[int] = None
        self._stats = NormalizationStats(MAX_KEY_CODE, DEFAULT_MAX_INTERVAL_MS)

    def extract_features(self, ev: KeyEvent) -> Optional[RawFeature]:
        code = int(ev.key_code or 0)
        t_ms = int(ev.t_ms)

        if self._last_key is None or self._last_t_ms is None:
            self._last_key = code
            self._last_t_ms = t_ms
            return None

        # out-of-order timestamps count as simultaneous
        interval = max(0, t_ms - self._last_t_ms)
        if interval > self._stats.max_time_interval_ms:
            self._stats = replace(self._stats, max_time_interval_ms=interval)

        feat = RawFeature(prev_key_code=self._last_key, next_key_code=code, time_interval_ms=interval)
        self._last_key = code
        self._last_t_ms = t_ms
        return feat

    def normalize(self, raw: RawFeature) -> NormalizedVector:
        return self.normalize_with_stats(raw, self._stats)

    def normalize_with_stats(self, raw: RawFeature, stats: NormalizationStats) -> NormalizedVector:
        max_code = stats.max_key_code or MAX_KEY_CODE
        max_dt = stats.max_time_interval_ms or DEFAULT_MAX_INTERVAL_MS
        return [
            _clamp_code(raw.prev_key_code, max_code) / max_code,
            _clamp_code(raw.next_key_code, max_code) / max_code,
            min(max(raw.time_interval_ms, 0) / max_dt, 1.0),
        ]

    def stats(self) -> NormalizationStats:
        # frozen dataclass; safe to hand out
        return self._stats

    def adopt_stats(self, stats: Optional[NormalizationStats]) -> None:
        if stats is None:
            return
        self._stats = NormalizationStats(
            max_key_code=stats.max_key_code or MAX_KEY_CODE,
            max_time_interval_ms=stats.max_time_interval_ms or DEFAULT_MAX_INTERVAL_MS,
        )

    def reset(self) -> None:
        self._last_key = None
        self._last_t_ms = None
        self._stats = replace(self._stats, max_time_interval_ms=DEFAULT_MAX_INTERVAL_MS)
