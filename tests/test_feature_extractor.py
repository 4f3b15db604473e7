# tests/test_feature_extractor.py
# How to run:
#   pytest -q
#
# What this covers:
#   - First keystroke only seeds history
#   - prev/next key ordering across a stream
#   - Running max interval (grows, never shrinks until reset)
#   - Normalized components stay in [0,1]; frozen-stats normalization

from core.features.feature_extractor import FeatureExtractor
from core.hooks.events import KeyEvent, NormalizationStats, RawFeature

def test_first_event_emits_nothing():
    fx = FeatureExtractor()
    assert fx.extract_features(KeyEvent(key_code=65, t_ms=1000)) is None
    feat = fx.extract_features(KeyEvent(key_code=66, t_ms=1120))
    assert feat == RawFeature(prev_key_code=65, next_key_code=66, time_interval_ms=120)

def test_prev_next_ordering_over_stream():
    fx = FeatureExtractor()
    codes = [72, 69, 76, 76, 79, 32, 87, 79, 82, 76, 68]
    feats = [fx.extract_features(KeyEvent(key_code=c, t_ms=1000 + 40 * i)) for i, c in enumerate(codes)]
    assert feats[0] is None
    for n in range(1, len(codes)):
        assert feats[n].prev_key_code == codes[n - 1]
        assert feats[n].next_key_code == codes[n]
        assert feats[n].time_interval_ms == 40

def test_running_max_interval_grows_and_persists():
    fx = FeatureExtractor()
    fx.extract_features(KeyEvent(key_code=1, t_ms=0))
    fx.extract_features(KeyEvent(key_code=2, t_ms=3000))   # long pause
    assert fx.stats().max_time_interval_ms == 3000
    fx.extract_features(KeyEvent(key_code=3, t_ms=3100))
    assert fx.stats().max_time_interval_ms == 3000
    assert fx.stats().max_key_code == 255

def test_out_of_order_timestamp_counts_as_zero_interval():
    fx = FeatureExtractor()
    fx.extract_features(KeyEvent(key_code=1, t_ms=5000))
    feat = fx.extract_features(KeyEvent(key_code=2, t_ms=4000))
    assert feat.time_interval_ms == 0

def test_normalize_bounds():
    fx = FeatureExtractor()
    for code in (0, 1, 128, 255):
        for dt in (0, 1, 999, 1000, 50_000):
            vec = fx.normalize(RawFeature(code, 255 - code, dt))
            assert len(vec) == 3
            assert all(0.0 <= v <= 1.0 for v in vec)
    # out-of-range codes are clamped
    vec = fx.normalize(RawFeature(400, -3, 10))
    assert vec[0] == 1.0 and vec[1] == 0.0

def test_normalize_values():
    fx = FeatureExtractor()
    vec = fx.normalize(RawFeature(51, 102, 250))
    assert vec == [0.2, 0.4, 0.25]

def test_normalize_with_frozen_stats_ignores_live_stats():
    fx = FeatureExtractor()
    fx.extract_features(KeyEvent(key_code=1, t_ms=0))
    fx.extract_features(KeyEvent(key_code=2, t_ms=4000))   # live max -> 4000
    frozen = NormalizationStats(max_key_code=255, max_time_interval_ms=2000)
    raw = RawFeature(0, 0, 1000)
    assert fx.normalize(raw)[2] == 0.25
    assert fx.normalize_with_stats(raw, frozen)[2] == 0.5

def test_adopt_stats_and_reset():
    fx = FeatureExtractor()
    fx.adopt_stats(NormalizationStats(max_key_code=255, max_time_interval_ms=1800))
    assert fx.stats().max_time_interval_ms == 1800

    fx.extract_features(KeyEvent(key_code=10, t_ms=0))
    fx.reset()
    assert fx.stats() == NormalizationStats(255, 1000)
    # history cleared: next event seeds again
    assert fx.extract_features(KeyEvent(key_code=11, t_ms=10)) is None
