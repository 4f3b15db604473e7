# tests/test_behavior_controller.py
# How to run:
#   pytest -q
#
# What this covers:
#   - idle -> training on the first extracted feature, batch trigger every 10 samples
#   - countdown expiry -> predicting, final train then save (in that order)
#   - predicting uses frozen stats and scores learned rhythm low
#   - reset idempotence, stale ticks after reset, resume from a stored profile
#
# Notes:
#   The clock and timer are injected; no threads or sleeps involved.

import pytest

from app.analytics.config import ProfilerConfig
from app.controller.behavior_controller import InvalidKeyEvent
from app.controller.session import Session
from core.hooks.events import KeyEvent, Phase
from core.storage.profile_store import MemoryKV

class FakeClock:
    def __init__(self):
        self.t = 0.0
    def __call__(self):
        return self.t

class FakeTimer:
    def __init__(self, interval_s, on_tick):
        self.interval_s = interval_s
        self.on_tick = on_tick
        self.started = False
        self.cancelled = False
    def start(self):
        self.started = True
    def cancel(self):
        self.cancelled = True

class TimerLog(list):
    def __call__(self, interval_s, on_tick):
        t = FakeTimer(interval_s, on_tick)
        self.append(t)
        return t

def make_session(config=None, backend=None):
    clock, timers = FakeClock(), TimerLog()
    s = Session.create(
        config=config or ProfilerConfig(),
        backend=backend if backend is not None else MemoryKV(),
        clock=clock,
        timer_factory=timers,
    )
    return s, clock, timers

def spy(obj, name, calls):
    orig = getattr(obj, name)
    def wrapper(*a, **kw):
        result = orig(*a, **kw)
        calls.append((name, result))
        return result
    setattr(obj, name, wrapper)

def keys(n, start_ms=1000, step_ms=50, code=None):
    return [KeyEvent(key_code=code if code is not None else 60 + i, t_ms=start_ms + step_ms * i) for i in range(n)]

def test_twelve_events_scenario():
    s, clock, timers = make_session()
    ctl = s.controller
    calls = []
    spy(s.model, "train", calls)

    evs = keys(12)
    ctl.handle_key(evs[0])
    assert ctl.phase == Phase.IDLE
    assert ctl.samples_collected == 0

    ctl.handle_key(evs[1])
    assert ctl.phase == Phase.TRAINING
    assert len(timers) == 1 and timers[0].started
    assert timers[0].interval_s == pytest.approx(0.1)

    for i, ev in enumerate(evs[2:], start=2):
        ctl.handle_key(ev)
        if i < 10:
            assert calls == []
        if i == 10:
            # 10th collected sample comes from the 11th event
            assert calls == [("train", True)]

    st = ctl.snapshot()
    assert st.samples_collected == 11
    assert st.phase == Phase.TRAINING
    assert len(calls) == 1

def test_countdown_remaining_is_computed_from_start():
    s, clock, _ = make_session()
    ctl = s.controller
    assert ctl.snapshot().time_remaining_s == 90
    for ev in keys(3):
        ctl.handle_key(ev)
    clock.t = 30.2
    ctl.tick()
    assert ctl.snapshot().time_remaining_s == 60
    clock.t = 89.95
    ctl.tick()
    assert ctl.snapshot().time_remaining_s == 1
    assert ctl.phase == Phase.TRAINING

def test_expiry_trains_then_saves():
    s, clock, timers = make_session()
    ctl = s.controller
    for ev in keys(15):
        ctl.handle_key(ev)

    calls = []
    spy(s.model, "train", calls)
    spy(s.store, "save", calls)

    clock.t = 90.0
    timers[0].on_tick()        # the timer's callback is controller.tick by default
    assert ctl.phase == Phase.PREDICTING
    assert timers[0].cancelled
    assert [name for name, _ in calls] == ["train", "save"]
    assert calls[1] == ("save", True)
    assert s.store.exists()
    assert ctl.snapshot().time_remaining_s == 0

def test_expiry_without_enough_samples_skips_save():
    s, clock, _ = make_session()
    ctl = s.controller
    for ev in keys(4):
        ctl.handle_key(ev)
    clock.t = 95.0
    ctl.tick()
    assert ctl.phase == Phase.PREDICTING
    assert not s.store.exists()
    # no model yet: neutral score
    assert ctl.handle_key(KeyEvent(key_code=70, t_ms=9000)) == 0.5

def test_below_batch_threshold_does_not_train_or_persist():
    s, _, _ = make_session(ProfilerConfig(checkpoint_on_batch=True))
    for ev in keys(9):          # 8 samples
        s.controller.handle_key(ev)
    assert not s.model.has_model
    assert not s.store.exists()

def test_checkpoint_on_batch_persists_during_training():
    s, _, _ = make_session(ProfilerConfig(checkpoint_on_batch=True))
    for ev in keys(11):         # 10 samples -> one batch
        s.controller.handle_key(ev)
    assert s.controller.phase == Phase.TRAINING
    assert s.store.load().training_sample_count == 10

def test_predicting_scores_learned_rhythm_low():
    s, clock, _ = make_session(ProfilerConfig(learning_rate=0.01))
    ctl = s.controller
    evs = keys(21, code=65)     # same key, 50ms apart -> identical vectors
    for ev in evs:
        ctl.handle_key(ev)
    for _ in range(60):
        s.model.train()
    clock.t = 90.0
    ctl.tick()
    assert ctl.phase == Phase.PREDICTING

    score = ctl.handle_key(KeyEvent(key_code=65, t_ms=evs[-1].t_ms + 50))
    assert score is not None and score < 0.1
    st = ctl.snapshot()
    assert st.prediction_score == score
    assert st.flagged is False
    # no training while predicting
    assert s.model.sample_count == 20

def test_predicting_uses_frozen_stats():
    s, clock, _ = make_session()
    ctl = s.controller
    for ev in keys(12):
        ctl.handle_key(ev)
    clock.t = 90.0
    ctl.tick()
    frozen = s.model.feature_stats
    # a long pause moves the live stats but not the scoring stats
    ctl.handle_key(KeyEvent(key_code=90, t_ms=60_000))
    assert s.extractor.stats().max_time_interval_ms > frozen.max_time_interval_ms
    assert ctl._frozen_stats == frozen

def test_reset_is_idempotent_and_clears_store():
    s, clock, timers = make_session()
    ctl = s.controller
    for ev in keys(15):
        ctl.handle_key(ev)
    clock.t = 90.0
    ctl.tick()
    assert s.store.exists()

    ctl.reset()
    first = ctl.snapshot()
    ctl.reset()
    second = ctl.snapshot()
    assert first == second
    assert second.phase == Phase.IDLE
    assert second.samples_collected == 0
    assert second.prediction_score is None
    assert second.time_remaining_s == 90
    assert not s.store.exists()
    assert not s.model.has_model

def test_reset_cancels_timer_and_ignores_stale_tick():
    s, clock, timers = make_session()
    ctl = s.controller
    for ev in keys(5):
        ctl.handle_key(ev)
    ctl.reset()
    assert timers[0].cancelled
    clock.t = 500.0
    timers[0].on_tick()
    assert ctl.phase == Phase.IDLE
    assert not s.store.exists()

def test_resume_from_stored_profile_skips_training():
    kv = MemoryKV()
    s1, clock, _ = make_session(backend=kv)
    for ev in keys(25):
        s1.controller.handle_key(ev)
    clock.t = 90.0
    s1.controller.tick()
    assert s1.store.exists()

    s2, _, timers = make_session(backend=kv)
    assert s2.controller.start() is True
    st = s2.state()
    assert st.phase == Phase.PREDICTING
    assert st.samples_collected == 24
    assert s2.model.is_ready()
    assert s2.extractor.stats() == s1.model.feature_stats

    s2.controller.handle_key(KeyEvent(key_code=60, t_ms=0))
    score = s2.controller.handle_key(KeyEvent(key_code=61, t_ms=50))
    assert 0.0 <= score <= 1.0
    assert timers == []          # no countdown when resuming

def test_start_without_profile_stays_idle():
    s, _, _ = make_session()
    assert s.controller.start() is False
    assert s.controller.phase == Phase.IDLE

def test_invalid_key_event_raises_without_touching_state():
    kv = MemoryKV()
    s, clock, _ = make_session(backend=kv)
    for ev in keys(15):
        s.controller.handle_key(ev)
    clock.t = 90.0
    s.controller.tick()
    saved = kv.get("typingBehaviorModel")

    with pytest.raises(InvalidKeyEvent):
        s.controller.handle_key(KeyEvent(key_code=None))
    with pytest.raises(InvalidKeyEvent):
        s.controller.handle_key({"timestampMs": 5})
    assert kv.get("typingBehaviorModel") == saved

def test_anomalous_keystroke_is_flagged():
    s, clock, _ = make_session(ProfilerConfig(anomaly_threshold=0.0))
    for ev in keys(12):
        s.controller.handle_key(ev)
    clock.t = 90.0
    s.controller.tick()
    s.controller.handle_key(KeyEvent(key_code=200, t_ms=99_000))
    assert s.controller.snapshot().flagged is True

def test_on_update_receives_snapshots():
    seen = []
    s = Session.create(backend=MemoryKV(), clock=FakeClock(), timer_factory=TimerLog(), on_update=seen.append)
    for ev in keys(3):
        s.controller.handle_key(ev)
    assert seen[-1].phase == Phase.TRAINING
    assert seen[-1].samples_collected == 2
