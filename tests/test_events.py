# tests/test_events.py
# How to run:
#   From repo root: pytest -q
#
# What this covers:
#   - Auto-setting of EventType by dataclass __post_init__
#   - Stable serialization schema (to_record), including timestamp materialization
#   - Wire names for normalization stats, defaults on missing fields

from core.hooks.events import (
    KeyEvent, TickEvent, EventType, NormalizationStats, BehaviorState, Phase
)

def test_keyevent_auto_etype_and_serialization():
    ev = KeyEvent(key_code=65, t_ms=1234)
    assert ev.etype == EventType.KEY
    rec = ev.to_record()
    assert rec["etype"] == "KEY"
    assert rec["key_code"] == 65
    assert rec["t_ms"] == 1234
    assert "t_utc" in rec and isinstance(rec["t_utc"], str)
    # only codes + timing, never characters
    assert "char" not in rec and "key" not in rec

def test_keyevent_captures_timestamp_when_not_given():
    ev = KeyEvent(key_code=1)
    assert isinstance(ev.t_ms, int) and ev.t_ms > 0

def test_tick_event_type():
    assert TickEvent().etype == EventType.TICK
    assert TickEvent().to_record()["etype"] == "TICK"

def test_stats_wire_names_and_defaults():
    st = NormalizationStats(max_key_code=255, max_time_interval_ms=2500)
    assert st.to_record() == {"maxKeyCode": 255, "maxTimeIntervalMs": 2500}
    assert NormalizationStats.from_record(st.to_record()) == st
    # zero / missing would divide by zero later
    assert NormalizationStats.from_record({"maxKeyCode": 0}) == NormalizationStats(255, 1000)

def test_behavior_state_defaults():
    st = BehaviorState()
    assert st.phase == Phase.IDLE
    assert st.prediction_score is None
    assert st.to_record()["phase"] == "idle"
