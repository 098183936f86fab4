import asyncio
import logging
import pytest

from custom_components.ballu_asp100.const import (
    CONF_SET_ACTIVE_TOPIC,
    CONF_SET_ROTATION_SPEED_TOPIC,
    CONF_TURBO_RECONCILE_MS,
    PROP_CURRENT_STATE,
    PROP_ROTATION_SPEED,
)
from custom_components.ballu_asp100.codec import (
    CurrentPurifierState,
    SpeedModeCodec,
    clamp,
    percent_to_step,
    step_to_percent,
)

CONFIG = {
    CONF_SET_ACTIVE_TOPIC: "control/mode",
    CONF_SET_ROTATION_SPEED_TOPIC: "control/speed",
}

# ---- helpers ----
class FakeScheduler:
    """Records timers instead of arming them; ``fire()`` runs the live ones."""
    def __init__(self):
        self.timers = []

    def __call__(self, delay, action):
        timer = {"delay": delay, "action": action, "live": True}
        self.timers.append(timer)
        def cancel():
            timer["live"] = False
        return cancel

    @property
    def live(self):
        return [t for t in self.timers if t["live"]]

    def fire(self):
        for timer in self.live:
            timer["live"] = False
            timer["action"]()


class Harness:
    def __init__(self, config=CONFIG):
        self.published = []
        self.notified = []
        self.scheduler = FakeScheduler()
        self.codec = SpeedModeCodec(
            config,
            publish=lambda topic, payload: self.published.append((topic, payload)),
            notify=lambda prop, value: self.notified.append((prop, value)),
            schedule=self.scheduler,
        )

    def speed_notifications(self):
        return [v for p, v in self.notified if p == PROP_ROTATION_SPEED]


@pytest.fixture
def h():
    return Harness()

# ---- converter ----
def test_percent_to_step_fixed_points():
    assert percent_to_step(0) == 0
    assert percent_to_step(50) == 4
    assert percent_to_step(100) == 8
    assert percent_to_step(37) == 3

def test_percent_to_step_range_and_monotonic():
    prev = 0
    for tenth in range(0, 1001):
        step = percent_to_step(tenth / 10)
        assert 0 <= step <= 8
        assert step >= prev
        prev = step

def test_percent_to_step_rounds_half_up():
    assert percent_to_step(6.25) == 1
    assert percent_to_step(18.75) == 2

def test_percent_to_step_clamps_and_rejects():
    assert percent_to_step(150) == 8
    assert percent_to_step(-10) == 0
    assert percent_to_step("62.5") == 5
    assert percent_to_step("abc") is None
    assert percent_to_step(None) is None

def test_step_to_percent():
    assert step_to_percent(0) == 0
    assert step_to_percent(8) == 100
    assert step_to_percent(3) == 38
    assert step_to_percent(7) == 88
    assert step_to_percent(12) == 100
    assert step_to_percent("x") is None
    for step in range(9):
        assert 0 <= step_to_percent(step) <= 100

def test_round_trip_is_quantized_not_exact():
    # 3 -> 38 % -> 3 survives, but an arbitrary slider value does not
    assert percent_to_step(step_to_percent(3)) == 3
    assert step_to_percent(percent_to_step(40)) == 38

def test_clamp_parses_tokens():
    assert clamp(b"5", 0, 7) == 5
    assert clamp(" 9 ", 0, 7) == 7
    assert clamp("nan", 0, 7) is None
    assert clamp("", 0, 7) is None

def test_clamp_follows_wire_number_syntax():
    assert clamp("0x4", 0, 7) == 4
    assert clamp("0b11", 0, 7) == 3
    assert clamp("0xZZ", 0, 7) is None
    assert clamp("1_0", 0, 100) is None
    assert clamp("inf", 0, 7) is None
    assert clamp("-Infinity", 0, 7) is None

# ---- encode ----
def test_encode_37_sends_mode_1_and_step_3(h):
    assert h.codec.encode_rotation_speed(37) is None
    assert h.published == [("control/mode", "1"), ("control/speed", "3")]
    assert h.scheduler.timers == []

def test_encode_100_sends_turbo_and_arms_timer(h):
    assert h.codec.encode_rotation_speed(100) is None
    assert h.published == [("control/mode", "4")]
    assert len(h.scheduler.live) == 1
    assert h.scheduler.live[0]["delay"] == 1.0
    assert h.codec.reconcile_pending

def test_encode_non_numeric_sends_nothing(h):
    h.codec.encode_rotation_speed("fast")
    assert h.published == []

def test_rearming_cancels_previous_timer(h):
    h.codec.encode_rotation_speed(100)
    h.codec.encode_rotation_speed(99)
    assert len(h.scheduler.timers) == 2
    assert len(h.scheduler.live) == 1
    assert h.scheduler.live[0] is h.scheduler.timers[1]

def test_missing_speed_topic_skips_only_that_publish():
    h = Harness({CONF_SET_ACTIVE_TOPIC: "control/mode"})
    h.codec.encode_rotation_speed(25)
    assert h.published == [("control/mode", "1")]

def test_missing_mode_topic_still_arms_timer():
    h = Harness({})
    h.codec.encode_rotation_speed(100)
    assert h.published == []
    assert h.codec.reconcile_pending

def test_encode_active():
    assert SpeedModeCodec.encode_active(True) == "1"
    assert SpeedModeCodec.encode_active(False) == "0"

def test_fallback_encode_matches_primary_path():
    primary, fallback = Harness(), Harness()
    for pct in (0, 37, 100, "abc"):
        primary.codec.encode_rotation_speed(pct)
        assert fallback.codec.encode(pct, {"property": PROP_ROTATION_SPEED}) is None
    assert fallback.published == primary.published
    assert len(fallback.scheduler.timers) == len(primary.scheduler.timers) == 1

def test_fallback_encode_passes_other_properties_through(h):
    assert h.codec.encode(True, {"property": "active"}) is True
    assert h.codec.encode("x") == "x"
    assert h.published == []

def test_property_table_dispatch(h):
    h.codec.properties["rotationSpeed"]["encode"](50)
    assert h.published == [("control/mode", "1"), ("control/speed", "4")]
    assert h.codec.properties["currentAirPurifierState"]["decode"]("0") == CurrentPurifierState.INACTIVE

# ---- decode / derived state ----
def test_mode_1_speed_0_is_idle_at_zero(h):
    assert h.codec.decode_active("1") is True
    assert h.codec.decode_rotation_speed("0") == 0
    assert h.codec.current_state == CurrentPurifierState.IDLE
    assert (PROP_CURRENT_STATE, CurrentPurifierState.IDLE) in h.notified
    assert h.speed_notifications() == [0]

def test_turbo_reports_100_even_when_step_is_idle(h):
    h.codec.decode_current_state("4")
    assert h.codec.decode_rotation_speed("0") == 100
    # Turbo shows 100 % while the [1,5] rule still says IDLE for step 0
    assert h.codec.current_state == CurrentPurifierState.IDLE

def test_turbo_with_unknown_step(h):
    assert h.codec.decode_current_state("4") is None
    assert h.codec.reported_percent == 100
    assert h.notified == [(PROP_ROTATION_SPEED, 100)]

def test_mode_0_is_inactive(h):
    assert h.codec.decode_active("0") is False
    assert h.codec.current_state == CurrentPurifierState.INACTIVE
    assert h.codec.reported_percent is None
    assert h.speed_notifications() == []
    h.codec.decode_rotation_speed("3")
    assert h.codec.reported_percent == 38
    assert h.codec.current_state == CurrentPurifierState.INACTIVE

def test_unknown_mode_counts_as_purifying(h):
    h.codec.decode_active("9")
    assert h.codec.current_state == CurrentPurifierState.PURIFYING

def test_running_mode_with_step(h):
    h.codec.decode_active("2")
    h.codec.decode_rotation_speed("5")
    assert h.codec.current_state == CurrentPurifierState.PURIFYING
    assert h.codec.reported_percent == 63

def test_speed_without_mode_notifies_percent_only(h):
    assert h.codec.decode_rotation_speed("2") == 25
    assert h.notified == [(PROP_ROTATION_SPEED, 25)]

def test_speed_is_clamped(h):
    h.codec.decode_rotation_speed("12")
    assert h.codec.step == 7
    h.codec.decode_rotation_speed(-1)
    assert h.codec.step == 0

def test_mode_reobserved_reemits(h):
    h.codec.decode_active("1")
    h.codec.decode_rotation_speed("1")
    h.notified.clear()
    h.codec.decode_active("1")
    assert h.notified == [
        (PROP_CURRENT_STATE, CurrentPurifierState.PURIFYING),
        (PROP_ROTATION_SPEED, 13),
    ]

def test_non_numeric_payloads_are_ignored(h):
    h.codec.decode_active("1")
    h.codec.decode_rotation_speed("3")
    assert h.codec.decode_active("abc") is True
    assert h.codec.decode_rotation_speed("abc") == 38
    assert h.codec.decode_current_state(None) == CurrentPurifierState.PURIFYING
    assert (h.codec.mode, h.codec.step) == (1, 3)

def test_non_numeric_mode_before_any_state(h):
    assert h.codec.decode_active("abc") is None
    assert h.codec.mode is None
    assert h.notified == []

# ---- Turbo reconciliation ----
def test_confirmed_turbo_cancels_reconcile(h):
    h.codec.encode_rotation_speed(100)
    h.codec.decode_active("4")
    assert not h.codec.reconcile_pending
    assert h.scheduler.live == []
    h.notified.clear()
    h.scheduler.fire()
    assert h.notified == []

def test_unconfirmed_turbo_corrects_slider_once(h, caplog):
    h.codec.decode_active("1")
    h.codec.decode_rotation_speed("3")
    h.codec.encode_rotation_speed(100)
    h.notified.clear()
    with caplog.at_level(logging.WARNING):
        h.scheduler.fire()
    assert h.notified == [(PROP_ROTATION_SPEED, 38)]
    assert "Turbo not engaged" in caplog.text
    assert not h.codec.reconcile_pending
    h.scheduler.fire()
    assert h.notified == [(PROP_ROTATION_SPEED, 38)]

def test_unconfirmed_turbo_without_known_step_stays_silent(h):
    h.codec.decode_active("1")
    h.codec.encode_rotation_speed(100)
    h.notified.clear()
    h.scheduler.fire()
    assert h.notified == []

def test_cancel_pending(h):
    h.codec.encode_rotation_speed(100)
    h.codec.cancel_pending()
    assert h.scheduler.live == []
    h.codec.cancel_pending()

@pytest.mark.parametrize(
    "value, expected",
    [(None, 1000), ("abc", 1000), (0, 1000), (-5, 1000), ("2500", 2500), (250.5, 250.5)],
)
def test_reconcile_delay_config(value, expected):
    h = Harness({**CONFIG, CONF_TURBO_RECONCILE_MS: value})
    assert h.codec.reconcile_delay_ms == expected

@pytest.mark.asyncio
async def test_default_scheduler_runs_on_event_loop():
    notified = []
    codec = SpeedModeCodec(
        {**CONFIG, CONF_TURBO_RECONCILE_MS: 10},
        publish=lambda topic, payload: None,
        notify=lambda prop, value: notified.append((prop, value)),
    )
    codec.decode_rotation_speed("2")
    notified.clear()
    codec.encode_rotation_speed(100)
    assert codec.reconcile_pending
    await asyncio.sleep(0.1)
    assert notified == [(PROP_ROTATION_SPEED, 25)]
    assert not codec.reconcile_pending

def test_confirmed_turbo_cancels_before_emitting(h):
    seen = []
    h.codec._notify = lambda prop, value: seen.append((prop, h.codec.reconcile_pending))
    h.codec.encode_rotation_speed(100)
    h.codec.decode_active("4")
    assert seen == [(PROP_ROTATION_SPEED, False)]
