"""
Pure-python speed/mode codec for the Ballu ASP-100 purifier.

Bridges a 0-100 % rotation-speed slider and a device that only knows
steps 0-7 plus a separate Turbo mode (mode 4).  No Home Assistant
dependency; the fan entity hands in ``publish``/``notify``/``schedule``.
"""
from __future__ import annotations
import asyncio
import logging
import math
from enum import IntEnum
from typing import Any, Callable, Mapping, Optional, Union

from .const import (
    CONF_SET_ACTIVE_TOPIC,
    CONF_SET_ROTATION_SPEED_TOPIC,
    CONF_TURBO_RECONCILE_MS,
    DEFAULT_TURBO_RECONCILE_MS,
    MAX_STEP,
    MODE_OFF,
    MODE_ON,
    MODE_TURBO,
    PERCENT_PER_STEP,
    PROP_ACTIVE,
    PROP_CURRENT_STATE,
    PROP_ROTATION_SPEED,
    RUNNING_MODES,
    TURBO_STEP,
)

_LOGGER = logging.getLogger(__name__)

Number    = Union[int, float]
Publish   = Callable[[str, str], None]
Notify    = Callable[[str, Any], None]
Cancel    = Callable[[], None]
Schedule  = Callable[[float, Callable[[], None]], Cancel]


class CurrentPurifierState(IntEnum):
    INACTIVE  = 0
    IDLE      = 1
    PURIFYING = 2


# ───────── number helpers ──────────
def _to_number(value: Any) -> Optional[Number]:
    """Parse an inbound token; ``None`` when it is not a finite number."""
    if isinstance(value, (bytes, bytearray)):
        value = value.decode(errors="replace")
    if isinstance(value, str):
        value = value.strip()
        if "_" in value:                       # "1_0" is not a number on the wire
            return None
        if value[:2].lower() in ("0x", "0o", "0b"):
            try:
                return int(value, 0)
            except ValueError:
                return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(n):
        return None
    return int(n) if n.is_integer() else n

def clamp(value: Any, low: Number, high: Number) -> Optional[Number]:
    n = _to_number(value)
    if n is None:
        return None
    return max(low, min(high, n))

def round_half_up(value: float) -> int:
    """Round half away from zero (inputs here are never negative)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


# ───────── converter ──────────
def percent_to_step(pct: Any) -> Optional[int]:
    """0-100 % → step 0-8, where 8 is the Turbo request."""
    p = clamp(pct, 0, 100)
    if p is None:
        return None
    return round_half_up(p / PERCENT_PER_STEP)

def step_to_percent(step: Any) -> Optional[int]:
    """Step 0-8 → 0-100 %.  Step 8 is exactly 100."""
    s = clamp(step, 0, TURBO_STEP)
    if s is None:
        return None
    if s == TURBO_STEP:
        return 100
    return round_half_up(s / TURBO_STEP * 100)


def _coerce_delay_ms(value: Any) -> Number:
    n = _to_number(value)
    if n is None or n <= 0:
        return DEFAULT_TURBO_RECONCILE_MS
    return n

def loop_scheduler(delay: float, callback: Callable[[], None]) -> Cancel:
    """Default ``Schedule`` built on the running asyncio loop."""
    handle = asyncio.get_running_loop().call_later(delay, callback)
    return handle.cancel


class SpeedModeCodec:
    """
    Per-device translator.  Tracks the last reported mode and step,
    derives the reported percentage and the current purifier state, and
    guards Turbo requests with a single-shot reconciliation timer.
    """

    def __init__(self,
                 config: Mapping[str, Any],
                 publish: Publish,
                 notify: Notify,
                 *,
                 schedule: Schedule | None = None,
                 logger: logging.Logger | None = None):
        self._publish   = publish
        self._notify    = notify
        self._schedule  = schedule or loop_scheduler
        self._log       = logger or _LOGGER
        self._mode_set_topic  = config.get(CONF_SET_ACTIVE_TOPIC) or None
        self._speed_set_topic = config.get(CONF_SET_ROTATION_SPEED_TOPIC) or None
        self.reconcile_delay_ms = _coerce_delay_ms(config.get(CONF_TURBO_RECONCILE_MS))

        self.mode: Optional[Number] = None
        self.step: Optional[Number] = None
        self._cancel_reconcile: Cancel | None = None

        self.properties: dict[str, dict[str, Callable[..., Any]]] = {
            PROP_ACTIVE: {
                "encode": self.encode_active,
                "decode": self.decode_active,
            },
            PROP_ROTATION_SPEED: {
                "encode": self.encode_rotation_speed,
                "decode": self.decode_rotation_speed,
            },
            PROP_CURRENT_STATE: {
                "decode": self.decode_current_state,
            },
        }
        self._log.debug("speed/mode codec initialized (reconcile %sms)",
                        self.reconcile_delay_ms)

    # ─────── derived state ───────
    @property
    def current_state(self) -> Optional[CurrentPurifierState]:
        if self.mode is None:
            return None
        if self.mode == MODE_OFF:
            return CurrentPurifierState.INACTIVE
        if self.mode in RUNNING_MODES:
            if self.step is None:
                return None
            if self.step == 0:
                return CurrentPurifierState.IDLE
            return CurrentPurifierState.PURIFYING
        # unknown modes count as running
        return CurrentPurifierState.PURIFYING

    @property
    def reported_percent(self) -> Optional[int]:
        if self.mode == MODE_TURBO:
            return 100
        if self.step is None:
            return None
        return step_to_percent(self.step)

    def _emit_derived(self) -> None:
        state = self.current_state
        if state is not None:
            self._notify(PROP_CURRENT_STATE, state)
        pct = self.reported_percent
        if pct is not None:
            self._notify(PROP_ROTATION_SPEED, pct)

    # ─────── state tracker ───────
    def observe_mode(self, raw: Any) -> None:
        m = _to_number(raw)
        if m is not None:
            self.mode = m
        self._cancel_reconcile_if_engaged()
        self._emit_derived()

    def observe_speed(self, raw: Any) -> None:
        s = clamp(raw, 0, MAX_STEP)
        if s is not None:
            self.step = s
        self._emit_derived()

    # ─────── Turbo reconciliation ───────
    @property
    def reconcile_pending(self) -> bool:
        return self._cancel_reconcile is not None

    def request_turbo(self) -> None:
        self._send(self._mode_set_topic, str(MODE_TURBO))
        self.cancel_pending()
        self._cancel_reconcile = self._schedule(
            self.reconcile_delay_ms / 1000, self._on_reconcile_timeout
        )

    def cancel_pending(self) -> None:
        if self._cancel_reconcile is not None:
            self._cancel_reconcile()
            self._cancel_reconcile = None

    def _cancel_reconcile_if_engaged(self) -> None:
        if self.mode == MODE_TURBO:
            self.cancel_pending()

    def _on_reconcile_timeout(self) -> None:
        self._cancel_reconcile = None
        if self.mode == MODE_TURBO:
            return
        pct = self.reported_percent
        if pct is not None:
            self._log.warning("Turbo not engaged; correcting slider to %s%%", pct)
            self._notify(PROP_ROTATION_SPEED, pct)

    # ─────── encode ───────
    def _send(self, topic: str | None, payload: str) -> None:
        if topic:
            self._publish(topic, payload)

    @staticmethod
    def encode_active(value: Any) -> str:
        return "1" if value else "0"

    def encode_rotation_speed(self, pct: Any) -> None:
        """
        Translate a slider percentage into device commands.  Always
        returns ``None``: the raw percentage itself is never published.
        """
        step = percent_to_step(pct)
        if step is None:
            return None
        self._log.debug("set rotationSpeed %s%% -> step %s", pct, step)
        if step == TURBO_STEP:
            self.request_turbo()
        else:
            self._send(self._mode_set_topic, str(MODE_ON))      # ensure running
            self._send(self._speed_set_topic, str(step))
        return None

    def encode(self, value: Any, info: Mapping[str, Any] | None = None) -> Any:
        """
        Catch-all encode for hosts whose per-property dispatch misses.
        ``info`` is the call metadata; its ``"property"`` tag picks the path.
        """
        if info and info.get("property") == PROP_ROTATION_SPEED:
            return self.encode_rotation_speed(value)
        return value

    # ─────── decode ───────
    def decode_active(self, raw: Any) -> Optional[bool]:
        self.observe_mode(raw)
        m = _to_number(raw)
        if m is None:
            # unparsable: answer with what we already know
            return None if self.mode is None else self.mode != MODE_OFF
        return m != MODE_OFF

    def decode_rotation_speed(self, raw: Any) -> Optional[int]:
        self.observe_speed(raw)
        return self.reported_percent

    def decode_current_state(self, raw: Any) -> Optional[CurrentPurifierState]:
        self.observe_mode(raw)
        return self.current_state
