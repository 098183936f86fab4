from __future__ import annotations
from typing import Any, Optional, Callable
import logging
from homeassistant.core import HomeAssistant, callback
from homeassistant.components import mqtt
from homeassistant.components.fan import FanEntity, FanEntityFeature
from homeassistant.helpers.device_registry import DeviceInfo
from homeassistant.helpers.event import async_call_later
from homeassistant.const import CONF_NAME
from homeassistant.config_entries import ConfigEntry
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from .const import (
    DOMAIN,
    CONF_GET_ACTIVE_TOPIC,
    CONF_GET_ROTATION_SPEED_TOPIC,
    CONF_SET_ACTIVE_TOPIC,
    MODE_OFF,
    MODE_TURBO,
    PRESET_TURBO,
    PROP_CURRENT_STATE,
    PROP_ROTATION_SPEED,
    TURBO_STEP,
)
from .codec import CurrentPurifierState, SpeedModeCodec

_LOGGER = logging.getLogger(__name__)


class BalluPurifierFan(FanEntity):
    _attr_supported_features = (
        FanEntityFeature.SET_SPEED
        | FanEntityFeature.TURN_ON
        | FanEntityFeature.TURN_OFF
        | FanEntityFeature.PRESET_MODE
    )
    _attr_preset_modes = [PRESET_TURBO]
    _attr_should_poll = False
    _attr_translation_key = "ballu_asp100"
    # steps 1-7 + Turbo; step 0 is "running, idle"
    _attr_speed_count = TURBO_STEP

    def __init__(self,
                 hass: HomeAssistant,
                 name: str,
                 unique_id: str,
                 config: dict[str, Any]):
        self.hass = hass
        self._attr_name      = name
        self._attr_unique_id = f"ballu_asp100_{unique_id}"
        self._attr_percentage: Optional[int] = None
        self._config = config
        self._current_state: Optional[CurrentPurifierState] = None
        self._state_sensor = None           # set once the state sensor is added
        self._outbox: list[tuple[str, str]] = []
        self._attr_device_info = DeviceInfo(
            identifiers={(DOMAIN, unique_id)},
            manufacturer="Ballu",
            model="ASP-100",
        )
        self.codec = SpeedModeCodec(
            config,
            publish=self._queue_publish,
            notify=self._handle_notify,
            schedule=self._schedule,
            logger=_LOGGER,
        )

    # ─────── codec collaborators ───────
    def _queue_publish(self, topic: str, payload: str) -> None:
        self._outbox.append((topic, payload))

    async def _flush(self) -> None:
        """Send what this call queued, in order; a failed send drops the rest."""
        batch, self._outbox = self._outbox, []
        for topic, payload in batch:
            await mqtt.async_publish(self.hass, topic, payload)

    def _schedule(self, delay: float, action: Callable[[], None]) -> Callable[[], None]:
        @callback
        def _fire(_now) -> None:
            action()
        return async_call_later(self.hass, delay, _fire)

    @callback
    def _handle_notify(self, prop: str, value: Any) -> None:
        if prop == PROP_ROTATION_SPEED:
            self._attr_percentage = value
        elif prop == PROP_CURRENT_STATE:
            self._current_state = value
            if self._state_sensor is not None:
                self._state_sensor.async_write_ha_state()
        self.async_write_ha_state()

    # ─────── FanEntity API ───────
    @property
    def current_state(self) -> Optional[CurrentPurifierState]:
        return self._current_state

    @property
    def is_on(self) -> Optional[bool]:
        if self.codec.mode is None:
            return None
        return self.codec.mode != MODE_OFF

    @property
    def preset_mode(self) -> Optional[str]:
        return PRESET_TURBO if self.codec.mode == MODE_TURBO else None

    async def async_set_percentage(self, percentage: int) -> None:
        self.codec.encode_rotation_speed(percentage)
        await self._flush()

    async def async_set_preset_mode(self, preset_mode: str) -> None:
        if preset_mode != PRESET_TURBO:
            raise ValueError(f"Unsupported preset {preset_mode}")
        self.codec.request_turbo()
        await self._flush()

    async def async_turn_on(self,
                            percentage: int | None = None,
                            preset_mode: str | None = None,
                            **kwargs: Any) -> None:
        if preset_mode is not None:
            await self.async_set_preset_mode(preset_mode)
        elif percentage is not None:
            await self.async_set_percentage(percentage)
        else:
            await self._send_active(True)

    async def async_turn_off(self, **kwargs: Any) -> None:
        await self._send_active(False)

    async def _send_active(self, on: bool) -> None:
        topic = self._config.get(CONF_SET_ACTIVE_TOPIC)
        if topic:
            self._queue_publish(topic, self.codec.encode_active(on))
        await self._flush()

    # ─────── MQTT state topics ───────
    async def async_added_to_hass(self) -> None:
        mode_topic  = self._config.get(CONF_GET_ACTIVE_TOPIC)
        speed_topic = self._config.get(CONF_GET_ROTATION_SPEED_TOPIC)

        @callback
        def mode_received(msg) -> None:
            self.codec.decode_active(msg.payload)
            self.async_write_ha_state()

        @callback
        def speed_received(msg) -> None:
            self.codec.decode_rotation_speed(msg.payload)

        if mode_topic:
            self.async_on_remove(
                await mqtt.async_subscribe(self.hass, mode_topic, mode_received)
            )
        if speed_topic:
            self.async_on_remove(
                await mqtt.async_subscribe(self.hass, speed_topic, speed_received)
            )

    async def async_will_remove_from_hass(self) -> None:
        self.codec.cancel_pending()
        await super().async_will_remove_from_hass()

    @property
    def extra_state_attributes(self):
        return {
            "device_mode": self.codec.mode,
            "device_step": self.codec.step,
            "turbo_pending": self.codec.reconcile_pending,
        }


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    config = {**entry.data, **entry.options}
    name = config.get(CONF_NAME) or "Ballu ASP-100"
    fan = BalluPurifierFan(hass, name, entry.unique_id or entry.entry_id, config)
    async_add_entities([fan])
    hass.data[DOMAIN][entry.entry_id]["fan_entity"] = fan   # ← sensor reads through it
