from __future__ import annotations
from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from .codec import CurrentPurifierState
from .const import DOMAIN

STATE_OPTIONS = [s.name.lower() for s in CurrentPurifierState]


class BalluPurifierStateSensor(SensorEntity):
    """INACTIVE / IDLE / PURIFYING as derived by the fan's codec."""
    _attr_should_poll = False
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = STATE_OPTIONS
    _attr_translation_key = "current_purifier_state"

    def __init__(self, fan_entity):
        self.fan = fan_entity
        self.hass = fan_entity.hass
        self._attr_name = f"{fan_entity._attr_name} State"
        self._attr_unique_id = f"{fan_entity._attr_unique_id}_state"
        self._attr_device_info = fan_entity._attr_device_info

    async def async_added_to_hass(self) -> None:
        # the fan only writes through us once we have an entity_id
        self.fan._state_sensor = self
        await super().async_added_to_hass()

    async def async_will_remove_from_hass(self) -> None:
        if self.fan._state_sensor is self:
            self.fan._state_sensor = None
        await super().async_will_remove_from_hass()

    @property
    def native_value(self):
        state = self.fan.current_state
        return None if state is None else state.name.lower()


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    fan_entity = hass.data[DOMAIN][entry.entry_id]["fan_entity"]
    async_add_entities([BalluPurifierStateSensor(fan_entity)])
