from __future__ import annotations
import logging
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import DOMAIN

_LOGGER = logging.getLogger(__name__)

async def async_setup(hass: HomeAssistant, _: dict) -> bool:
    return True                                    # YAML disabled

async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {}
    # fan first: the state sensor hangs off the fan entity
    await hass.config_entries.async_forward_entry_setups(entry, {"fan"})
    await hass.config_entries.async_forward_entry_setups(entry, {"sensor"})
    entry.async_on_unload(entry.add_update_listener(_async_reload_entry))
    return True

async def _async_reload_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    _LOGGER.debug("options changed for %s, reloading", entry.title)
    await hass.config_entries.async_reload(entry.entry_id)

async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unloaded = await hass.config_entries.async_unload_platforms(entry, {"fan", "sensor"})
    if unloaded:
        hass.data[DOMAIN].pop(entry.entry_id, None)
    return unloaded
