from __future__ import annotations
import logging
import voluptuous as vol
from homeassistant import config_entries
from homeassistant.const import CONF_NAME
from homeassistant.core import callback
from homeassistant.helpers.selector import selector
from .const import (
    DOMAIN,
    CONF_GET_ACTIVE_TOPIC,
    CONF_GET_ROTATION_SPEED_TOPIC,
    CONF_SET_ACTIVE_TOPIC,
    CONF_SET_ROTATION_SPEED_TOPIC,
    CONF_TURBO_RECONCILE_MS,
    DEFAULT_TURBO_RECONCILE_MS,
    TOPIC_KEYS,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_NAME = "Ballu ASP-100"
DEFAULT_TOPICS = {
    CONF_SET_ACTIVE_TOPIC:         "ballu/control/mode",
    CONF_GET_ACTIVE_TOPIC:         "ballu/state/mode",
    CONF_SET_ROTATION_SPEED_TOPIC: "ballu/control/speed",
    CONF_GET_ROTATION_SPEED_TOPIC: "ballu/state/speed",
}


def _topics_schema(defaults: dict) -> dict:
    return {
        vol.Optional(key, default=defaults.get(key, "")): selector({"text": {}})
        for key in TOPIC_KEYS
    }

def _delay_field(default) -> dict:
    return {
        vol.Optional(CONF_TURBO_RECONCILE_MS, default=default): selector(
            {"number": {"min": 1, "max": 60000, "step": 1,
                        "unit_of_measurement": "ms", "mode": "box"}}
        ),
    }

def _validate(user_input: dict) -> dict:
    errors = {}
    delay = user_input.get(CONF_TURBO_RECONCILE_MS, DEFAULT_TURBO_RECONCILE_MS)
    try:
        if float(delay) <= 0:
            errors[CONF_TURBO_RECONCILE_MS] = "invalid_delay"
    except (TypeError, ValueError):
        errors[CONF_TURBO_RECONCILE_MS] = "invalid_delay"
    return errors

def _clean(user_input: dict, *, drop_blank: bool = True) -> dict:
    """Drop blank topics; a missing set-topic just skips that publish."""
    data = dict(user_input)
    if drop_blank:
        data = {k: v for k, v in data.items() if not (k in TOPIC_KEYS and not v)}
    if CONF_TURBO_RECONCILE_MS in data:
        data[CONF_TURBO_RECONCILE_MS] = int(float(data[CONF_TURBO_RECONCILE_MS]))
    return data


class BalluConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    # ───────────────── STEP: USER ─────────────────
    async def async_step_user(self, user_input=None):
        errors = {}
        schema = vol.Schema(
            {
                vol.Optional(CONF_NAME, default=DEFAULT_NAME): str,
                **_topics_schema(DEFAULT_TOPICS),
                **_delay_field(DEFAULT_TURBO_RECONCILE_MS),
            }
        )

        if user_input is not None:
            errors = _validate(user_input)
            if not errors:
                # one device per state-topic
                unique_id = user_input.get(CONF_GET_ACTIVE_TOPIC) or user_input[CONF_NAME]
                await self.async_set_unique_id(unique_id)
                self._abort_if_unique_id_configured()
                data = _clean(user_input)
                _LOGGER.debug("creating entry %s", data)
                return self.async_create_entry(
                    title=data.get(CONF_NAME) or DEFAULT_NAME, data=data
                )

        return self.async_show_form(step_id="user", data_schema=schema, errors=errors)

    # ───────────────── OPTIONS FLOW ─────────────────
    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        return BalluOptionsFlow(config_entry)


class BalluOptionsFlow(config_entries.OptionsFlow):
    """Change topics or the Turbo reconcile delay without re-adding."""
    def __init__(self, entry):
        self.entry = entry

    async def async_step_init(self, user_input=None):
        current = {**self.entry.data, **self.entry.options}
        errors = {}
        if user_input is not None:
            errors = _validate(user_input)
            if not errors:
                return self.async_create_entry(title="", data=_clean(user_input, drop_blank=False))

        schema = vol.Schema(
            {
                **_topics_schema(current),
                **_delay_field(
                    current.get(CONF_TURBO_RECONCILE_MS, DEFAULT_TURBO_RECONCILE_MS)
                ),
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema, errors=errors)
