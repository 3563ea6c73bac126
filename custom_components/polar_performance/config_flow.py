from __future__ import annotations

from typing import Any

import voluptuous as vol
from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.helpers.selector import (
    EntitySelector,
    EntitySelectorConfig,
    NumberSelector,
    NumberSelectorConfig,
    SelectSelector,
    SelectSelectorConfig,
    SelectSelectorMode,
    TextSelector,
)

from .const import (
    CONF_ANGLE_RESOLUTION,
    CONF_AWA,
    CONF_AWS,
    CONF_COG,
    CONF_ENGINE,
    CONF_ENGINE_MODE,
    CONF_MAX_WIND,
    CONF_POLAR_DESCRIPTION,
    CONF_POLAR_NAME,
    CONF_ROT,
    CONF_ROT_LIMIT,
    CONF_SOG,
    CONF_STW,
    CONF_TWA,
    CONF_TWS,
    CONF_TWS_INTERVAL,
    CONF_VMG,
    DEFAULTS,
    DOMAIN,
    ENGINE_MODES,
)

# Sensors the recording gate cannot work without
_REQUIRED_SOURCES = (CONF_STW, CONF_AWA, CONF_AWS)
_OPTIONAL_SOURCES = (CONF_ROT, CONF_COG, CONF_SOG, CONF_TWA, CONF_TWS, CONF_VMG)


def _optional_entity(s: dict[Any, Any], key: str, defaults: dict[str, Any], domains: list[str]) -> None:
    # No default when empty; avoids "required" behaviour
    selector = EntitySelector(EntitySelectorConfig(domain=domains, multiple=False))
    if defaults.get(key):
        s[vol.Optional(key, default=defaults[key])] = selector
    else:
        s[vol.Optional(key)] = selector


def _schema(defaults: dict[str, Any]) -> vol.Schema:
    """Build the (options) form schema."""
    s: dict[Any, Any] = {}
    for key in _REQUIRED_SOURCES:
        s[vol.Required(key, default=defaults.get(key, ""))] = EntitySelector(
            EntitySelectorConfig(domain=["sensor"])
        )
    for key in _OPTIONAL_SOURCES:
        _optional_entity(s, key, defaults, ["sensor"])

    s.update(
        {
            # Engine monitoring
            vol.Optional(
                CONF_ENGINE_MODE, default=defaults.get(CONF_ENGINE_MODE, DEFAULTS[CONF_ENGINE_MODE])
            ): SelectSelector(
                SelectSelectorConfig(options=ENGINE_MODES, mode=SelectSelectorMode.DROPDOWN)
            ),
        }
    )
    _optional_entity(s, CONF_ENGINE, defaults, ["sensor", "binary_sensor", "input_select"])

    s.update(
        {
            # Dynamic polar grid
            vol.Optional(CONF_TWS_INTERVAL, default=defaults.get(CONF_TWS_INTERVAL, DEFAULTS[CONF_TWS_INTERVAL])):
                NumberSelector(NumberSelectorConfig(min=0.1, max=10, step=0.1, mode="box")),
            vol.Optional(CONF_MAX_WIND, default=defaults.get(CONF_MAX_WIND, DEFAULTS[CONF_MAX_WIND])):
                NumberSelector(NumberSelectorConfig(min=1, max=60, step=0.5, mode="box")),
            vol.Optional(CONF_ANGLE_RESOLUTION, default=defaults.get(CONF_ANGLE_RESOLUTION, DEFAULTS[CONF_ANGLE_RESOLUTION])):
                NumberSelector(NumberSelectorConfig(min=0.5, max=30, step=0.5, mode="box")),
            vol.Optional(CONF_ROT_LIMIT, default=defaults.get(CONF_ROT_LIMIT, DEFAULTS[CONF_ROT_LIMIT])):
                NumberSelector(NumberSelectorConfig(min=0, max=360, step=0.5, mode="box")),

            # Dynamic polar description
            vol.Optional(CONF_POLAR_NAME, default=defaults.get(CONF_POLAR_NAME, DEFAULTS[CONF_POLAR_NAME])):
                TextSelector(),
            vol.Optional(CONF_POLAR_DESCRIPTION, default=defaults.get(CONF_POLAR_DESCRIPTION, DEFAULTS[CONF_POLAR_DESCRIPTION])):
                TextSelector(),
        }
    )
    return vol.Schema(s)


def _normalize(user_input: dict[str, Any]) -> dict[str, Any]:
    # Missing optional sources => empty string
    for key in (*_OPTIONAL_SOURCES, CONF_ENGINE):
        if not user_input.get(key):
            user_input[key] = ""
    return user_input


class PolarFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(self, user_input: dict[str, Any] | None = None):
        await self.async_set_unique_id(DOMAIN)
        self._abort_if_unique_id_configured()

        if user_input is not None:
            return self.async_create_entry(title="Polar Performance", data=_normalize(user_input))

        return self.async_show_form(
            step_id="user",
            data_schema=_schema(DEFAULTS),
            description_placeholders={},
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        return PolarOptionsFlow()


class PolarOptionsFlow(config_entries.OptionsFlow):
    async def async_step_init(self, user_input=None):
        if user_input is not None:
            return self.async_create_entry(title="", data=_normalize(user_input))

        data = {**DEFAULTS, **self.config_entry.data, **self.config_entry.options}
        return self.async_show_form(step_id="init", data_schema=_schema(data))
