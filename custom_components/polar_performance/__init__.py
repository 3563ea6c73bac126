from __future__ import annotations

import logging

import voluptuous as vol
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall, ServiceResponse, SupportsResponse
from homeassistant.helpers import config_validation as cv

from .const import (
    ATTR_ACTIVATE,
    ATTR_ANGLE_UNIT,
    ATTR_BOAT_SPEED_UNIT,
    ATTR_CSV,
    ATTR_DESCRIPTION,
    ATTR_MIRROR,
    ATTR_NAME,
    ATTR_PATH,
    ATTR_TABLE_ID,
    ATTR_WIND_SPEED_UNIT,
    DOMAIN,
    PLATFORMS,
    SERVICE_DELETE_TABLE,
    SERVICE_EXPORT_CSV,
    SERVICE_GET_ACTIVE_TABLE,
    SERVICE_GET_TABLE,
    SERVICE_IMPORT_TABLE,
    SERVICE_LIST_TABLES,
    SERVICE_RESET_DYNAMIC,
    SERVICE_SET_ACTIVE_TABLE,
)
from .coordinator import PolarCoordinator
from .units import ANGLE_UNITS, SPEED_UNITS

_LOGGER = logging.getLogger(__name__)

SERVICES = (
    SERVICE_LIST_TABLES,
    SERVICE_GET_TABLE,
    SERVICE_GET_ACTIVE_TABLE,
    SERVICE_SET_ACTIVE_TABLE,
    SERVICE_IMPORT_TABLE,
    SERVICE_DELETE_TABLE,
    SERVICE_RESET_DYNAMIC,
    SERVICE_EXPORT_CSV,
)

TABLE_ID_SCHEMA = vol.Schema({vol.Required(ATTR_TABLE_ID): cv.string})

IMPORT_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_NAME): cv.string,
        vol.Exclusive(ATTR_CSV, "source"): cv.string,
        vol.Exclusive(ATTR_PATH, "source"): cv.string,
        vol.Optional(ATTR_DESCRIPTION, default=""): cv.string,
        vol.Optional(ATTR_ANGLE_UNIT, default="deg"): vol.In(ANGLE_UNITS),
        vol.Optional(ATTR_WIND_SPEED_UNIT, default="knots"): vol.In(list(SPEED_UNITS)),
        vol.Optional(ATTR_BOAT_SPEED_UNIT, default="knots"): vol.In(list(SPEED_UNITS)),
        vol.Optional(ATTR_MIRROR, default=True): cv.boolean,
        vol.Optional(ATTR_TABLE_ID): cv.string,
        vol.Optional(ATTR_ACTIVATE, default=False): cv.boolean,
    }
)

EXPORT_SCHEMA = vol.Schema(
    {
        vol.Optional(ATTR_TABLE_ID): cv.string,
        vol.Optional(ATTR_PATH, default="/config/www/polar.csv"): cv.string,
    }
)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Polar Performance from a config entry."""
    coord = PolarCoordinator(hass, entry)
    await coord.async_setup()
    entry.runtime_data = coord  # make coordinator accessible to platform & services

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    # --- Query services ---
    async def svc_list_tables(_call: ServiceCall) -> ServiceResponse:
        return {"tables": coord.list_tables()}

    async def svc_get_table(call: ServiceCall) -> ServiceResponse:
        return coord.get_table(call.data[ATTR_TABLE_ID]).as_dict()

    async def svc_get_active_table(_call: ServiceCall) -> ServiceResponse:
        table = coord.active_table
        return {} if table is None else table.as_dict()

    # --- Table management ---
    async def svc_set_active_table(call: ServiceCall) -> None:
        await coord.async_set_active(call.data[ATTR_TABLE_ID])

    async def svc_import_table(call: ServiceCall) -> ServiceResponse:
        table = await coord.async_import_table(
            name=call.data[ATTR_NAME],
            csv=call.data.get(ATTR_CSV),
            path=call.data.get(ATTR_PATH),
            description=call.data[ATTR_DESCRIPTION],
            angle_unit=call.data[ATTR_ANGLE_UNIT],
            wind_speed_unit=call.data[ATTR_WIND_SPEED_UNIT],
            boat_speed_unit=call.data[ATTR_BOAT_SPEED_UNIT],
            mirror=call.data[ATTR_MIRROR],
            table_id=call.data.get(ATTR_TABLE_ID),
            activate=call.data[ATTR_ACTIVATE],
        )
        if call.return_response:
            return {"table_id": table.id}
        return None

    async def svc_delete_table(call: ServiceCall) -> None:
        await coord.async_delete_table(call.data[ATTR_TABLE_ID])

    async def svc_reset_dynamic(_call: ServiceCall) -> None:
        await coord.async_reset_dynamic()

    async def svc_export_csv(call: ServiceCall) -> None:
        table_id = call.data.get(ATTR_TABLE_ID) or coord.active_id
        await coord.async_export_csv(table_id, call.data[ATTR_PATH])

    hass.services.async_register(
        DOMAIN, SERVICE_LIST_TABLES, svc_list_tables, supports_response=SupportsResponse.ONLY
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_GET_TABLE,
        svc_get_table,
        schema=TABLE_ID_SCHEMA,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_GET_ACTIVE_TABLE,
        svc_get_active_table,
        supports_response=SupportsResponse.ONLY,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_ACTIVE_TABLE, svc_set_active_table, schema=TABLE_ID_SCHEMA
    )
    hass.services.async_register(
        DOMAIN,
        SERVICE_IMPORT_TABLE,
        svc_import_table,
        schema=IMPORT_SCHEMA,
        supports_response=SupportsResponse.OPTIONAL,
    )
    hass.services.async_register(
        DOMAIN, SERVICE_DELETE_TABLE, svc_delete_table, schema=TABLE_ID_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_RESET_DYNAMIC, svc_reset_dynamic)
    hass.services.async_register(
        DOMAIN, SERVICE_EXPORT_CSV, svc_export_csv, schema=EXPORT_SCHEMA
    )
    return True


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Options changed: rebuild gate, listeners and the dynamic grid."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    coord: PolarCoordinator = entry.runtime_data
    await coord.async_unload()
    for service in SERVICES:
        hass.services.async_remove(DOMAIN, service)
    _LOGGER.debug("Unloaded %s entry %s", DOMAIN, entry.entry_id)
    return unloaded
