from __future__ import annotations

import time as _t
from dataclasses import dataclass

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import EntityCategory, UnitOfSpeed
from homeassistant.core import HomeAssistant
from homeassistant.helpers.device_registry import DeviceEntryType, DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    DOMAIN,
    OUT_BEAT_ANGLE,
    OUT_BEAT_SPEED,
    OUT_BEAT_VMG,
    OUT_GYBE_ANGLE,
    OUT_GYBE_SPEED,
    OUT_GYBE_VMG,
    OUT_POLAR_RATIO,
    OUT_POLAR_SPEED,
    OUT_TARGET_ANGLE,
    OUT_TARGET_SPEED,
    PATH_TWA,
    PATH_TWS,
    PATH_VMG,
)
from .coordinator import PolarCoordinator

UNIT_RADIAN = "rad"


@dataclass(frozen=True)
class OutputDescription:
    path: str
    name: str
    icon: str
    speed: bool = False
    angle: bool = False


OUTPUTS: tuple[OutputDescription, ...] = (
    OutputDescription(PATH_TWS, "True Wind Speed", "mdi:weather-windy", speed=True),
    OutputDescription(PATH_TWA, "True Wind Angle", "mdi:angle-acute", angle=True),
    OutputDescription(PATH_VMG, "Velocity Made Good", "mdi:arrow-collapse-up", speed=True),
    OutputDescription(OUT_BEAT_ANGLE, "Beat Angle", "mdi:angle-acute", angle=True),
    OutputDescription(OUT_BEAT_SPEED, "Beat Target Speed", "mdi:speedometer", speed=True),
    OutputDescription(OUT_BEAT_VMG, "Beat VMG", "mdi:arrow-collapse-up", speed=True),
    OutputDescription(OUT_GYBE_ANGLE, "Gybe Angle", "mdi:angle-obtuse", angle=True),
    OutputDescription(OUT_GYBE_SPEED, "Gybe Target Speed", "mdi:speedometer", speed=True),
    OutputDescription(OUT_GYBE_VMG, "Gybe VMG", "mdi:arrow-collapse-down", speed=True),
    OutputDescription(OUT_TARGET_ANGLE, "Target Angle", "mdi:compass-outline", angle=True),
    OutputDescription(OUT_TARGET_SPEED, "Target Speed", "mdi:speedometer", speed=True),
    OutputDescription(OUT_POLAR_SPEED, "Polar Speed", "mdi:sail-boat", speed=True),
    OutputDescription(OUT_POLAR_RATIO, "Polar Speed Ratio", "mdi:percent-outline"),
)


def _device_info(entry: ConfigEntry) -> DeviceInfo:
    return DeviceInfo(
        identifiers={(DOMAIN, entry.entry_id)},
        name="Polar Performance",
        manufacturer="Polar Performance",
        model="Polar Engine",
        entry_type=DeviceEntryType.SERVICE,
    )


async def async_setup_entry(
    hass: HomeAssistant, entry: ConfigEntry, async_add_entities: AddEntitiesCallback
) -> None:
    coord: PolarCoordinator = entry.runtime_data
    device = _device_info(entry)

    entities: list[SensorEntity] = [PolarTableEntity(entry.entry_id, coord, device)]
    entities.extend(PolarOutputEntity(entry.entry_id, coord, device, d) for d in OUTPUTS)
    async_add_entities(entities)


class _BaseEntity(SensorEntity):
    _attr_should_poll = False
    _attr_has_entity_name = True

    def __init__(self, unique_prefix: str, coord: PolarCoordinator, device: DeviceInfo) -> None:
        self._coord = coord
        self._attr_unique_id = f"{unique_prefix}-{self._suffix()}"
        self._attr_device_info = device

    def _suffix(self) -> str:
        raise NotImplementedError

    async def async_added_to_hass(self) -> None:
        # Refresh on coordinator notifications
        self.async_on_remove(self._coord.register(self.async_write_ha_state))


class PolarTableEntity(_BaseEntity):
    _attr_name = "Polar Table"
    _attr_icon = "mdi:sail-boat"
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    def _suffix(self) -> str:
        return "polar-table"

    @property
    def native_value(self):
        table = self._coord.active_table
        return None if table is None else table.name

    @property
    def extra_state_attributes(self):
        coord = self._coord
        ts = coord.last_update_ts
        nice = _t.strftime("%Y-%m-%d %H:%M:%S", _t.localtime(ts)) if ts else None
        decision = coord.last_decision
        dynamic = coord.dynamic_table
        return {
            "active_table_id": coord.active_id,
            "dynamic_table_id": None if dynamic is None else dynamic.id,
            "tables": [t["name"] for t in coord.list_tables()],
            "last_update_ts": ts,
            "last_update": nice,
            "recording_eligible": None if decision is None else decision.eligible,
            "recording_blocked_by": None if decision is None else decision.reason or None,
            "engine_running": None if decision is None else decision.engine_running,
            "stable_course": None if decision is None else decision.stable_course,
        }


class PolarOutputEntity(_BaseEntity):
    """One published polar output."""

    _attr_state_class = SensorStateClass.MEASUREMENT

    def __init__(
        self,
        unique_prefix: str,
        coord: PolarCoordinator,
        device: DeviceInfo,
        description: OutputDescription,
    ) -> None:
        self._description = description
        super().__init__(unique_prefix, coord, device)
        self._attr_name = description.name
        self._attr_icon = description.icon
        if description.speed:
            self._attr_device_class = SensorDeviceClass.SPEED
            self._attr_native_unit_of_measurement = UnitOfSpeed.METERS_PER_SECOND
            self._attr_suggested_display_precision = 2
        elif description.angle:
            self._attr_native_unit_of_measurement = UNIT_RADIAN
            self._attr_suggested_display_precision = 3
        else:
            self._attr_suggested_display_precision = 3

    def _suffix(self) -> str:
        return self._description.path

    @property
    def native_value(self):
        return self._coord.outputs.get(self._description.path)
