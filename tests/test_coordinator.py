"""Coordinator tests: ingestion, recording, persistence and table management."""

from __future__ import annotations

import logging
import math

import pytest
from homeassistant.core import HomeAssistant
from homeassistant.helpers import entity_registry as er
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.polar_performance.const import (
    CONF_AWA,
    CONF_AWS,
    CONF_ENGINE,
    CONF_ENGINE_MODE,
    CONF_MAX_WIND,
    CONF_STW,
    CONF_TWS_INTERVAL,
    DOMAIN,
    ENGINE_ALWAYS_OFF,
    ENGINE_DO_NOT_STORE,
    ENGINE_STATE,
    OUT_POLAR_SPEED,
    OUT_TARGET_ANGLE,
    PATH_AWA,
    PATH_AWS,
    PATH_ENGINE,
    PATH_STW,
    PATH_TWA,
    PATH_TWS,
)
from custom_components.polar_performance.coordinator import PolarCoordinator
from custom_components.polar_performance.exceptions import (
    PolarError,
    PolarImportError,
    UnknownTable,
)
from custom_components.polar_performance.gate import Measurement
from custom_components.polar_performance.store import MemoryTableStore
from custom_components.polar_performance.table import new_dynamic_table
from custom_components.polar_performance.updater import DynamicUpdater, Sample


T0 = 1_700_000_000.0

BASE_DATA = {
    CONF_STW: "sensor.stw",
    CONF_AWA: "sensor.awa",
    CONF_AWS: "sensor.aws",
    CONF_ENGINE: "sensor.engine",
    CONF_ENGINE_MODE: ENGINE_ALWAYS_OFF,
    CONF_TWS_INTERVAL: 5.0,
    CONF_MAX_WIND: 15.0,
}


class FlakyStore(MemoryTableStore):
    """Memory store whose saves can be made to fail."""

    fail = False

    async def async_save(self, table_id, table):
        if self.fail:
            raise OSError("disk full")
        await super().async_save(table_id, table)


async def _coordinator(hass: HomeAssistant, store=None, **options) -> PolarCoordinator:
    entry = MockConfigEntry(domain=DOMAIN, data=dict(BASE_DATA), options=options)
    coord = PolarCoordinator(hass, entry, store if store is not None else MemoryTableStore())
    await coord.async_setup()
    return coord


def feed(coord: PolarCoordinator, t: float, stw=3.0, awa_deg=40.0, aws=8.0) -> bool:
    recorded = False
    for path, value in ((PATH_STW, stw), (PATH_AWA, math.radians(awa_deg)), (PATH_AWS, aws)):
        recorded = coord.process(Measurement(path, value, t)) or recorded
    return recorded


def populated(coord: PolarCoordinator) -> list[float]:
    return [e.speed for b in coord.dynamic_table.buckets for e in b.angle_data if e.speed]


async def test_setup_creates_active_dynamic_table(hass: HomeAssistant) -> None:
    store = MemoryTableStore()
    coord = await _coordinator(hass, store)
    try:
        table = coord.dynamic_table
        assert table.wind_speeds() == [5.0, 10.0, 15.0]
        assert coord.active_id == table.id
        assert table.id in store.tables
        assert coord.list_tables() == [{**table.summary(), "active": True}]
    finally:
        await coord.async_unload()


async def test_clean_sample_is_recorded(hass: HomeAssistant) -> None:
    store = MemoryTableStore()
    coord = await _coordinator(hass, store)
    try:
        assert feed(coord, T0)
        await hass.async_block_till_done()
        assert populated(coord) == [3.0]
        assert coord.last_update_ts is not None
        assert coord.gate.last_stored == T0

        saved = store.tables[coord.dynamic_table.id]
        speeds = [row[1] for w in saved["windData"] for row in w["angleData"] if row[1]]
        assert speeds == [3.0]
    finally:
        await coord.async_unload()


async def test_second_sample_within_a_second_is_not_stored(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass)
    try:
        assert feed(coord, T0)
        assert not feed(coord, T0 + 0.5, stw=3.4)
        assert coord.last_decision.reason == "already stored"
        assert populated(coord) == [3.0]
    finally:
        await coord.async_unload()


async def test_engine_running_is_not_recorded(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass, **{CONF_ENGINE_MODE: ENGINE_STATE})
    try:
        coord.process(Measurement(PATH_ENGINE, "started", T0))
        assert not feed(coord, T0)
        assert coord.last_decision.engine_running
        assert populated(coord) == []

        coord.process(Measurement(PATH_ENGINE, "stopped", T0 + 2))
        feed(coord, T0 + 2)
        assert populated(coord) == [3.0]
    finally:
        await coord.async_unload()


async def test_do_not_store_never_records(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass, **{CONF_ENGINE_MODE: ENGINE_DO_NOT_STORE})
    try:
        assert not feed(coord, T0)
        assert populated(coord) == []
    finally:
        await coord.async_unload()


async def test_own_measurements_are_ignored(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass)
    try:
        assert not coord.process(Measurement(PATH_STW, 3.0, T0, source=DOMAIN))
        assert coord.state.speed_through_water is None
    finally:
        await coord.async_unload()


async def test_save_failure_is_logged_and_swallowed(
    hass: HomeAssistant, caplog: pytest.LogCaptureFixture
) -> None:
    store = FlakyStore()
    coord = await _coordinator(hass, store)
    try:
        store.fail = True
        with caplog.at_level(logging.WARNING):
            assert feed(coord, T0)
            await hass.async_block_till_done()
        assert "Saving polar table" in caplog.text
        assert populated(coord) == [3.0]
    finally:
        await coord.async_unload()


async def test_state_changes_are_converted_and_recorded(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass)
    try:
        hass.states.async_set("sensor.stw", "5.83", {"unit_of_measurement": "kn"})
        hass.states.async_set("sensor.awa", "-40", {"unit_of_measurement": "°"})
        hass.states.async_set("sensor.aws", "8", {"unit_of_measurement": "m/s"})
        await hass.async_block_till_done()

        state = coord.state
        assert state.speed_through_water.value == pytest.approx(3.0, abs=0.01)
        assert state.apparent_angle.value == pytest.approx(math.radians(-40))
        assert state.apparent_speed.value == 8.0
        assert len(populated(coord)) == 1

        outputs = coord.refresh_outputs()
        assert outputs[PATH_TWA] < 0
        assert outputs[PATH_TWS] > 0
    finally:
        await coord.async_unload()


async def test_tick_picks_up_re_reported_values(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass)
    calls = []
    remove = coord.register(lambda: calls.append(True))
    readings = (
        ("sensor.stw", "3", {"unit_of_measurement": "m/s"}),
        ("sensor.awa", "40", {"unit_of_measurement": "°"}),
        ("sensor.aws", "8", {"unit_of_measurement": "m/s"}),
    )
    try:
        for entity_id, value, attrs in readings:
            hass.states.async_set(entity_id, value, attrs)
        await hass.async_block_till_done()
        first = coord.state.speed_through_water.timestamp

        # same values again: no state_changed event, only last_reported moves
        later = first + 2.0
        for entity_id, value, attrs in readings:
            hass.states.async_set(entity_id, value, attrs, timestamp=later)
        await hass.async_block_till_done()
        assert coord.state.speed_through_water.timestamp == first

        coord.outputs = {}
        coord._async_tick()
        assert coord.state.speed_through_water.timestamp == pytest.approx(later)
        assert coord.state.apparent_speed.timestamp == pytest.approx(later)
        assert coord.outputs[PATH_TWS] > 0
        assert calls
    finally:
        remove()
        await coord.async_unload()


async def test_unavailable_and_unconfigured_states_are_ignored(hass: HomeAssistant) -> None:
    coord = await _coordinator(hass)
    try:
        hass.states.async_set("sensor.stw", "unavailable")
        hass.states.async_set("sensor.other", "4.2")
        await hass.async_block_till_done()
        assert coord.state.speed_through_water is None
    finally:
        await coord.async_unload()


async def test_state_from_own_entity_is_ignored(hass: HomeAssistant) -> None:
    own = er.async_get(hass).async_get_or_create("sensor", DOMAIN, "own-stw")
    coord = await _coordinator(hass)
    coord._entity_paths[own.entity_id] = PATH_STW
    try:
        assert coord._measurement(own.entity_id, None) is None
        hass.states.async_set(own.entity_id, "3.0")
        await hass.async_block_till_done()
        measurement = coord._measurement(own.entity_id, hass.states.get(own.entity_id))
        assert measurement.source == DOMAIN
        assert not coord.process(measurement)
    finally:
        await coord.async_unload()


async def test_changed_grid_keeps_recorded_cells(hass: HomeAssistant) -> None:
    store = MemoryTableStore()
    old = new_dynamic_table(
        name="dynamicPolar",
        description="",
        source_label=DOMAIN,
        tws_interval=2.0,
        max_wind=10.0,
        angle_resolution=math.radians(5),
    )
    DynamicUpdater(old).apply(Sample(3.5, math.radians(45), 3.0, 2.12, T0))
    await store.async_save(old.id, old)
    await store.async_set_active(old.id)

    coord = await _coordinator(hass, store)
    try:
        table = coord.dynamic_table
        assert table.id == old.id
        assert table.tws_interval == 5.0
        assert coord.active_id == old.id
        assert populated(coord) == [3.0]
        entry = next(e for e in table.buckets[0].angle_data if e.speed)
        assert entry.angle == pytest.approx(math.radians(45))
        assert entry.vmg == 2.12
    finally:
        await coord.async_unload()


async def test_raising_max_wind_keeps_recorded_cells(hass: HomeAssistant) -> None:
    store = MemoryTableStore()
    coord = await _coordinator(hass, store)
    feed(coord, T0)
    await hass.async_block_till_done()
    await coord.async_unload()

    coord = await _coordinator(hass, store, **{CONF_MAX_WIND: 20.0})
    try:
        assert coord.dynamic_table.wind_speeds() == [5.0, 10.0, 15.0, 20.0]
        assert populated(coord) == [3.0]
        saved = store.tables[coord.dynamic_table.id]
        assert len(saved["windData"]) == 4
    finally:
        await coord.async_unload()


async def test_tables_survive_restart(hass: HomeAssistant, design_csv: str) -> None:
    store = MemoryTableStore()
    coord = await _coordinator(hass, store)
    feed(coord, T0)
    await hass.async_block_till_done()
    imported = await coord.async_import_table(
        name="Design", csv=design_csv, wind_speed_unit="ms", boat_speed_unit="ms", activate=True
    )
    await coord.async_unload()

    again = await _coordinator(hass, store)
    try:
        assert again.active_id == imported.id
        assert populated(again) == [3.0]
        assert again.get_table(imported.id).wind_speeds() == [4.0, 8.0, 12.0]
    finally:
        await again.async_unload()


class TestTableManagement:
    async def test_import_and_activate(self, hass: HomeAssistant, design_csv: str) -> None:
        coord = await _coordinator(hass)
        try:
            table = await coord.async_import_table(
                name="Design",
                csv=design_csv,
                wind_speed_unit="ms",
                boat_speed_unit="ms",
                mirror=True,
                activate=True,
            )
            assert coord.active_table is table
            feed(coord, T0)
            outputs = coord.refresh_outputs()
            assert OUT_POLAR_SPEED in outputs
            assert OUT_TARGET_ANGLE in outputs
        finally:
            await coord.async_unload()

    async def test_failed_import_leaves_tables_alone(self, hass: HomeAssistant, design_csv: str) -> None:
        coord = await _coordinator(hass)
        try:
            before = coord.list_tables()
            with pytest.raises(PolarImportError):
                await coord.async_import_table(name="Bad", csv="twa/tws;5\n30;x\n")
            assert coord.list_tables() == before
        finally:
            await coord.async_unload()

    async def test_import_needs_a_source(self, hass: HomeAssistant) -> None:
        coord = await _coordinator(hass)
        try:
            with pytest.raises(PolarError):
                await coord.async_import_table(name="Nothing")
        finally:
            await coord.async_unload()

    async def test_import_from_file(self, hass: HomeAssistant, design_csv: str, tmp_path) -> None:
        path = tmp_path / "design.csv"
        path.write_text(design_csv, encoding="utf-8")
        coord = await _coordinator(hass)
        try:
            table = await coord.async_import_table(
                name="File", path=str(path), wind_speed_unit="ms", boat_speed_unit="ms"
            )
            assert table.wind_speeds() == [4.0, 8.0, 12.0]
            assert coord.active_id == coord.dynamic_table.id
        finally:
            await coord.async_unload()

    async def test_dynamic_table_is_protected(self, hass: HomeAssistant, design_csv: str) -> None:
        coord = await _coordinator(hass)
        try:
            dynamic_id = coord.dynamic_table.id
            with pytest.raises(PolarError):
                await coord.async_delete_table(dynamic_id)
            with pytest.raises(PolarError):
                await coord.async_import_table(name="X", csv=design_csv, table_id=dynamic_id)
        finally:
            await coord.async_unload()

    async def test_deleting_active_table_falls_back_to_dynamic(self, hass: HomeAssistant, design_csv: str) -> None:
        store = MemoryTableStore()
        coord = await _coordinator(hass, store)
        try:
            table = await coord.async_import_table(name="Design", csv=design_csv, activate=True)
            await coord.async_delete_table(table.id)
            assert table.id not in store.tables
            assert coord.active_id == coord.dynamic_table.id
            assert store.active == coord.dynamic_table.id
            with pytest.raises(UnknownTable):
                coord.get_table(table.id)
        finally:
            await coord.async_unload()

    async def test_set_active_unknown(self, hass: HomeAssistant) -> None:
        coord = await _coordinator(hass)
        try:
            with pytest.raises(UnknownTable):
                await coord.async_set_active("nope")
        finally:
            await coord.async_unload()

    async def test_reset_dynamic(self, hass: HomeAssistant) -> None:
        coord = await _coordinator(hass)
        try:
            feed(coord, T0)
            await coord.async_reset_dynamic()
            assert populated(coord) == []
            assert coord.gate.last_stored == 0.0
            assert feed(coord, T0 + 0.2)
        finally:
            await coord.async_unload()

    async def test_export_csv(self, hass: HomeAssistant, design_csv: str, tmp_path) -> None:
        coord = await _coordinator(hass)
        try:
            table = await coord.async_import_table(
                name="Design", csv=design_csv, wind_speed_unit="ms", boat_speed_unit="ms"
            )
            path = tmp_path / "out.csv"
            await coord.async_export_csv(table.id, str(path))
            lines = path.read_text(encoding="utf-8").splitlines()
            assert lines[0].startswith("twa/tws;7.8;")
            assert len(lines) == 8
        finally:
            await coord.async_unload()
