from __future__ import annotations

import logging
import math
import time
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import ATTR_UNIT_OF_MEASUREMENT, STATE_UNAVAILABLE, STATE_UNKNOWN
from homeassistant.core import Event, HomeAssistant, State, callback
from homeassistant.helpers import entity_registry as er
from homeassistant.helpers.event import (
    async_track_state_change_event,
    async_track_time_interval,
)

from .builder import build_csv, build_table, read_polar_file, write_file
from .const import (
    CONF_ANGLE_RESOLUTION,
    CONF_COG,
    CONF_ENGINE_MODE,
    CONF_MAX_WIND,
    CONF_POLAR_DESCRIPTION,
    CONF_POLAR_NAME,
    CONF_ROT_LIMIT,
    CONF_TWS_INTERVAL,
    DEFAULTS,
    DOMAIN,
    PATH_AWA,
    PATH_AWS,
    PATH_COG,
    PATH_ENGINE,
    PATH_ROT,
    PATH_SOG,
    PATH_STW,
    PATH_TWA,
    PATH_TWS,
    PATH_VMG,
    QUERY_INTERVAL_SECONDS,
    SOURCE_LABEL,
    SOURCE_PATHS,
)
from .exceptions import InvalidTriangle, PolarError, UnknownTable
from .gate import FusedState, GateDecision, Measurement, SampleGate, apply_measurement
from .query import PerformanceQuery
from .store import HassTableStore, TableStore
from .table import PolarTable, new_dynamic_table
from .units import angle_to_rad, normalize_angle, rate_to_rad_s, speed_to_ms
from .updater import DynamicUpdater, Sample
from .wind import true_wind_angle, true_wind_speed, velocity_made_good

_LOGGER = logging.getLogger(__name__)

Subscriber = Callable[[], None]

_SPEED_PATHS = (PATH_STW, PATH_AWS, PATH_TWS, PATH_VMG, PATH_SOG)


class PolarCoordinator:
    """Record a dynamic polar from live readings and publish polar targets."""

    def __init__(
        self, hass: HomeAssistant, entry: ConfigEntry, store: Optional[TableStore] = None
    ) -> None:
        self.hass = hass
        self.entry = entry
        self.store: TableStore = store or HassTableStore(hass)
        self._listeners: List[Callable[[], None]] = []
        self._subs: List[Subscriber] = []
        self._entity_paths: Dict[str, str] = {}

        self.tables: Dict[str, PolarTable] = {}
        self.active_id: Optional[str] = None
        self.updater: Optional[DynamicUpdater] = None

        self.state = FusedState()
        self.gate = self._make_gate()
        self.last_decision: Optional[GateDecision] = None
        self.last_update_ts: Optional[float] = None
        self.outputs: Dict[str, float] = {}

    async def async_setup(self) -> None:
        await self._async_load()
        self._attach_listeners()

    async def async_unload(self) -> None:
        for u in self._listeners:
            u()
        self._listeners.clear()

    # ---- config view ----
    @property
    def cfg(self) -> dict[str, Any]:
        cfg = dict(DEFAULTS)
        cfg.update(self.entry.data or {})
        cfg.update(self.entry.options or {})
        return cfg

    def _make_gate(self) -> SampleGate:
        c = self.cfg
        time_paths: tuple[str, ...] = (PATH_STW, PATH_AWA, PATH_AWS)
        if c.get(CONF_COG):
            time_paths += (PATH_COG,)
        return SampleGate(
            engine_mode=str(c[CONF_ENGINE_MODE]),
            rate_of_turn_limit=float(c[CONF_ROT_LIMIT]),
            time_paths=time_paths,
        )

    def _new_dynamic_table(self, table_id: Optional[str] = None) -> PolarTable:
        c = self.cfg
        return new_dynamic_table(
            name=str(c[CONF_POLAR_NAME]),
            description=str(c[CONF_POLAR_DESCRIPTION]),
            source_label=SOURCE_LABEL,
            tws_interval=float(c[CONF_TWS_INTERVAL]),
            max_wind=float(c[CONF_MAX_WIND]),
            angle_resolution=math.radians(float(c[CONF_ANGLE_RESOLUTION])),
            table_id=table_id,
        )

    def _grid_matches(self, table: PolarTable) -> bool:
        c = self.cfg
        return (
            math.isclose(table.tws_interval or 0, float(c[CONF_TWS_INTERVAL]))
            and math.isclose(table.max_wind or 0, float(c[CONF_MAX_WIND]))
            and math.isclose(
                table.angle_resolution or 0, math.radians(float(c[CONF_ANGLE_RESOLUTION]))
            )
        )

    # ---- persistence ----
    async def _async_load(self) -> None:
        for table_id in await self.store.async_list_tables():
            table = await self.store.async_load(table_id)
            if table is not None:
                self.tables[table_id] = table

        dynamic = next((t for t in self.tables.values() if t.dynamic), None)
        if dynamic is None or not self._grid_matches(dynamic):
            old = dynamic
            dynamic = self._new_dynamic_table(old.id if old else None)
            if old is not None:
                moved = self._migrate_cells(old, DynamicUpdater(dynamic))
                _LOGGER.info(
                    "Dynamic polar grid changed, moved %d cells of '%s' to the new grid",
                    moved,
                    old.name,
                )
            self.tables[dynamic.id] = dynamic
            await self.store.async_save(dynamic.id, dynamic)
        self.updater = DynamicUpdater(dynamic)

        active = await self.store.async_get_active()
        self.active_id = active if active in self.tables else dynamic.id

    @staticmethod
    def _migrate_cells(old: PolarTable, updater: DynamicUpdater) -> int:
        """Replay every recorded cell of ``old`` into the updater's grid.

        Each cell is placed at the middle of its old wind band; cells that
        fall outside the new grid are dropped.
        """
        half_band = (old.tws_interval or 0) / 2
        moved = 0
        for bucket in old.buckets:
            for entry in bucket.angle_data:
                if not entry.speed:
                    continue
                vmg = entry.vmg
                if vmg is None:
                    vmg = velocity_made_good(entry.speed, entry.angle)
                sample = Sample(
                    bucket.true_wind_speed - half_band, entry.angle, entry.speed, vmg, 0.0
                )
                if updater.apply(sample):
                    moved += 1
        return moved

    def _schedule_save(self, table: PolarTable) -> None:
        """Persist without blocking the measurement path."""
        self.hass.async_create_task(self._async_save_table(table))

    async def _async_save_table(self, table: PolarTable) -> None:
        try:
            await self.store.async_save(table.id, table)
        except Exception as err:
            _LOGGER.warning("Saving polar table '%s' failed: %s", table.name, err)

    # ---- entity subscription ----
    def register(self, cb: Subscriber) -> Callable[[], None]:
        self._subs.append(cb)

        def _remove() -> None:
            if cb in self._subs:
                self._subs.remove(cb)

        return _remove

    def _notify(self) -> None:
        for cb in list(self._subs):
            try:
                cb()
            except Exception as e:
                _LOGGER.debug("Subscriber callback error: %s", e)

    # ---- event listeners ----
    def _attach_listeners(self) -> None:
        c = self.cfg
        self._entity_paths = {
            c[key]: path for key, path in SOURCE_PATHS.items() if c.get(key)
        }
        if self._entity_paths:
            self._listeners.append(
                async_track_state_change_event(
                    self.hass, list(self._entity_paths), self._on_state_change
                )
            )
        self._listeners.append(
            async_track_time_interval(
                self.hass,
                self._async_tick,
                timedelta(seconds=QUERY_INTERVAL_SECONDS),
                cancel_on_shutdown=True,
            )
        )

    @callback
    def _on_state_change(self, event: Event) -> None:
        measurement = self._measurement(event.data["entity_id"], event.data.get("new_state"))
        if measurement is not None:
            self.process(measurement)

    @callback
    def _async_tick(self, _now: Any = None) -> None:
        # unchanged sensor values only bump last_reported, pick them up here
        for entity_id in self._entity_paths:
            measurement = self._measurement(entity_id, self.hass.states.get(entity_id))
            if measurement is not None:
                self.process(measurement)
        self.refresh_outputs()
        self._notify()

    def _is_own_entity(self, entity_id: str) -> bool:
        entry = er.async_get(self.hass).async_get(entity_id)
        return entry is not None and entry.platform == DOMAIN

    def _measurement(self, entity_id: str, st: Optional[State]) -> Optional[Measurement]:
        path = self._entity_paths.get(entity_id)
        if path is None or st is None or st.state in (STATE_UNKNOWN, STATE_UNAVAILABLE):
            return None
        source = DOMAIN if self._is_own_entity(entity_id) else st.domain
        stamp = st.last_reported.timestamp()
        if path == PATH_ENGINE:
            return Measurement(path, st.state, stamp, source)
        try:
            value = self._to_si(path, float(st.state), st.attributes.get(ATTR_UNIT_OF_MEASUREMENT))
        except (TypeError, ValueError) as err:
            _LOGGER.debug("Ignoring %s=%s: %s", entity_id, st.state, err)
            return None
        return Measurement(path, value, stamp, source)

    @staticmethod
    def _to_si(path: str, value: float, unit: Optional[str]) -> float:
        if path in _SPEED_PATHS:
            return speed_to_ms(value, unit)
        if path == PATH_ROT:
            return rate_to_rad_s(value, unit)
        angle = angle_to_rad(value, unit)
        return angle if path == PATH_COG else normalize_angle(angle)

    # ---- recording ----
    def process(self, measurement: Measurement) -> bool:
        """Fold one measurement into the fused state; True when a cell improved."""
        if measurement.source == DOMAIN:
            return False
        state = apply_measurement(self.state, measurement)
        if state is self.state:
            return False
        self.state = state

        decision = self.gate.evaluate(state)
        self.last_decision = decision
        if not decision.eligible:
            return False

        sample = self._sample(decision.time_max)
        if sample is None or self.updater is None:
            return False
        if not self.updater.apply(sample):
            return False

        self.gate.mark_stored(decision.time_max)
        self.last_update_ts = time.time()
        self._schedule_save(self.updater.table)
        self._notify()
        return True

    def _sample(self, timestamp: float) -> Optional[Sample]:
        stw = self.state.value(PATH_STW)
        aws = self.state.value(PATH_AWS)
        awa = self.state.value(PATH_AWA)
        tws = true_wind_speed(stw, aws, awa)
        try:
            twa = true_wind_angle(stw, tws, aws, awa)
        except InvalidTriangle as err:
            _LOGGER.debug("Sample skipped: %s (aws=%s stw=%s)", err, aws, stw)
            return None
        return Sample(tws, twa, stw, velocity_made_good(stw, twa), timestamp)

    # ---- query ----
    def true_wind(self) -> Optional[tuple[float, float]]:
        """(speed, angle) derived from apparent wind, else the fused readings."""
        s = self.state
        stw, aws, awa = s.value(PATH_STW), s.value(PATH_AWS), s.value(PATH_AWA)
        if None not in (stw, aws, awa):
            tws = true_wind_speed(stw, aws, awa)
            try:
                return tws, true_wind_angle(stw, tws, aws, awa)
            except InvalidTriangle as err:
                _LOGGER.debug("Using measured true wind: %s", err)
        tws, twa = s.value(PATH_TWS), s.value(PATH_TWA)
        if tws is None or twa is None:
            return None
        return float(tws), float(twa)

    def refresh_outputs(self) -> Dict[str, float]:
        outputs: Dict[str, float] = {}
        wind = self.true_wind()
        stw = self.state.value(PATH_STW)
        if wind is not None:
            tws, twa = wind
            outputs[PATH_TWS] = tws
            outputs[PATH_TWA] = twa
            if stw is not None:
                outputs[PATH_VMG] = velocity_made_good(stw, twa)
            table = self.active_table
            if table is not None:
                outputs.update(PerformanceQuery(table).outputs(tws, twa, stw))
        elif self.state.value(PATH_VMG) is not None:
            outputs[PATH_VMG] = float(self.state.value(PATH_VMG))
        self.outputs = outputs
        return outputs

    # ---- tables ----
    @property
    def dynamic_table(self) -> Optional[PolarTable]:
        return None if self.updater is None else self.updater.table

    @property
    def active_table(self) -> Optional[PolarTable]:
        if self.active_id is None:
            return None
        return self.tables.get(self.active_id)

    def get_table(self, table_id: str) -> PolarTable:
        try:
            return self.tables[table_id]
        except KeyError:
            raise UnknownTable(table_id) from None

    def list_tables(self) -> list[dict[str, Any]]:
        return [
            {**t.summary(), "active": t.id == self.active_id}
            for t in self.tables.values()
        ]

    async def async_set_active(self, table_id: str) -> None:
        table = self.get_table(table_id)
        self.active_id = table.id
        await self.store.async_set_active(table.id)
        _LOGGER.info("Active polar is now '%s'", table.name)
        self.refresh_outputs()
        self._notify()

    async def async_import_table(
        self,
        *,
        name: str,
        csv: Optional[str] = None,
        path: Optional[str] = None,
        description: str = "",
        angle_unit: str = "deg",
        wind_speed_unit: str = "knots",
        boat_speed_unit: str = "knots",
        mirror: bool = False,
        table_id: Optional[str] = None,
        activate: bool = False,
    ) -> PolarTable:
        """Build a static table and install it; the previous one stays on error."""
        if csv is None:
            if not path:
                raise PolarError("Provide csv text or a path to a polar file")
            csv = await self.hass.async_add_executor_job(read_polar_file, path)
        if table_id is not None and table_id == getattr(self.dynamic_table, "id", None):
            raise PolarError("The dynamic polar cannot be replaced by an import")

        table = build_table(
            csv,
            name=name,
            description=description,
            angle_unit=angle_unit,
            wind_speed_unit=wind_speed_unit,
            boat_speed_unit=boat_speed_unit,
            mirror=mirror,
            table_id=table_id,
        )
        self.tables[table.id] = table
        await self.store.async_save(table.id, table)
        _LOGGER.info("Imported polar '%s' (%s)", table.name, table.id)
        if activate:
            await self.async_set_active(table.id)
        else:
            self._notify()
        return table

    async def async_delete_table(self, table_id: str) -> None:
        table = self.get_table(table_id)
        if table is self.dynamic_table:
            raise PolarError("The dynamic polar cannot be deleted, reset it instead")
        del self.tables[table_id]
        await self.store.async_delete(table_id)
        _LOGGER.info("Deleted polar '%s'", table.name)
        if self.active_id == table_id:
            await self.async_set_active(self.dynamic_table.id)
        else:
            self._notify()

    async def async_reset_dynamic(self) -> None:
        if self.updater is None:
            return
        self.updater.reset()
        self.gate.last_stored = 0.0
        self.last_update_ts = None
        await self.store.async_save(self.updater.table.id, self.updater.table)
        _LOGGER.info("Dynamic polar '%s' cleared", self.updater.table.name)
        self.refresh_outputs()
        self._notify()

    async def async_export_csv(self, table_id: str, path: str) -> None:
        content = build_csv(self.get_table(table_id))
        await self.hass.async_add_executor_job(write_file, path, content)
