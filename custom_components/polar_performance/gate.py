"""Fused sensor state and the recording gate.

``FusedState`` keeps the latest reading of every measurement path. The gate
decides, from that state alone, whether the current sample is clean enough
to be recorded into the dynamic polar: sensors close together in time,
engine off, boat not turning, and at most one record per second.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Union

from .const import (
    ENGINE_ALWAYS_OFF,
    ENGINE_DO_NOT_STORE,
    ENGINE_ON_STATES,
    ENGINE_REVOLUTIONS,
    ENGINE_STALE_AFTER,
    ENGINE_STATE,
    MAX_INTERVAL,
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
    STORE_DEBOUNCE,
)
from .exceptions import StaleData
from .units import ROT_DEG_PER_MIN

_LOGGER = logging.getLogger(__name__)

Value = Union[float, str]


@dataclass(frozen=True)
class Measurement:
    path: str
    value: Value
    timestamp: float
    source: str = ""


@dataclass(frozen=True)
class Reading:
    value: Value
    timestamp: float


# measurement path -> FusedState attribute
FIELDS: dict[str, str] = {
    PATH_ROT: "rate_of_turn",
    PATH_STW: "speed_through_water",
    PATH_AWA: "apparent_angle",
    PATH_AWS: "apparent_speed",
    PATH_TWA: "true_angle",
    PATH_TWS: "true_speed",
    PATH_VMG: "vmg",
    PATH_COG: "course_over_ground",
    PATH_SOG: "speed_over_ground",
    PATH_ENGINE: "engine",
}


@dataclass(frozen=True)
class FusedState:
    rate_of_turn: Optional[Reading] = None
    speed_through_water: Optional[Reading] = None
    apparent_angle: Optional[Reading] = None
    apparent_speed: Optional[Reading] = None
    true_angle: Optional[Reading] = None
    true_speed: Optional[Reading] = None
    vmg: Optional[Reading] = None
    course_over_ground: Optional[Reading] = None
    speed_over_ground: Optional[Reading] = None
    engine: Optional[Reading] = None

    def value(self, path: str) -> Optional[Value]:
        reading = getattr(self, FIELDS[path])
        return None if reading is None else reading.value


def apply_measurement(state: FusedState, measurement: Measurement) -> FusedState:
    """Return ``state`` with ``measurement`` folded in.

    Unknown paths, repeats and readings older than the stored one return
    ``state`` itself.
    """
    name = FIELDS.get(measurement.path)
    if name is None:
        return state
    current: Optional[Reading] = getattr(state, name)
    reading = Reading(measurement.value, measurement.timestamp)
    if current is not None and (reading.timestamp < current.timestamp or reading == current):
        return state
    return replace(state, **{name: reading})


@dataclass
class GateDecision:
    eligible: bool
    reason: str = ""
    time_max: Optional[float] = None
    engine_running: bool = False
    stable_course: bool = True


@dataclass
class SampleGate:
    """Decides whether the fused state may be recorded.

    ``time_paths`` are the measurement paths whose timestamps must lie
    within ``MAX_INTERVAL`` of each other; all of them are required.
    """

    engine_mode: str = ENGINE_ALWAYS_OFF
    rate_of_turn_limit: float = 5.0
    time_paths: tuple[str, ...] = (PATH_STW, PATH_AWA, PATH_AWS, PATH_COG)
    last_stored: float = field(default=0.0)

    def evaluate(self, state: FusedState) -> GateDecision:
        if self.engine_mode == ENGINE_DO_NOT_STORE:
            return GateDecision(False, "recording disabled")

        try:
            time_max = self._time_window(state)
        except StaleData as err:
            return GateDecision(False, str(err))

        running = self.engine_running(state, time_max)
        stable = self.stable_course(state)
        decision = GateDecision(False, "", time_max, running, stable)
        if running:
            decision.reason = "engine running"
        elif not stable:
            decision.reason = "turning"
        elif not self.last_stored < time_max - STORE_DEBOUNCE:
            decision.reason = "already stored"
        else:
            decision.eligible = True
        return decision

    def mark_stored(self, timestamp: float) -> None:
        self.last_stored = max(self.last_stored, timestamp)

    def _time_window(self, state: FusedState) -> float:
        stamps = []
        for path in self.time_paths:
            reading = getattr(state, FIELDS[path])
            if reading is None:
                raise StaleData(f"{path} not received yet")
            stamps.append(reading.timestamp)
        spread = max(stamps) - min(stamps)
        if spread >= MAX_INTERVAL:
            raise StaleData(f"readings {spread:.1f}s apart")
        return max(stamps)

    def engine_running(self, state: FusedState, time_max: float) -> bool:
        if self.engine_mode == ENGINE_ALWAYS_OFF:
            return False
        reading = state.engine
        if reading is None or time_max - reading.timestamp > ENGINE_STALE_AFTER:
            return False
        value = str(reading.value).strip().lower()
        if self.engine_mode == ENGINE_STATE:
            return value in ENGINE_ON_STATES
        if self.engine_mode == ENGINE_REVOLUTIONS:
            try:
                return float(value) >= 1
            except (TypeError, ValueError):
                # binary_sensor / input_select used as the indicator
                return value in ENGINE_ON_STATES
        _LOGGER.debug("Unknown engine mode %s, assuming engine off", self.engine_mode)
        return False

    def stable_course(self, state: FusedState) -> bool:
        rot = state.value(PATH_ROT)
        if rot is None:
            return True
        try:
            deg_per_min = abs(float(rot)) * ROT_DEG_PER_MIN
        except (TypeError, ValueError):
            return True
        return deg_per_min < self.rate_of_turn_limit
