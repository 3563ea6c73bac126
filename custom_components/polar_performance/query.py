"""Real-time lookups against a polar table."""

from __future__ import annotations

import logging
import math
from bisect import bisect_right
from typing import Callable, Optional, TypeVar

from .const import (
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
)
from .exceptions import LookupMiss
from .table import PolarTable, WindSpeedBucket
from .wind import tack_side, velocity_made_good

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", float, tuple[float, float])


def closest(value: float, values: list[float]) -> int:
    """Index of the last entry <= value, clamped to the list bounds.

    ``values`` must be sorted ascending.
    """
    if not values:
        raise LookupMiss("empty axis")
    idx = bisect_right(values, value) - 1
    return min(max(idx, 0), len(values) - 1)


def _lerp(lo: T, hi: T, frac: float) -> T:
    if isinstance(lo, tuple):
        return tuple(a + (b - a) * frac for a, b in zip(lo, hi))  # type: ignore[return-value]
    return lo + (hi - lo) * frac


def _fraction(value: float, lo: float, hi: float) -> float:
    return 0.0 if hi == lo else (value - lo) / (hi - lo)


def angle_speed(bucket: WindSpeedBucket, true_wind_angle: float) -> float:
    """Boat speed at ``true_wind_angle``, linear between populated angles."""
    points = [(e.angle, e.speed) for e in bucket.angle_data if e.speed is not None]
    if not points:
        raise LookupMiss(f"no boat speeds at {bucket.true_wind_speed} m/s")
    angles = [a for a, _ in points]
    i = closest(true_wind_angle, angles)
    if i == len(points) - 1 or true_wind_angle <= angles[i]:
        return points[i][1]
    frac = _fraction(true_wind_angle, angles[i], angles[i + 1])
    return _lerp(points[i][1], points[i + 1][1], frac)


class PerformanceQuery:
    """Target angles/speeds and polar ratio from one table."""

    def __init__(self, table: PolarTable) -> None:
        self.table = table

    def _across_wind(self, true_wind_speed: float, fn: Callable[[WindSpeedBucket], T]) -> T:
        buckets = self.table.buckets
        speeds = self.table.wind_speeds()
        i = closest(true_wind_speed, speeds)
        if i == len(buckets) - 1 or true_wind_speed <= speeds[i]:
            return fn(buckets[i])

        try:
            lo = fn(buckets[i])
        except LookupMiss:
            return fn(buckets[i + 1])
        try:
            hi = fn(buckets[i + 1])
        except LookupMiss:
            return lo
        return _lerp(lo, hi, _fraction(true_wind_speed, speeds[i], speeds[i + 1]))

    def polar_speed(self, true_wind_speed: float, true_wind_angle: float) -> float:
        return self._across_wind(true_wind_speed, lambda b: angle_speed(b, true_wind_angle))

    def beat(self, true_wind_speed: float, side: int) -> tuple[float, float]:
        def pick(bucket: WindSpeedBucket) -> tuple[float, float]:
            optimum = bucket.optimal_beats[side]
            if optimum is None:
                raise LookupMiss(f"no beat at {bucket.true_wind_speed} m/s")
            return optimum

        return self._across_wind(true_wind_speed, pick)

    def gybe(self, true_wind_speed: float, side: int) -> tuple[float, float]:
        def pick(bucket: WindSpeedBucket) -> tuple[float, float]:
            optimum = bucket.optimal_gybes[side]
            if optimum is None:
                raise LookupMiss(f"no gybe at {bucket.true_wind_speed} m/s")
            return optimum

        return self._across_wind(true_wind_speed, pick)

    def outputs(
        self, true_wind_speed: float, true_wind_angle: float, boat_speed: Optional[float]
    ) -> dict[str, float]:
        """Named results; anything without data is left out."""
        out: dict[str, float] = {}
        side = tack_side(true_wind_angle)
        upwind = abs(true_wind_angle) < math.pi / 2

        for key, lookup, names in (
            ("beat", self.beat, (OUT_BEAT_ANGLE, OUT_BEAT_SPEED, OUT_BEAT_VMG)),
            ("gybe", self.gybe, (OUT_GYBE_ANGLE, OUT_GYBE_SPEED, OUT_GYBE_VMG)),
        ):
            try:
                angle, speed = lookup(true_wind_speed, side)
            except LookupMiss as err:
                _LOGGER.debug("No %s target: %s", key, err)
                continue
            out[names[0]] = angle
            out[names[1]] = speed
            out[names[2]] = velocity_made_good(speed, angle)
            if (key == "beat") == upwind:
                out[OUT_TARGET_ANGLE] = angle
                out[OUT_TARGET_SPEED] = speed

        try:
            polar = self.polar_speed(true_wind_speed, true_wind_angle)
        except LookupMiss as err:
            _LOGGER.debug("No polar speed: %s", err)
            return out
        out[OUT_POLAR_SPEED] = polar
        if boat_speed is not None and polar > 0:
            out[OUT_POLAR_RATIO] = boat_speed / polar
        return out
