"""Dynamic polar recording: the "only improve" update rule."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from .exceptions import IndexOutOfRange
from .table import PolarTable
from .wind import tack_label

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sample:
    true_wind_speed: float
    true_wind_angle: float
    boat_speed: float
    vmg: float
    timestamp: float


class DynamicUpdater:
    """Applies gated samples to one dynamic PolarTable in place."""

    def __init__(self, table: PolarTable) -> None:
        if not table.dynamic:
            raise ValueError(f"Polar table '{table.name}' is not a dynamic table")
        self.table = table

    def indices(self, true_wind_speed: float, true_wind_angle: float) -> tuple[int, int]:
        t = self.table
        ws_index = max(0, math.ceil(true_wind_speed / t.tws_interval) - 1)
        if ws_index >= len(t.buckets):
            raise IndexOutOfRange(
                f"wind speed {true_wind_speed:.2f} m/s above max {t.max_wind} m/s"
            )

        count = len(t.buckets[ws_index].angle_data)
        angle_index = round((math.pi + true_wind_angle) / t.angle_resolution)
        if angle_index == count:
            angle_index = 0  # +pi is the -pi bucket
        if not 0 <= angle_index < count:
            raise IndexOutOfRange(f"wind angle {true_wind_angle:.3f} rad outside [-pi, pi]")
        return ws_index, angle_index

    def apply(self, sample: Sample) -> bool:
        """Record ``sample``; True when a cell improved."""
        try:
            ws_index, angle_index = self.indices(sample.true_wind_speed, sample.true_wind_angle)
        except IndexOutOfRange as err:
            _LOGGER.debug("Sample skipped: %s", err)
            return False

        bucket = self.table.buckets[ws_index]
        entry = bucket.angle_data[angle_index]
        if entry.speed is not None and entry.speed >= sample.boat_speed:
            return False

        entry.speed = sample.boat_speed
        entry.vmg = sample.vmg
        bucket.recompute_optimums()
        _LOGGER.debug(
            "Polar cell %.1f m/s / %.1f° (%s) improved to %.2f m/s",
            bucket.true_wind_speed,
            math.degrees(entry.angle),
            tack_label(sample.true_wind_angle),
            sample.boat_speed,
        )
        return True

    def reset(self) -> None:
        for bucket in self.table.buckets:
            for entry in bucket.angle_data:
                entry.speed = None
                entry.vmg = None
            bucket.recompute_optimums()
