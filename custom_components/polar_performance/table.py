"""Polar table data model.

A table is a list of wind speed buckets. Each bucket stores boat speed and
VMG per true wind angle, sorted by angle, plus the best beat and gybe per
tack side (index 0 = port, negative angles; index 1 = starboard).
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .wind import tack_side, velocity_made_good

Optimum = Optional[tuple[float, float]]


@dataclass
class AngleEntry:
    angle: float
    speed: Optional[float] = None
    vmg: Optional[float] = None

    def as_list(self) -> list[Optional[float]]:
        return [self.angle, self.speed, self.vmg]


@dataclass
class WindSpeedBucket:
    true_wind_speed: float
    angle_data: list[AngleEntry] = field(default_factory=list)
    optimal_beats: list[Optimum] = field(default_factory=lambda: [None, None])
    optimal_gybes: list[Optimum] = field(default_factory=lambda: [None, None])

    def angles(self) -> list[float]:
        return [e.angle for e in self.angle_data]

    def recompute_optimums(self) -> None:
        """Best VMG upwind (max, > 0) and downwind (min, < 0) per tack side.

        Entries are scanned in ascending angle order and only a strictly
        better VMG replaces the current pick, so ties keep the first entry.
        """
        beats: list[Optional[AngleEntry]] = [None, None]
        gybes: list[Optional[AngleEntry]] = [None, None]
        for entry in self.angle_data:
            if entry.speed is None or entry.vmg is None:
                continue
            side = tack_side(entry.angle)
            if entry.vmg > 0 and (beats[side] is None or entry.vmg > beats[side].vmg):
                beats[side] = entry
            if entry.vmg < 0 and (gybes[side] is None or entry.vmg < gybes[side].vmg):
                gybes[side] = entry
        self.optimal_beats = [None if e is None else (e.angle, e.speed) for e in beats]
        self.optimal_gybes = [None if e is None else (e.angle, e.speed) for e in gybes]

    def as_dict(self) -> dict[str, Any]:
        return {
            "trueWindSpeed": self.true_wind_speed,
            "optimalBeats": [None if o is None else list(o) for o in self.optimal_beats],
            "optimalGybes": [None if o is None else list(o) for o in self.optimal_gybes],
            "angleData": [e.as_list() for e in self.angle_data],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WindSpeedBucket":
        bucket = cls(
            true_wind_speed=float(data["trueWindSpeed"]),
            angle_data=[
                AngleEntry(
                    float(row[0]),
                    None if row[1] is None else float(row[1]),
                    None if len(row) < 3 or row[2] is None else float(row[2]),
                )
                for row in data.get("angleData") or []
            ],
        )
        bucket.angle_data.sort(key=lambda e: e.angle)
        bucket.recompute_optimums()
        return bucket


@dataclass
class PolarTable:
    id: str
    name: str
    description: str = ""
    source_label: str = ""
    buckets: list[WindSpeedBucket] = field(default_factory=list)
    # set for dynamic tables only
    tws_interval: Optional[float] = None
    max_wind: Optional[float] = None
    angle_resolution: Optional[float] = None

    @property
    def dynamic(self) -> bool:
        return self.angle_resolution is not None

    def wind_speeds(self) -> list[float]:
        return [b.true_wind_speed for b in self.buckets]

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "source": {"label": self.source_label},
            "windData": [b.as_dict() for b in self.buckets],
        }
        if self.dynamic:
            data["twsInterval"] = self.tws_interval
            data["maxWind"] = self.max_wind
            data["angleResolution"] = self.angle_resolution
        return data

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "source": {"label": self.source_label},
            "dynamic": self.dynamic,
            "windSpeeds": self.wind_speeds(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PolarTable":
        buckets = [WindSpeedBucket.from_dict(w) for w in data.get("windData") or []]
        buckets.sort(key=lambda b: b.true_wind_speed)
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            description=str(data.get("description") or ""),
            source_label=str((data.get("source") or {}).get("label", "")),
            buckets=buckets,
            tws_interval=data.get("twsInterval"),
            max_wind=data.get("maxWind"),
            angle_resolution=data.get("angleResolution"),
        )


def angle_grid(resolution: float) -> list[float]:
    """Bucket angles covering [-pi, pi) every ``resolution`` radians."""
    count = int(round(2 * math.pi / resolution))
    return [-math.pi + i * resolution for i in range(count)]


def wind_grid(tws_interval: float, max_wind: float) -> list[float]:
    """Bucket upper bounds: interval, 2*interval, ... up to max_wind."""
    speeds = []
    n = 1
    eps = tws_interval * 1e-6
    while n * tws_interval <= max_wind + eps:
        speeds.append(round(n * tws_interval, 6))
        n += 1
    return speeds


def new_dynamic_table(
    *,
    name: str,
    description: str,
    source_label: str,
    tws_interval: float,
    max_wind: float,
    angle_resolution: float,
    table_id: str | None = None,
) -> PolarTable:
    """Empty grid ready for dynamic recording."""
    if tws_interval <= 0 or angle_resolution <= 0:
        raise ValueError("tws_interval and angle_resolution must be > 0")
    angles = angle_grid(angle_resolution)
    buckets = [
        WindSpeedBucket(ws, [AngleEntry(a) for a in angles])
        for ws in wind_grid(tws_interval, max_wind)
    ]
    return PolarTable(
        id=table_id or str(uuid.uuid4()),
        name=name,
        description=description,
        source_label=source_label,
        buckets=buckets,
        tws_interval=tws_interval,
        max_wind=max_wind,
        angle_resolution=angle_resolution,
    )


def make_bucket(true_wind_speed: float, points: Iterable[tuple[float, float]]) -> WindSpeedBucket:
    """Bucket from (angle, speed) pairs, with VMG and optimums filled in."""
    entries = [AngleEntry(a, s, velocity_made_good(s, a)) for a, s in points]
    entries.sort(key=lambda e: e.angle)
    bucket = WindSpeedBucket(true_wind_speed, entries)
    bucket.recompute_optimums()
    return bucket
