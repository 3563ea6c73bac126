"""Conversion of incoming values to radians and m/s."""

from __future__ import annotations

import math

from homeassistant.const import UnitOfSpeed
from homeassistant.util.unit_conversion import SpeedConverter

# Unit names accepted for polar imports and sensor attributes
SPEED_UNITS: dict[str, str] = {
    "knots": UnitOfSpeed.KNOTS,
    "kn": UnitOfSpeed.KNOTS,
    "kt": UnitOfSpeed.KNOTS,
    "ms": UnitOfSpeed.METERS_PER_SECOND,
    "m/s": UnitOfSpeed.METERS_PER_SECOND,
    "kph": UnitOfSpeed.KILOMETERS_PER_HOUR,
    "km/h": UnitOfSpeed.KILOMETERS_PER_HOUR,
    "mph": UnitOfSpeed.MILES_PER_HOUR,
}

ANGLE_UNITS = ("rad", "deg")
DEGREE_SYMBOLS = ("°", "deg", "degrees")

# rad/s -> deg/min
ROT_DEG_PER_MIN = 180.0 / math.pi * 60.0


def speed_to_ms(value: float, unit: str | None) -> float:
    """Convert a speed to m/s. ``None`` means the value already is m/s."""
    if unit is None:
        return float(value)
    try:
        ha_unit = SPEED_UNITS[unit.strip().lower()]
    except KeyError:
        raise ValueError(f"Unsupported speed unit '{unit}'") from None
    if ha_unit == UnitOfSpeed.METERS_PER_SECOND:
        return float(value)
    return SpeedConverter.convert(float(value), ha_unit, UnitOfSpeed.METERS_PER_SECOND)


def ms_to_knots(value: float) -> float:
    return SpeedConverter.convert(value, UnitOfSpeed.METERS_PER_SECOND, UnitOfSpeed.KNOTS)


def angle_to_rad(value: float, unit: str | None) -> float:
    if unit is None or unit.strip().lower() == "rad":
        return float(value)
    if unit.strip().lower() in DEGREE_SYMBOLS:
        return math.radians(float(value))
    raise ValueError(f"Unsupported angle unit '{unit}'")


def rate_to_rad_s(value: float, unit: str | None) -> float:
    """Rate of turn to rad/s from rad/s, °/s or °/min."""
    if unit is None:
        return float(value)
    u = unit.strip().lower().replace(" ", "")
    if u == "rad/s":
        return float(value)
    if u in ("°/s", "deg/s"):
        return math.radians(float(value))
    if u in ("°/min", "deg/min"):
        return math.radians(float(value)) / 60.0
    raise ValueError(f"Unsupported rate of turn unit '{unit}'")


def normalize_angle(angle: float) -> float:
    """Wrap an angle into [-pi, pi]."""
    return math.atan2(math.sin(angle), math.cos(angle))
