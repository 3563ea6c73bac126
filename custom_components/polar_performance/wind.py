"""Wind triangle helpers.

Angles are radians relative to the bow, positive to starboard. Speeds are
m/s. VMG is ``boat_speed * cos(twa)`` everywhere: positive while making
progress upwind, negative downwind.
"""

from __future__ import annotations

import math

from .exceptions import InvalidTriangle


def true_wind_speed(boat_speed: float, apparent_speed: float, apparent_angle: float) -> float:
    """Law of cosines on the apparent wind triangle."""
    return math.sqrt(
        apparent_speed**2
        + boat_speed**2
        - 2 * apparent_speed * boat_speed * math.cos(apparent_angle)
    )


def true_wind_angle(
    boat_speed: float,
    true_speed: float,
    apparent_speed: float,
    apparent_angle: float,
) -> float:
    """Return the true wind angle, signed like the apparent angle.

    Raises InvalidTriangle when the three speeds cannot close a triangle.
    """
    if apparent_angle == 0:
        return 0.0
    if abs(apparent_angle) == math.pi:
        return math.pi
    if true_speed == 0:
        raise InvalidTriangle(math.inf)

    cos_alpha = (apparent_speed * math.cos(apparent_angle) - boat_speed) / true_speed
    if cos_alpha > 1 or cos_alpha < -1:
        raise InvalidTriangle(cos_alpha)

    alpha = math.acos(cos_alpha)
    return alpha if apparent_angle > 0 else -alpha


def velocity_made_good(boat_speed: float, true_angle: float) -> float:
    return boat_speed * math.cos(true_angle)


def tack_label(true_angle: float) -> str:
    """Wind from port (negative angle) means sailing on port tack."""
    return "port" if true_angle < 0 else "starboard"


def tack_side(true_angle: float) -> int:
    """Index into optimal beat/gybe pairs: 0 = port, 1 = starboard."""
    return 0 if true_angle < 0 else 1
