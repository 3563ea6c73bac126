"""Static polar import and export.

Input format (orc-data / weather_routing style):

  Row 1:   twa/tws; <tws1>; <tws2>; ...
  Rows 2+: <twa>; <bsp at tws1>; <bsp at tws2>; ...

The delimiter (``;``, tab or ``,``, in that order) is taken from the header
line; whitespace separated ``.pol`` files are accepted when the header has
none of them. Empty and zero speeds mean "no data"; every row keeps the
header's column count.
"""

from __future__ import annotations

import csv
import logging
import math
import uuid
from typing import Optional

from .const import SOURCE_LABEL
from .exceptions import PolarImportError
from .table import PolarTable, make_bucket
from .units import ANGLE_UNITS, SPEED_UNITS, angle_to_rad, ms_to_knots, speed_to_ms

_LOGGER = logging.getLogger(__name__)


# ";" first so comma decimals survive in ";" separated files
DELIMITERS = (";", "\t", ",")


def _num(s: str) -> Optional[float]:
    """Parse a cell; ``None`` for empty cells, ValueError for garbage."""
    s = (s or "").strip().replace("°", "").replace("kn", "")
    if s == "" or s == "-":
        return None
    return float(s.replace(",", "."))  # allow comma decimal


def _trim(row: list[str]) -> list[str]:
    row = list(row)
    while row and not row[-1].strip():
        row.pop()
    return row


def _rows(text: str) -> list[tuple[int, list[str]]]:
    """Non-blank lines as ``(line number, cells)``, split like the header."""
    numbered = [(n, line) for n, line in enumerate(text.splitlines(), start=1) if line.strip()]
    if not numbered:
        return []
    header = numbered[0][1]
    delimiter = next((d for d in DELIMITERS if d in header), None)
    if delimiter is None:
        return [(n, line.split()) for n, line in numbered]
    cells = csv.reader((line for _, line in numbered), delimiter=delimiter)
    return [(n, row) for (n, _), row in zip(numbered, cells)]


def build_table(
    text: str,
    *,
    name: str,
    description: str = "",
    angle_unit: str = "deg",
    wind_speed_unit: str = "knots",
    boat_speed_unit: str = "knots",
    mirror: bool = False,
    table_id: str | None = None,
) -> PolarTable:
    """Parse a polar matrix into a new PolarTable.

    Raises PolarImportError on any malformed input; nothing is returned
    for a partially parsed table.
    """
    if angle_unit not in ANGLE_UNITS:
        raise PolarImportError(f"unknown angle unit '{angle_unit}'")
    for unit in (wind_speed_unit, boat_speed_unit):
        if unit.strip().lower() not in SPEED_UNITS:
            raise PolarImportError(f"unknown speed unit '{unit}'")

    rows = _rows(text)
    header_no, header = rows[0] if rows else (1, [])
    header = _trim(header)
    if len(header) < 2:
        raise PolarImportError("no header or not enough columns", row=header_no)

    try:
        wind_speeds = [speed_to_ms(_num(x), wind_speed_unit) for x in header[1:]]
    except (TypeError, ValueError) as err:
        raise PolarImportError(
            f"wind speed header is not numeric ({err})", row=header_no
        ) from err

    columns: list[list[tuple[float, float]]] = [[] for _ in wind_speeds]
    for row_no, raw in rows[1:]:
        # a short row must still carry the separators of its empty cells
        row = _trim(raw)
        if len(raw) < len(header) or len(row) > len(header):
            raise PolarImportError(
                f"{len(row)} columns, header has {len(header)}", row=row_no
            )
        if not row:
            continue
        try:
            raw_angle = _num(row[0])
            if raw_angle is None:
                raise ValueError("missing angle")
            angle = angle_to_rad(raw_angle, angle_unit)
            speeds = [_num(cell) for cell in row[1:]]
        except ValueError as err:
            raise PolarImportError(f"not numeric ({err})", row=row_no) from err

        for idx, raw_speed in enumerate(speeds):
            if raw_speed is None or raw_speed == 0:
                continue
            speed = speed_to_ms(raw_speed, boat_speed_unit)
            columns[idx].append((angle, speed))
            if mirror and angle > 0:
                columns[idx].append((-angle, speed))

    buckets = [make_bucket(ws, points) for ws, points in zip(wind_speeds, columns)]
    buckets.sort(key=lambda b: b.true_wind_speed)

    table = PolarTable(
        id=table_id or str(uuid.uuid4()),
        name=name,
        description=description,
        source_label=SOURCE_LABEL,
        buckets=buckets,
    )
    _LOGGER.debug(
        "Parsed polar '%s': %d wind speeds, %d points",
        name,
        len(buckets),
        sum(len(b.angle_data) for b in buckets),
    )
    return table


def read_polar_file(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def build_csv(table: PolarTable) -> str:
    """Render a table as ``;`` separated degrees/knots, one column per bucket."""
    angles = sorted(
        {round(math.degrees(e.angle), 1) for b in table.buckets for e in b.angle_data if e.speed}
    )
    lookup: dict[tuple[int, float], float] = {}
    for idx, bucket in enumerate(table.buckets):
        for e in bucket.angle_data:
            if e.speed:
                lookup[(idx, round(math.degrees(e.angle), 1))] = e.speed

    header = ["twa/tws"] + [f"{ms_to_knots(ws):.1f}" for ws in table.wind_speeds()]
    lines = [";".join(header)]
    for a in angles:
        row = [f"{a:g}"]
        for idx in range(len(table.buckets)):
            v = lookup.get((idx, a))
            row.append("" if v is None else f"{ms_to_knots(v):.2f}")
        lines.append(";".join(row))
    return "\n".join(lines)


def write_file(path: str, content: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(content)
