"""Exception hierarchy for the polar engine."""

from __future__ import annotations

from homeassistant.exceptions import HomeAssistantError


class PolarError(HomeAssistantError):
    """Base exception for all polar engine errors."""


class InvalidTriangle(PolarError):
    """Apparent wind, true wind and boat speed do not form a triangle."""

    def __init__(self, cos_alpha: float) -> None:
        self.cos_alpha = cos_alpha
        super().__init__(f"invalid wind triangle (cos alpha = {cos_alpha:.4f})")


class StaleData(PolarError):
    """Fused readings are missing or too far apart in time to be recorded."""


class PolarImportError(PolarError):
    """A static polar table could not be parsed."""

    def __init__(self, message: str, *, row: int | None = None) -> None:
        self.row = row
        if row is not None:
            message = f"row {row}: {message}"
        super().__init__(message)


class IndexOutOfRange(PolarError):
    """A computed bucket index falls outside the table."""


class LookupMiss(PolarError):
    """No data stored near the queried wind speed/angle."""


class UnknownTable(PolarError):
    """No polar table is stored under the requested id."""

    def __init__(self, table_id: str) -> None:
        self.table_id = table_id
        super().__init__(f"No polar table with id '{table_id}'")
