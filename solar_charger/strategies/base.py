"""Shared plumbing for telemetry-driven charging speed strategies."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable

from ..errors import InadequateDataError, TelemetryError
from ..models import Field
from ..ports import TelemetryPort

logger = logging.getLogger(__name__)

GRID_FIELDS = (Field.VOLTAGE, Field.EXPORT_TO_GRID, Field.IMPORT_FROM_GRID)


class TelemetryStrategy:
    """Base class for strategies that decide from one telemetry snapshot.

    ``last_reading`` holds the raw values behind the latest decision so
    wrappers can tell a fresh sample from a repeated stale one.
    """

    def __init__(self, telemetry: TelemetryPort) -> None:
        self._telemetry = telemetry
        self.last_reading: tuple[tuple[str, float], ...] | None = None

    async def _query(self, fields: Iterable[Field]) -> dict[Field, float]:
        try:
            values = await self._telemetry.query_latest_values(fields)
        except TelemetryError as e:
            logger.warning("%s: telemetry unavailable: %s", type(self).__name__, e)
            raise InadequateDataError(str(e)) from e
        voltage = values.get(Field.VOLTAGE)
        if voltage is not None and voltage <= 0:
            raise InadequateDataError(f"Voltage reading is {voltage}V")
        self.last_reading = tuple(sorted((f.value, v) for f, v in values.items()))
        return values

    async def _lowest(self, field: Field, minutes: int) -> float:
        try:
            return await self._telemetry.get_lowest_value_in_last_minutes(field, minutes)
        except TelemetryError as e:
            logger.warning("%s: history unavailable: %s", type(self).__name__, e)
            raise InadequateDataError(str(e)) from e


def net_export(values: dict[Field, float]) -> float:
    return values[Field.EXPORT_TO_GRID] - values[Field.IMPORT_FROM_GRID]


def excess_to_ampere(excess: float, voltage: float, multiple_of: int, max_ampere: int) -> int:
    """Round excess watts down to a multiple of amperes, capped at the ceiling."""
    if excess / voltage >= max_ampere:
        return max_ampere
    return max(0, math.floor(excess / voltage / multiple_of) * multiple_of)
