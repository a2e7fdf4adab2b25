"""Conservative strategy: sized on the worst production of the last half hour."""

from __future__ import annotations

import logging
import math

from ..const import CONSERVATIVE_BUFFER_POWER, CONSERVATIVE_WINDOW_MINUTES
from ..models import Field
from ..ports import TelemetryPort
from .base import TelemetryStrategy

logger = logging.getLogger(__name__)


class ConservativeStrategy(TelemetryStrategy):
    """Trades responsiveness for stability.

    Uses the lowest production seen over a trailing window instead of the
    instantaneous reading, so a passing cloud does not ramp the charger up
    and down.
    """

    def __init__(
        self,
        telemetry: TelemetryPort,
        buffer_power: float = CONSERVATIVE_BUFFER_POWER,
        window_minutes: int = CONSERVATIVE_WINDOW_MINUTES,
    ) -> None:
        super().__init__(telemetry)
        self._buffer_power = buffer_power
        self._window_minutes = window_minutes

    async def determine_charging_speed(self, current_ampere: int) -> int:
        values = await self._query((Field.VOLTAGE, Field.CURRENT_LOAD))
        voltage = values[Field.VOLTAGE]
        lowest_production = await self._lowest(
            Field.CURRENT_PRODUCTION, self._window_minutes
        )
        # A new windowed minimum is a fresh reading even when voltage and load repeat
        self.last_reading = (
            *(self.last_reading or ()),
            ("lowest_production", lowest_production),
        )

        # Load includes the car, so add back what we are already drawing
        household_load = values[Field.CURRENT_LOAD] - current_ampere * voltage
        available = lowest_production - household_load - self._buffer_power
        logger.debug(
            "Lowest production %.0fW over %d min, household load %.0fW",
            lowest_production,
            self._window_minutes,
            household_load,
        )
        return max(0, math.floor(available / voltage))
