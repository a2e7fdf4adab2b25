"""Strategies that follow instantaneous grid export."""

from __future__ import annotations

import logging
import math

from ..const import DEFAULT_MAX_AMPERE, DEFAULT_MULTIPLE_OF
from ..models import Field
from ..ports import TelemetryPort
from .base import GRID_FIELDS, TelemetryStrategy, excess_to_ampere, net_export

logger = logging.getLogger(__name__)


class ExcessSolarAggressiveStrategy(TelemetryStrategy):
    """Charge with everything that would otherwise be exported, minus a buffer."""

    def __init__(
        self,
        telemetry: TelemetryPort,
        buffer_power: float,
        multiple_of: int = DEFAULT_MULTIPLE_OF,
        max_ampere: int = DEFAULT_MAX_AMPERE,
    ) -> None:
        super().__init__(telemetry)
        self._buffer_power = buffer_power
        self._multiple_of = multiple_of
        self._max_ampere = max_ampere

    async def determine_charging_speed(self, current_ampere: int) -> int:
        values = await self._query(GRID_FIELDS)
        voltage = values[Field.VOLTAGE]
        export = net_export(values)

        excess = export - self._buffer_power + current_ampere * voltage
        if excess > 0:
            logger.debug("Excess solar %.0fW (net export %.0fW)", excess, export)

        return excess_to_ampere(excess, voltage, self._multiple_of, self._max_ampere)


class FixedSpeedStrategy(TelemetryStrategy):
    """Charge at one fixed current, but only when surplus covers it."""

    def __init__(
        self,
        telemetry: TelemetryPort,
        fixed_ampere: int,
        buffer_power: float,
        max_ampere: int = DEFAULT_MAX_AMPERE,
    ) -> None:
        if not 0 <= fixed_ampere <= max_ampere:
            raise ValueError(f"Fixed speed must be between 0 and {max_ampere} amperes")
        super().__init__(telemetry)
        self._fixed_ampere = fixed_ampere
        self._buffer_power = buffer_power

    async def determine_charging_speed(self, current_ampere: int) -> int:
        values = await self._query(GRID_FIELDS)
        voltage = values[Field.VOLTAGE]

        available = net_export(values) + current_ampere * voltage - self._buffer_power
        if available >= self._fixed_ampere * voltage:
            return self._fixed_ampere
        return 0


class ExcessFeedInStrategy(TelemetryStrategy):
    """Only soak up what exceeds the allowed grid feed-in."""

    def __init__(self, telemetry: TelemetryPort, max_feed_in_allowed: float) -> None:
        super().__init__(telemetry)
        self._max_feed_in_allowed = max_feed_in_allowed

    async def determine_charging_speed(self, current_ampere: int) -> int:
        values = await self._query(GRID_FIELDS)
        voltage = values[Field.VOLTAGE]

        produced_excess = net_export(values) + current_ampere * voltage
        wasted = produced_excess - self._max_feed_in_allowed
        logger.debug("Excess above feed-in cap: %.0fW", wasted)

        # Round up to a multiple of 2
        return max(0, math.ceil(wasted / voltage / 2) * 2)
