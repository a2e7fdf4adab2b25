"""Smoothing wrapper: fast to back off, slow to ramp up."""

from __future__ import annotations

import logging
from collections import deque

from ..const import DEFAULT_REQUIRED_CONSISTENT_READS
from ..ports import ChargingSpeedStrategy

logger = logging.getLogger(__name__)


class SmoothingStrategy:
    """Wraps another strategy to suppress oscillation.

    Lower readings are applied immediately. A higher reading is only
    applied once ``required_consistent_reads`` consecutive fresh readings
    all ask for more than the applied current; the smallest of them wins.

    A reading is fresh when the wrapped strategy's ``last_reading`` differs
    from the previous one. Sensors that return the same stale sample on
    every poll therefore cannot push the current up on their own. Wrapped
    strategies without ``last_reading`` count every reading as fresh.
    """

    def __init__(
        self,
        base: ChargingSpeedStrategy,
        required_consistent_reads: int = DEFAULT_REQUIRED_CONSISTENT_READS,
    ) -> None:
        if required_consistent_reads < 1:
            raise ValueError("required_consistent_reads must be at least 1")
        self._base = base
        self._required = required_consistent_reads
        self._streak: deque[int] = deque(maxlen=required_consistent_reads)
        self._last_signature: object = None

    @property
    def last_reading(self) -> object:
        return getattr(self._base, "last_reading", None)

    def _is_fresh(self) -> bool:
        signature = self.last_reading
        if signature is None:
            return True
        fresh = signature != self._last_signature
        self._last_signature = signature
        return fresh

    async def determine_charging_speed(self, current_ampere: int) -> int:
        candidate = await self._base.determine_charging_speed(current_ampere)
        fresh = self._is_fresh()

        if candidate <= current_ampere:
            self._streak.clear()
            return candidate

        if not fresh:
            logger.debug("Stale reading, holding at %dA (candidate %dA)", current_ampere, candidate)
            return current_ampere

        self._streak.append(candidate)
        if len(self._streak) < self._required:
            logger.debug(
                "Increase to %dA pending (%d/%d consistent reads)",
                candidate,
                len(self._streak),
                self._required,
            )
            return current_ampere

        target = min(self._streak)
        self._streak.clear()
        return target
