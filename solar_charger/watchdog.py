"""Production-Drop Watchdog: watches supply while a current increase settles."""

from __future__ import annotations

import asyncio
import logging

from .errors import ProductionDropError
from .models import Field
from .ports import TelemetryPort

logger = logging.getLogger(__name__)


class ProductionDropWatchdog:
    """Races a settle timer against live telemetry.

    The timer arm succeeds after the settle time. The watch arm polls
    telemetry and raises ProductionDropError as soon as the household
    imports from the grid or production falls below the baseline minus the
    buffer. Whichever arm finishes first wins; the other is cancelled and
    awaited before ``watch`` returns.
    """

    def __init__(
        self,
        telemetry: TelemetryPort,
        buffer_power: float,
        poll_interval: float,
    ) -> None:
        self._telemetry = telemetry
        self._buffer_power = buffer_power
        self._poll_interval = poll_interval

    async def watch(self, baseline: float, seconds: float) -> None:
        """Wait ``seconds`` unless production drops first."""
        timer = asyncio.create_task(asyncio.sleep(seconds), name="watchdog-timer")
        watcher = asyncio.create_task(self._watch(baseline), name="watchdog-watcher")
        try:
            done, _ = await asyncio.wait(
                {timer, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (timer, watcher):
                task.cancel()
            await asyncio.gather(timer, watcher, return_exceptions=True)

        if watcher in done:
            # Raises ProductionDropError or a telemetry error
            watcher.result()
        logger.debug("Settled after %.1fs without production drop", seconds)

    async def _watch(self, baseline: float) -> None:
        threshold = baseline - self._buffer_power
        while True:
            await asyncio.sleep(self._poll_interval)
            values = await self._telemetry.query_latest_values(
                (Field.CURRENT_PRODUCTION, Field.IMPORT_FROM_GRID)
            )
            production = values[Field.CURRENT_PRODUCTION]
            grid_import = values[Field.IMPORT_FROM_GRID]

            if grid_import > 0 or production < threshold:
                logger.warning(
                    "Production drop while settling: baseline=%.0fW current=%.0fW import=%.0fW",
                    baseline,
                    production,
                    grid_import,
                )
                raise ProductionDropError(baseline, production, grid_import)
