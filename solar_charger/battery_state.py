"""Battery State Cache: periodically refreshed vehicle state of charge."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from .const import BATTERY_STATE_REFRESH_COOLDOWN
from .errors import ChargerError
from .events import AmpereChanged, ChargerEvent
from .models import BatteryState
from .ports import VehiclePort

logger = logging.getLogger(__name__)


class BatteryStateCache:
    """Keeps the last known battery state, refreshed on ampere changes.

    A refresh happens only when an AmpereChanged event arrives and the
    cached state is at least ``cooldown`` seconds old. Failed refreshes keep
    the previous state; ``get()`` returns None until a fetch has succeeded.
    """

    def __init__(
        self,
        vehicle: VehiclePort,
        cooldown: float = BATTERY_STATE_REFRESH_COOLDOWN,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._vehicle = vehicle
        self._cooldown = cooldown
        self._clock = clock
        self._state: BatteryState | None = None

    def get(self) -> BatteryState | None:
        return self._state

    async def refresh(self) -> None:
        """Fetch the battery state unconditionally."""
        try:
            result = await self._vehicle.get_charge_state()
        except ChargerError as e:
            logger.warning("Failed to refresh battery state: %s", e)
            return
        except Exception:
            logger.exception("Unexpected error refreshing battery state")
            return

        self._state = BatteryState(
            battery_level=result.battery_level,
            charge_limit_soc=result.charge_limit_soc,
            queried_at=self._clock(),
        )
        logger.debug(
            "Battery state: %.0f%% (limit %.0f%%)",
            self._state.battery_level,
            self._state.charge_limit_soc,
        )

    async def handle(self, event: ChargerEvent) -> None:
        """Refresh on an ampere change once the cooldown has elapsed."""
        if not isinstance(event, AmpereChanged):
            return

        now = self._clock()
        since_last = now - self._state.queried_at if self._state else float("inf")
        if since_last < self._cooldown:
            return

        logger.info(
            "Refreshing battery state: ampere changed (%d -> %d), last queried %s",
            event.previous,
            event.current,
            f"{since_last / 60:.0f}min ago" if self._state else "never",
        )
        await self.refresh()

    async def run(self, events: asyncio.Queue[ChargerEvent]) -> None:
        """Consume events until cancelled."""
        while True:
            event = await events.get()
            await self.handle(event)
