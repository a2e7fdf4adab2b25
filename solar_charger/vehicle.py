"""Vehicle: charge commands through the car's Home Assistant entities."""

from __future__ import annotations

import logging
from collections.abc import Awaitable

from .config import AppConfig
from .errors import (
    AuthenticationFailedError,
    DataNotAvailableError,
    HomeAssistantError,
    VehicleAsleepError,
    VehicleCommandFailedError,
)
from .ha_client import HAClient
from .models import VehicleChargeState

logger = logging.getLogger(__name__)

# Error text the vehicle integrations return while the car sleeps
ASLEEP_MARKERS = ("asleep", "offline", "not awake")
ALREADY_CHARGING_MARKERS = ("is_charging", "already charging")


def _classify(name: str, error: HomeAssistantError) -> Exception:
    """Map a failed service call to a vehicle error."""
    body = error.body.lower()
    if any(marker in body for marker in ASLEEP_MARKERS):
        return VehicleAsleepError()
    return VehicleCommandFailedError(f"{name} failed: {error}", detail=error.body or None)


class HomeAssistantVehicle:
    """Drives a vehicle exposed as HA switch/number/button entities."""

    def __init__(
        self,
        ha: HAClient,
        charge_switch: str,
        charge_current: str,
        wake_button: str,
        battery_level: str,
        charge_limit: str,
    ) -> None:
        self._ha = ha
        self._charge_switch = charge_switch
        self._charge_current = charge_current
        self._wake_button = wake_button
        self._battery_level = battery_level
        self._charge_limit = charge_limit

    @classmethod
    def from_config(cls, config: AppConfig, ha: HAClient) -> HomeAssistantVehicle:
        return cls(
            ha,
            charge_switch=config.charge_switch_entity_id,
            charge_current=config.charge_current_entity_id,
            wake_button=config.wake_button_entity_id,
            battery_level=config.battery_level_entity_id,
            charge_limit=config.charge_limit_entity_id,
        )

    async def _command(self, name: str, call: Awaitable[None]) -> None:
        try:
            await call
        except HomeAssistantError as e:
            raise _classify(name, e) from e
        logger.debug("Vehicle command %s succeeded", name)

    async def refresh_access_token(self) -> None:
        """Check that the HA token is still accepted."""
        try:
            await self._ha.check_api()
        except HomeAssistantError as e:
            raise AuthenticationFailedError(f"Home Assistant API check failed: {e}") from e

    async def wake_up_car(self) -> None:
        try:
            await self._command("wake", self._ha.press(self._wake_button))
        except VehicleAsleepError as e:
            raise VehicleCommandFailedError(
                "Vehicle is still asleep while issuing wake-up"
            ) from e

    async def start_charging(self) -> None:
        try:
            await self._command("charge_start", self._ha.turn_on(self._charge_switch))
        except VehicleCommandFailedError as e:
            detail = (e.detail or "").lower()
            if any(marker in detail for marker in ALREADY_CHARGING_MARKERS):
                logger.info("Vehicle is already charging")
                return
            raise

    async def stop_charging(self) -> None:
        await self._command("charge_stop", self._ha.turn_off(self._charge_switch))

    async def set_ampere(self, ampere: int) -> None:
        await self._command(
            "set_charging_amps", self._ha.set_number(self._charge_current, ampere)
        )

    async def get_charge_state(self) -> VehicleChargeState:
        try:
            level = await self._ha.get_float(self._battery_level)
            limit = await self._ha.get_float(self._charge_limit)
        except HomeAssistantError as e:
            raise VehicleCommandFailedError(f"Charge state query failed: {e}") from e
        if level is None or limit is None:
            raise DataNotAvailableError("Battery level or charge limit unavailable")
        return VehicleChargeState(battery_level=level, charge_limit_soc=limit)


class DryRunVehicle:
    """Logs write commands instead of sending them; reads pass through."""

    def __init__(self, vehicle: HomeAssistantVehicle) -> None:
        self._vehicle = vehicle

    async def refresh_access_token(self) -> None:
        await self._vehicle.refresh_access_token()

    async def wake_up_car(self) -> None:
        logger.info("[dry-run] wake up car")

    async def start_charging(self) -> None:
        logger.info("[dry-run] start charging")

    async def stop_charging(self) -> None:
        logger.info("[dry-run] stop charging")

    async def set_ampere(self, ampere: int) -> None:
        logger.info("[dry-run] set charging current to %dA", ampere)

    async def get_charge_state(self) -> VehicleChargeState:
        return await self._vehicle.get_charge_state()
