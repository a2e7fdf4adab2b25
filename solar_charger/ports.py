"""Interfaces of the collaborators the controller drives."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from .models import Field, ForecastPeriod, VehicleChargeState


class TelemetryPort(Protocol):
    """Point-in-time electrical readings."""

    async def query_latest_values(self, fields: Iterable[Field]) -> dict[Field, float]:
        """Return the latest value of every requested field.

        Raises DataNotAvailableError or SourceNotAvailableError.
        """

    async def get_lowest_value_in_last_minutes(self, field: Field, minutes: int) -> float:
        """Return the minimum of a field over a trailing window."""


class VehiclePort(Protocol):
    """Commands against the vehicle."""

    async def refresh_access_token(self) -> None: ...

    async def wake_up_car(self) -> None: ...

    async def start_charging(self) -> None: ...

    async def stop_charging(self) -> None: ...

    async def set_ampere(self, ampere: int) -> None: ...

    async def get_charge_state(self) -> VehicleChargeState: ...


class ChargingSpeedStrategy(Protocol):
    """Turns telemetry into a desired charging current."""

    async def determine_charging_speed(self, current_ampere: int) -> int:
        """Return the desired ampere given the currently applied one.

        Raises InadequateDataError when telemetry is unavailable.
        """


class ForecastProvider(Protocol):
    """Upcoming solar production."""

    async def get_forecast(self) -> list[ForecastPeriod]:
        """Return forecast periods, raising ForecastNotAvailableError."""
