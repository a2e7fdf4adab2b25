"""Exceptions raised by the solar charger."""

from __future__ import annotations


class ChargerError(Exception):
    """Base class for recoverable and session-fatal charger errors."""


# Telemetry


class TelemetryError(ChargerError):
    """Telemetry could not be read."""


class DataNotAvailableError(TelemetryError):
    """The source is reachable but the requested data is missing."""


class SourceNotAvailableError(TelemetryError):
    """The source could not be reached after bounded retries."""


# Strategy


class InadequateDataError(ChargerError):
    """A strategy lacks the data needed to decide on a charging speed."""


# Vehicle


class VehicleError(ChargerError):
    """Base class for vehicle command errors."""


class VehicleAsleepError(VehicleError):
    """The vehicle is asleep and must be woken before commands succeed."""

    def __init__(self, message: str = "Vehicle is asleep") -> None:
        super().__init__(message)


class VehicleCommandFailedError(VehicleError):
    """A vehicle command failed for a reason other than sleep."""

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class VehicleNotWakingUpError(VehicleError):
    """The vehicle stayed asleep after every wake-up attempt."""

    def __init__(self, wakeup_attempts: int) -> None:
        super().__init__(f"Vehicle did not wake up after {wakeup_attempts} attempts")
        self.wakeup_attempts = wakeup_attempts


class AuthenticationFailedError(VehicleError):
    """Refreshing the vehicle API credentials failed."""


# Environment


class ProductionDropError(ChargerError):
    """Supply dropped while a current increase was settling."""

    def __init__(self, baseline: float, current: float, grid_import: float) -> None:
        super().__init__(
            f"Sudden production drop: baseline={baseline:.0f}W "
            f"current={current:.0f}W grid_import={grid_import:.0f}W"
        )
        self.baseline = baseline
        self.current = current
        self.grid_import = grid_import


# Collaborators


class ForecastNotAvailableError(ChargerError):
    """No solar forecast could be fetched or served from cache."""


class HomeAssistantError(ChargerError):
    """A Home Assistant API request failed."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body

    @property
    def is_transport_error(self) -> bool:
        """True when no HTTP response was received at all."""
        return self.status is None


# Defects


class ProductionDropRetriesExhaustedError(RuntimeError):
    """Production kept dropping across every retry of one sync iteration."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Production dropped on {attempts} consecutive attempts")
        self.attempts = attempts


class SessionAlreadyStartedError(RuntimeError):
    """start() was called on a session that is not pending."""
