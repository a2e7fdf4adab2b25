"""Data models for the solar charger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .const import (
    DEFAULT_BUFFER_POWER,
    DEFAULT_COST_PER_KWH,
    DEFAULT_EXTRA_WAIT_ON_CHARGE_START,
    DEFAULT_EXTRA_WAIT_ON_CHARGE_STOP,
    DEFAULT_INACTIVITY_TIME,
    DEFAULT_MAX_AMPERE,
    DEFAULT_MAX_PRODUCTION_DROP_RETRIES,
    DEFAULT_MAX_WAKEUP_ATTEMPTS,
    DEFAULT_MIN_AMPERE,
    DEFAULT_STOP_CHARGING_ATTEMPTS,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TOKEN_REFRESH_INTERVAL,
    DEFAULT_VEHICLE_AWAKENING_TIME,
    DEFAULT_VOLTAGE,
    DEFAULT_WAIT_PER_AMPERE,
    DEFAULT_WATCHDOG_POLL_INTERVAL,
)


class Field(str, Enum):
    """Telemetry fields understood by the telemetry port."""

    VOLTAGE = "voltage"
    CURRENT_PRODUCTION = "current_production"  # W
    CURRENT_LOAD = "current_load"  # W
    DAILY_IMPORT = "daily_import"  # kWh, cumulative
    EXPORT_TO_GRID = "export_to_grid"  # W
    IMPORT_FROM_GRID = "import_from_grid"  # W


class SessionStatus(Enum):
    """Lifecycle of one charging session."""

    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ChargeState:
    """What the controller believes it has commanded."""

    running: bool = False
    ampere: int = 0
    ampere_fluctuations: int = 0
    last_command_at: float | None = None  # monotonic seconds
    daily_import_at_start: float = 0.0  # kWh


@dataclass(frozen=True)
class TimingConfig:
    """Pacing of the control loop, all in seconds."""

    sync_interval: float = DEFAULT_SYNC_INTERVAL
    vehicle_awakening_time: float = DEFAULT_VEHICLE_AWAKENING_TIME
    inactivity_time: float = DEFAULT_INACTIVITY_TIME
    wait_per_ampere: float = DEFAULT_WAIT_PER_AMPERE
    extra_wait_on_charge_start: float = DEFAULT_EXTRA_WAIT_ON_CHARGE_START
    extra_wait_on_charge_stop: float = DEFAULT_EXTRA_WAIT_ON_CHARGE_STOP
    max_runtime: float | None = None
    watchdog_poll_interval: float = DEFAULT_WATCHDOG_POLL_INTERVAL
    token_refresh_interval: float = DEFAULT_TOKEN_REFRESH_INTERVAL

    def __post_init__(self) -> None:
        for name in (
            "sync_interval",
            "vehicle_awakening_time",
            "inactivity_time",
            "wait_per_ampere",
            "extra_wait_on_charge_start",
            "extra_wait_on_charge_stop",
            "max_runtime",
        ):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")
        # Polling loops must make progress
        for name in ("watchdog_poll_interval", "token_refresh_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


@dataclass(frozen=True)
class ChargingLimits:
    """Electrical limits and retry bounds for one session."""

    min_ampere: int = DEFAULT_MIN_AMPERE
    max_ampere: int = DEFAULT_MAX_AMPERE
    buffer_power: float = DEFAULT_BUFFER_POWER  # W
    voltage: float = DEFAULT_VOLTAGE  # fallback for energy estimates
    cost_per_kwh: float = DEFAULT_COST_PER_KWH
    max_wakeup_attempts: int = DEFAULT_MAX_WAKEUP_ATTEMPTS
    max_production_drop_retries: int = DEFAULT_MAX_PRODUCTION_DROP_RETRIES
    stop_charging_attempts: int = DEFAULT_STOP_CHARGING_ATTEMPTS

    def __post_init__(self) -> None:
        if not 0 < self.min_ampere <= self.max_ampere:
            raise ValueError(
                f"Need 0 < min_ampere <= max_ampere, got {self.min_ampere}/{self.max_ampere}"
            )
        if self.buffer_power < 0 or self.cost_per_kwh < 0:
            raise ValueError("buffer_power and cost_per_kwh must be non-negative")
        if self.voltage <= 0:
            raise ValueError(f"voltage must be positive, got {self.voltage}")
        if self.max_wakeup_attempts < 0 or self.max_production_drop_retries < 0:
            raise ValueError("Retry bounds must be non-negative")
        if self.stop_charging_attempts < 1:
            raise ValueError("stop_charging_attempts must be at least 1")


@dataclass(frozen=True)
class VehicleChargeState:
    """Battery readings reported by the vehicle."""

    battery_level: float  # %
    charge_limit_soc: float  # %


@dataclass(frozen=True)
class BatteryState:
    """Vehicle battery snapshot."""

    battery_level: float  # %
    charge_limit_soc: float  # %
    queried_at: float  # seconds, clock of the cache


@dataclass(frozen=True)
class SessionSummary:
    """Totals reported when a session ends."""

    duration: float  # seconds
    total_energy_charged_kwh: float
    grid_import_kwh: float
    solar_energy_used_kwh: float
    average_charging_speed_amps: float
    ampere_fluctuations: int
    grid_import_cost: float


@dataclass(frozen=True)
class ForecastPeriod:
    """One 30-minute solar forecast period."""

    pv_estimate: float  # kW average over the period
    period_end: datetime
    pv_estimate10: float = 0.0
    pv_estimate90: float = 0.0


@dataclass(frozen=True)
class SunTimes:
    """Sunrise and sunset as fractional local solar hours."""

    sunrise: float
    sunset: float


@dataclass(frozen=True)
class SimulationResult:
    """Outcome of simulating the remaining charge against a forecast."""

    can_complete: bool
    usable_slots: int
    total_slots: int
    utilization_ratio: float
    shortfall_kwh: float
