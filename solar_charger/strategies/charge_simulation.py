"""Simulate whether the remaining charge fits into the forecast sunshine."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo

from ..const import (
    COMPLETION_TOLERANCE_KWH,
    DEFAULT_BUFFER_MULTIPLIER_MAX,
    DEFAULT_CAR_BATTERY_CAPACITY_KWH,
    DEFAULT_MULTIPLE_OF,
    DEFAULT_PEAK_SOLAR_CAPACITY_KW,
    DEFAULT_SOLAR_CUTOFF_HOUR,
    FORECAST_PERIOD_HOURS,
    MIN_CHARGING_THRESHOLD_W,
)
from ..models import BatteryState, ForecastPeriod, SimulationResult
from .solar_calculations import (
    calculate_default_monthly_peak_factors,
    expected_capacity_kw,
    period_confidence,
)


@dataclass(frozen=True)
class WeatherAwareBufferConfig:
    """Tuning of the weather-aware buffer."""

    min_buffer_power: float  # W, floor of the buffer
    latitude: float
    longitude: float = 0.0
    buffer_multiplier_max: float = DEFAULT_BUFFER_MULTIPLIER_MAX
    car_battery_capacity_kwh: float = DEFAULT_CAR_BATTERY_CAPACITY_KWH
    peak_solar_capacity_kw: float = DEFAULT_PEAK_SOLAR_CAPACITY_KW
    monthly_peak_factors: tuple[float, ...] | None = None  # [Jan..Dec]
    deadline_hour: float | None = None  # e.g. 14 -> car needed at 2PM
    solar_cutoff_hour: float = DEFAULT_SOLAR_CUTOFF_HOUR
    multiple_of: int = DEFAULT_MULTIPLE_OF

    def __post_init__(self) -> None:
        if self.monthly_peak_factors is not None and len(self.monthly_peak_factors) != 12:
            raise ValueError("monthly_peak_factors needs one factor per month")
        if self.buffer_multiplier_max < 1:
            raise ValueError("buffer_multiplier_max must be at least 1")

    @property
    def cutoff_hour(self) -> float:
        return self.deadline_hour if self.deadline_hour is not None else self.solar_cutoff_hour

    def peak_factors(self) -> Sequence[float]:
        if self.monthly_peak_factors is not None:
            return self.monthly_peak_factors
        return calculate_default_monthly_peak_factors(self.latitude)


def local_hour(moment: datetime, tz: tzinfo | None = None) -> float:
    """Fractional hour of a timestamp in the site's timezone."""
    local = moment.astimezone(tz)
    return local.hour + local.minute / 60


def weather_buffer(config: WeatherAwareBufferConfig, confidence: float) -> float:
    """Buffer watts, growing from the minimum towards the max as confidence falls."""
    return config.min_buffer_power * (1 + (config.buffer_multiplier_max - 1) * (1 - confidence))


def simulate_charge(
    config: WeatherAwareBufferConfig,
    periods: Sequence[ForecastPeriod],
    battery: BatteryState | None,
    now: datetime,
    tz: tzinfo | None = None,
) -> SimulationResult:
    """Walk the forecast up to the cutoff hour and spend usable energy on the car."""
    if battery is None:
        return SimulationResult(
            can_complete=False,
            usable_slots=0,
            total_slots=0,
            utilization_ratio=0.0,
            shortfall_kwh=0.0,
        )

    remaining = (
        (battery.charge_limit_soc - battery.battery_level) / 100 * config.car_battery_capacity_kwh
    )
    factors = config.peak_factors()
    usable_slots = 0
    total_slots = 0

    for period in periods:
        if period.period_end < now:
            continue
        hour = local_hour(period.period_end, tz)
        if hour >= config.cutoff_hour:
            continue

        total_slots += 1
        expected = expected_capacity_kw(
            period.period_end.astimezone(tz),
            hour,
            config.latitude,
            config.peak_solar_capacity_kw,
            factors,
        )
        confidence = period_confidence(period.pv_estimate, expected)
        available_w = period.pv_estimate * 1000 - weather_buffer(config, confidence)

        if available_w > MIN_CHARGING_THRESHOLD_W and remaining > 0:
            # Cloudy periods are less reliable, discount them
            remaining -= available_w / 1000 * FORECAST_PERIOD_HOURS * confidence
            usable_slots += 1
            if remaining <= 0:
                break

    can_complete = remaining <= COMPLETION_TOLERANCE_KWH
    return SimulationResult(
        can_complete=can_complete,
        usable_slots=usable_slots,
        total_slots=total_slots,
        utilization_ratio=usable_slots / total_slots if total_slots else 0.0,
        shortfall_kwh=0.0 if can_complete else remaining,
    )
