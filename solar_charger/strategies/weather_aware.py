"""Weather-aware buffer: size the safety buffer from the solar forecast."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone, tzinfo

from ..battery_state import BatteryStateCache
from ..const import DEFAULT_MAX_AMPERE, FORECAST_PERIOD_HOURS, URGENCY_BUFFER_REDUCTION
from ..errors import ForecastNotAvailableError
from ..models import Field, ForecastPeriod, SimulationResult
from ..ports import ForecastProvider, TelemetryPort
from .base import GRID_FIELDS, TelemetryStrategy, excess_to_ampere, net_export
from .charge_simulation import (
    WeatherAwareBufferConfig,
    local_hour,
    simulate_charge,
    weather_buffer,
)
from .solar_calculations import expected_capacity_kw, period_confidence

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeatherAwareBufferStrategy(TelemetryStrategy):
    """Excess-solar charging with a buffer that follows the weather.

    On a clear day the buffer stays at its minimum; under clouds it grows
    up to ``buffer_multiplier_max`` times the minimum. With a deadline and
    a known battery state, the buffer shrinks as the simulated share of
    usable forecast periods rises, so the car still gets charged in time.
    """

    def __init__(
        self,
        telemetry: TelemetryPort,
        forecast: ForecastProvider,
        battery_state: BatteryStateCache,
        config: WeatherAwareBufferConfig,
        max_ampere: int = DEFAULT_MAX_AMPERE,
        clock: Callable[[], datetime] = _utcnow,
        tz: tzinfo | None = None,
    ) -> None:
        super().__init__(telemetry)
        self._forecast = forecast
        self._battery_state = battery_state
        self._config = config
        self._max_ampere = max_ampere
        self._clock = clock
        self._tz = tz
        self._peak_factors = config.peak_factors()
        self._cached_simulation: SimulationResult | None = None
        self._simulation_key: object = None

        logger.info(
            "Weather-aware buffer initialized: peak=%.1fkW latitude=%.2f factors=%s",
            config.peak_solar_capacity_kw,
            config.latitude,
            ", ".join(f"{f:.2f}" for f in self._peak_factors),
        )

    async def _get_periods(self) -> list[ForecastPeriod]:
        try:
            return await self._forecast.get_forecast()
        except ForecastNotAvailableError as e:
            logger.warning("Solar forecast unavailable, using minimum buffer: %s", e)
            return []

    def _simulate(self, periods: list[ForecastPeriod], now: datetime) -> SimulationResult:
        battery = self._battery_state.get()
        key = (
            tuple(p.period_end for p in periods),
            (battery.battery_level, battery.charge_limit_soc) if battery else None,
        )
        if key != self._simulation_key or self._cached_simulation is None:
            self._cached_simulation = simulate_charge(
                self._config, periods, battery, now, self._tz
            )
            self._simulation_key = key
            result = self._cached_simulation
            if not result.can_complete and result.shortfall_kwh > 0:
                logger.warning(
                    "Forecast shows %.1f kWh shortfall by %02.0f:00 due to cloud cover. "
                    "Charging conservatively.",
                    result.shortfall_kwh,
                    self._config.cutoff_hour,
                )
        return self._cached_simulation

    def determine_buffer(self, periods: list[ForecastPeriod], now: datetime) -> float:
        """Buffer watts for the forecast period covering ``now``."""
        config = self._config
        simulation = self._simulate(periods, now)

        window = timedelta(hours=FORECAST_PERIOD_HOURS)
        current = next(
            (p for p in periods if now <= p.period_end < now + window),
            None,
        )
        if current is None:
            return config.min_buffer_power

        expected = expected_capacity_kw(
            current.period_end.astimezone(self._tz),
            local_hour(current.period_end, self._tz),
            config.latitude,
            config.peak_solar_capacity_kw,
            self._peak_factors,
        )
        buffer = weather_buffer(config, period_confidence(current.pv_estimate, expected))

        # Urgency only matters when the car is needed by a deadline
        if config.deadline_hour is not None and self._battery_state.get() is not None:
            buffer *= 1 - simulation.utilization_ratio * URGENCY_BUFFER_REDUCTION

        return max(config.min_buffer_power, buffer)

    async def determine_charging_speed(self, current_ampere: int) -> int:
        now = self._clock()
        periods = await self._get_periods()
        buffer = self.determine_buffer(periods, now)

        values = await self._query(GRID_FIELDS)
        voltage = values[Field.VOLTAGE]
        excess = net_export(values) - buffer + current_ampere * voltage
        logger.debug("Weather-aware buffer %.0fW, excess %.0fW", buffer, excess)

        return excess_to_ampere(excess, voltage, self._config.multiple_of, self._max_ampere)
