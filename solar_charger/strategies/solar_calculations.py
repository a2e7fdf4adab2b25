"""Solar geometry: sun times and expected panel capacity."""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import date, datetime

from ..const import FULL_CONFIDENCE_RATIO
from ..models import SunTimes


def _declination_rad(day_of_year: int) -> float:
    return math.radians(23.45) * math.sin(2 * math.pi * (284 + day_of_year) / 365)


def calculate_sun_times(day: date, latitude: float) -> SunTimes:
    """Sunrise and sunset in local solar hours for a date and latitude."""
    day_of_year = day.timetuple().tm_yday - 1
    cos_hour_angle = -math.tan(math.radians(latitude)) * math.tan(_declination_rad(day_of_year))

    # Polar night
    if cos_hour_angle >= 1:
        return SunTimes(sunrise=12, sunset=12)
    # Polar day
    if cos_hour_angle <= -1:
        return SunTimes(sunrise=0, sunset=24)

    # 15 degrees of hour angle per hour either side of solar noon
    half_day = math.degrees(math.acos(cos_hour_angle)) / 15
    return SunTimes(sunrise=12 - half_day, sunset=12 + half_day)


def calculate_default_monthly_peak_factors(latitude: float) -> list[float]:
    """Relative noon output per month [Jan..Dec], normalised so the best is 1.0."""
    factors = []
    for month in range(1, 13):
        day_of_year = date(2024, month, 15).timetuple().tm_yday
        declination_deg = math.degrees(_declination_rad(day_of_year))
        elevation_deg = 90 - abs(latitude - declination_deg)
        factors.append(max(0.0, math.sin(math.radians(elevation_deg))))

    best = max(factors)
    if best > 0:
        return [f / best for f in factors]
    return [1.0] * 12


def expected_capacity_kw(
    when: datetime,
    hour: float,
    latitude: float,
    peak_solar_capacity_kw: float,
    monthly_peak_factors: Sequence[float] | None = None,
) -> float:
    """Clear-sky output at a local hour: peak * month factor * cos^2 day curve."""
    if monthly_peak_factors is None:
        monthly_peak_factors = calculate_default_monthly_peak_factors(latitude)

    sun = calculate_sun_times(when.date(), latitude)
    if hour < sun.sunrise or hour > sun.sunset:
        return 0.0

    solar_noon = (sun.sunrise + sun.sunset) / 2
    half_span = (sun.sunset - sun.sunrise) / 2
    if half_span <= 0:
        return 0.0

    # -1 at sunrise, 0 at noon, 1 at sunset
    hour_angle = (hour - solar_noon) / half_span
    daily_shape = math.cos(hour_angle * math.pi / 2) ** 2

    month_factor = monthly_peak_factors[when.month - 1]
    return peak_solar_capacity_kw * month_factor * daily_shape


def period_confidence(pv_power_kw: float, expected_kw: float) -> float:
    """How far to trust a forecast period, 0..1.

    Reaching 70% of clear-sky capacity already counts as full confidence.
    """
    if expected_kw <= 0:
        return 0.0
    return min(1.0, pv_power_kw / expected_kw / FULL_CONFIDENCE_RATIO)
