"""Charging speed strategies."""

from .charge_simulation import WeatherAwareBufferConfig, simulate_charge
from .conservative import ConservativeStrategy
from .excess import ExcessFeedInStrategy, ExcessSolarAggressiveStrategy, FixedSpeedStrategy
from .smoothing import SmoothingStrategy
from .weather_aware import WeatherAwareBufferStrategy

__all__ = [
    "ConservativeStrategy",
    "ExcessFeedInStrategy",
    "ExcessSolarAggressiveStrategy",
    "FixedSpeedStrategy",
    "SmoothingStrategy",
    "WeatherAwareBufferConfig",
    "WeatherAwareBufferStrategy",
    "simulate_charge",
]
