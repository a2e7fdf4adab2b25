"""Solar EV charger: charge a car from surplus solar production."""

__version__ = "1.0.0"
