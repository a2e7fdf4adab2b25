"""Configuration loading for the solar charger."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields

from .const import (
    DEFAULT_BUFFER_MULTIPLIER_MAX,
    DEFAULT_BUFFER_POWER,
    DEFAULT_CAR_BATTERY_CAPACITY_KWH,
    DEFAULT_COST_PER_KWH,
    DEFAULT_EXTRA_WAIT_ON_CHARGE_START,
    DEFAULT_EXTRA_WAIT_ON_CHARGE_STOP,
    DEFAULT_HA_DISCOVERY_PREFIX,
    DEFAULT_INACTIVITY_TIME,
    DEFAULT_MAX_AMPERE,
    DEFAULT_MAX_PRODUCTION_DROP_RETRIES,
    DEFAULT_MAX_WAKEUP_ATTEMPTS,
    DEFAULT_MIN_AMPERE,
    DEFAULT_MQTT_TOPIC_PREFIX,
    DEFAULT_MULTIPLE_OF,
    DEFAULT_PEAK_SOLAR_CAPACITY_KW,
    DEFAULT_REQUIRED_CONSISTENT_READS,
    DEFAULT_SOLAR_CUTOFF_HOUR,
    DEFAULT_STOP_CHARGING_ATTEMPTS,
    DEFAULT_SYNC_INTERVAL,
    DEFAULT_TOKEN_REFRESH_INTERVAL,
    DEFAULT_VEHICLE_AWAKENING_TIME,
    DEFAULT_VOLTAGE,
    DEFAULT_WAIT_PER_AMPERE,
    DEFAULT_WATCHDOG_POLL_INTERVAL,
    HA_SUPERVISOR_API_URL,
    OPTIONS_PATH,
)
from .models import ChargingLimits, TimingConfig

logger = logging.getLogger(__name__)

STRATEGIES = ("aggressive", "conservative", "fixed", "feed-in", "weather-aware")


@dataclass
class AppConfig:
    """Application configuration."""

    # Home Assistant API
    ha_url: str = HA_SUPERVISOR_API_URL
    ha_token: str = ""

    # Telemetry entities
    production_entity_id: str = "sensor.pv_power"
    load_entity_id: str = "sensor.house_load_power"
    export_entity_id: str = "sensor.grid_export_power"
    import_entity_id: str = "sensor.grid_import_power"
    daily_import_entity_id: str = "sensor.daily_grid_import"
    voltage_entity_id: str = ""  # Empty -> fixed voltage

    # Vehicle entities
    charge_switch_entity_id: str = "switch.tesla_charge"
    charge_current_entity_id: str = "number.tesla_charge_current"
    wake_button_entity_id: str = "button.tesla_wake"
    battery_level_entity_id: str = "sensor.tesla_battery_level"
    charge_limit_entity_id: str = "number.tesla_charge_limit"

    # Strategy
    strategy: str = "aggressive"
    smooth: bool = False
    dry_run: bool = False
    multiple_of: int = DEFAULT_MULTIPLE_OF
    fixed_ampere: int = 16
    max_feed_in_allowed: float = 5000.0
    required_consistent_reads: int = DEFAULT_REQUIRED_CONSISTENT_READS

    # Limits
    min_ampere: int = DEFAULT_MIN_AMPERE
    max_ampere: int = DEFAULT_MAX_AMPERE
    buffer_power: float = DEFAULT_BUFFER_POWER
    voltage: float = DEFAULT_VOLTAGE
    cost_per_kwh: float = DEFAULT_COST_PER_KWH
    max_wakeup_attempts: int = DEFAULT_MAX_WAKEUP_ATTEMPTS
    max_production_drop_retries: int = DEFAULT_MAX_PRODUCTION_DROP_RETRIES
    stop_charging_attempts: int = DEFAULT_STOP_CHARGING_ATTEMPTS

    # Timing (seconds)
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    vehicle_awakening_time: float = DEFAULT_VEHICLE_AWAKENING_TIME
    inactivity_time: float = DEFAULT_INACTIVITY_TIME
    wait_per_ampere: float = DEFAULT_WAIT_PER_AMPERE
    extra_wait_on_charge_start: float = DEFAULT_EXTRA_WAIT_ON_CHARGE_START
    extra_wait_on_charge_stop: float = DEFAULT_EXTRA_WAIT_ON_CHARGE_STOP
    max_runtime: float = 0.0  # 0 -> unlimited
    watchdog_poll_interval: float = DEFAULT_WATCHDOG_POLL_INTERVAL
    token_refresh_interval: float = DEFAULT_TOKEN_REFRESH_INTERVAL

    # MQTT (empty host disables publishing)
    mqtt_host: str = ""
    mqtt_port: int = 1883
    mqtt_username: str = ""
    mqtt_password: str = ""
    mqtt_topic_prefix: str = DEFAULT_MQTT_TOPIC_PREFIX
    ha_discovery_prefix: str = DEFAULT_HA_DISCOVERY_PREFIX

    # Solcast forecast
    solcast_api_key: str = ""
    solcast_resource_id: str = ""

    # Weather-aware buffer
    latitude: float = 0.0
    longitude: float = 0.0
    peak_solar_capacity_kw: float = DEFAULT_PEAK_SOLAR_CAPACITY_KW
    car_battery_capacity_kwh: float = DEFAULT_CAR_BATTERY_CAPACITY_KWH
    buffer_multiplier_max: float = DEFAULT_BUFFER_MULTIPLIER_MAX
    solar_cutoff_hour: float = DEFAULT_SOLAR_CUTOFF_HOUR
    deadline_hour: float = -1.0  # Negative -> no deadline

    def timing(self) -> TimingConfig:
        """Build the validated timing configuration."""
        return TimingConfig(
            sync_interval=self.sync_interval,
            vehicle_awakening_time=self.vehicle_awakening_time,
            inactivity_time=self.inactivity_time,
            wait_per_ampere=self.wait_per_ampere,
            extra_wait_on_charge_start=self.extra_wait_on_charge_start,
            extra_wait_on_charge_stop=self.extra_wait_on_charge_stop,
            max_runtime=self.max_runtime or None,
            watchdog_poll_interval=self.watchdog_poll_interval,
            token_refresh_interval=self.token_refresh_interval,
        )

    def limits(self) -> ChargingLimits:
        """Build the validated charging limits."""
        return ChargingLimits(
            min_ampere=self.min_ampere,
            max_ampere=self.max_ampere,
            buffer_power=self.buffer_power,
            voltage=self.voltage,
            cost_per_kwh=self.cost_per_kwh,
            max_wakeup_attempts=self.max_wakeup_attempts,
            max_production_drop_retries=self.max_production_drop_retries,
            stop_charging_attempts=self.stop_charging_attempts,
        )

    def validate(self) -> None:
        """Raise ValueError if the configuration cannot drive a session."""
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy {self.strategy!r}, expected one of {STRATEGIES}")
        if self.multiple_of < 1:
            raise ValueError("multiple_of must be at least 1")
        if self.required_consistent_reads < 1:
            raise ValueError("required_consistent_reads must be at least 1")
        if self.strategy == "weather-aware" and not (
            self.solcast_api_key and self.solcast_resource_id
        ):
            raise ValueError("weather-aware strategy needs Solcast credentials")
        self.timing()
        self.limits()


def load_config() -> AppConfig:
    """Load configuration from add-on options or environment variables."""
    config = AppConfig()

    # Try loading from add-on options.json
    if os.path.exists(OPTIONS_PATH):
        try:
            with open(OPTIONS_PATH) as f:
                options = json.load(f)
            logger.info("Loaded configuration from %s", OPTIONS_PATH)
            _apply_options(config, options)
            if not config.ha_token:
                config.ha_token = os.environ.get("SUPERVISOR_TOKEN", "")
            return config
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load %s: %s, falling back to env vars", OPTIONS_PATH, e)

    # Fallback: environment variables
    _apply_env(config, os.environ)
    return config


def _coerce(current: object, raw: object) -> object:
    """Convert a raw option to the type of the current value."""
    if isinstance(current, bool):
        if isinstance(raw, str):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        return bool(raw)
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return str(raw)


def _apply_options(config: AppConfig, options: dict) -> None:
    """Apply options.json values to config."""
    for f in fields(config):
        value = options.get(f.name)
        if value is None or value == "":
            continue
        try:
            setattr(config, f.name, _coerce(getattr(config, f.name), value))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid option %s=%r", f.name, value)


def _apply_env(config: AppConfig, environ: dict[str, str]) -> None:
    """Apply environment variables to config.

    Every field maps to its upper-cased name, e.g. BUFFER_POWER.
    """
    for f in fields(config):
        value = environ.get(f.name.upper())
        if value is None or value == "":
            continue
        try:
            setattr(config, f.name, _coerce(getattr(config, f.name), value))
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", f.name.upper(), value)

    # Inside a Supervisor add-on the token comes from the environment
    if not config.ha_token:
        config.ha_token = environ.get("SUPERVISOR_TOKEN", "")
