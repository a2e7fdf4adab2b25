"""Entry point for the solar EV charger."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from .battery_state import BatteryStateCache
from .config import STRATEGIES, AppConfig, load_config
from .const import TOPIC_AVAILABILITY
from .controller import ChargingController
from .event_sink import CompositeEventSink, EventSink, LoggingEventSink, MqttEventSink
from .events import EventBus
from .forecast import SolcastForecast
from .ha_client import HAClient
from .ha_discovery import HADiscoveryPublisher
from .mqtt_client import MQTTClient
from .ports import ChargingSpeedStrategy, TelemetryPort
from .strategies import (
    ConservativeStrategy,
    ExcessFeedInStrategy,
    ExcessSolarAggressiveStrategy,
    FixedSpeedStrategy,
    SmoothingStrategy,
    WeatherAwareBufferConfig,
    WeatherAwareBufferStrategy,
)
from .telemetry import HomeAssistantTelemetry
from .vehicle import DryRunVehicle, HomeAssistantVehicle

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="solar_charger",
        description="Charge an EV from surplus solar production.",
    )
    parser.add_argument(
        "--strategy",
        choices=STRATEGIES,
        help="Charging speed strategy (default: from configuration)",
    )
    parser.add_argument(
        "--smooth",
        action="store_true",
        help="Only raise the current after several consistent readings",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log vehicle commands instead of sending them",
    )
    return parser.parse_args(argv)


def build_strategy(
    config: AppConfig,
    telemetry: TelemetryPort,
    battery_state: BatteryStateCache,
) -> ChargingSpeedStrategy:
    """Create the configured strategy, wrapped in smoothing if requested."""
    strategy: ChargingSpeedStrategy
    if config.strategy == "aggressive":
        strategy = ExcessSolarAggressiveStrategy(
            telemetry, config.buffer_power, config.multiple_of, config.max_ampere
        )
    elif config.strategy == "conservative":
        strategy = ConservativeStrategy(telemetry)
    elif config.strategy == "fixed":
        strategy = FixedSpeedStrategy(
            telemetry, config.fixed_ampere, config.buffer_power, config.max_ampere
        )
    elif config.strategy == "feed-in":
        strategy = ExcessFeedInStrategy(telemetry, config.max_feed_in_allowed)
    elif config.strategy == "weather-aware":
        strategy = WeatherAwareBufferStrategy(
            telemetry,
            SolcastForecast(config.solcast_api_key, config.solcast_resource_id),
            battery_state,
            WeatherAwareBufferConfig(
                min_buffer_power=config.buffer_power,
                latitude=config.latitude,
                longitude=config.longitude,
                buffer_multiplier_max=config.buffer_multiplier_max,
                car_battery_capacity_kwh=config.car_battery_capacity_kwh,
                peak_solar_capacity_kw=config.peak_solar_capacity_kw,
                deadline_hour=config.deadline_hour if config.deadline_hour >= 0 else None,
                solar_cutoff_hour=config.solar_cutoff_hour,
                multiple_of=config.multiple_of,
            ),
            max_ampere=config.max_ampere,
        )
    else:
        raise ValueError(f"Unknown strategy {config.strategy!r}")

    if config.smooth:
        strategy = SmoothingStrategy(strategy, config.required_consistent_reads)
    return strategy


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, controller: ChargingController
) -> set[asyncio.Task]:
    """Stop the session on SIGINT/SIGTERM; return the set of pending stop tasks."""
    stopping: set[asyncio.Task] = set()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        task = asyncio.create_task(controller.stop(), name="stop")
        stopping.add(task)
        task.add_done_callback(stopping.discard)

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _signal_handler)
    return stopping


async def run(config: AppConfig) -> int:
    """Run one charging session; return the process exit code."""
    ha = HAClient(config.ha_url, config.ha_token)
    telemetry = HomeAssistantTelemetry.from_config(config, ha)
    vehicle: HomeAssistantVehicle | DryRunVehicle = HomeAssistantVehicle.from_config(config, ha)
    if config.dry_run:
        logger.info("Dry run: vehicle commands are only logged")
        vehicle = DryRunVehicle(vehicle)

    bus = EventBus()
    battery_state = BatteryStateCache(vehicle)
    strategy = build_strategy(config, telemetry, battery_state)

    sinks: list[EventSink] = [LoggingEventSink()]
    background: list[asyncio.Task] = []
    mqtt: MQTTClient | None = None
    if config.mqtt_host:
        mqtt = MQTTClient(
            config.mqtt_host,
            config.mqtt_port,
            f"{config.mqtt_topic_prefix.rstrip('/')}/{TOPIC_AVAILABILITY}",
            username=config.mqtt_username,
            password=config.mqtt_password,
        )
        discovery = HADiscoveryPublisher(
            mqtt, config.mqtt_topic_prefix, config.ha_discovery_prefix
        )
        sinks.append(MqttEventSink(mqtt, config.mqtt_topic_prefix))
        background.append(asyncio.create_task(mqtt.start(), name="mqtt"))
        background.append(asyncio.create_task(discovery.publish_on_connect(), name="discovery"))

    controller = ChargingController(
        vehicle,
        telemetry,
        strategy,
        CompositeEventSink(*sinks),
        config.timing(),
        config.limits(),
        event_bus=bus,
        battery_state=battery_state,
    )

    stopping = install_signal_handlers(asyncio.get_running_loop(), controller)

    exit_code = 0
    try:
        await controller.start()
    except Exception:
        logger.exception("Charging session failed")
        exit_code = 1
    finally:
        await asyncio.gather(*stopping, return_exceptions=True)
        if mqtt is not None:
            # Allow the final state to be sent
            await mqtt.flush()
            await asyncio.sleep(1)
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        logger.info("Solar charger stopped")

    return exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config()
    if args.strategy:
        config.strategy = args.strategy
    config.smooth = config.smooth or args.smooth
    config.dry_run = config.dry_run or args.dry_run

    try:
        config.validate()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info(
        "Starting solar charger: strategy=%s smooth=%s dry_run=%s, %d-%dA, buffer %.0fW",
        config.strategy,
        config.smooth,
        config.dry_run,
        config.min_ampere,
        config.max_ampere,
        config.buffer_power,
    )
    return asyncio.run(run(config))


if __name__ == "__main__":
    sys.exit(main())
