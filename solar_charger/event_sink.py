"""Event sinks: where session notifications go."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from .const import (
    TOPIC_AMPERE,
    TOPIC_EVENT,
    TOPIC_SESSION,
    TOPIC_STATUS,
)
from .models import SessionSummary
from .mqtt_client import MQTTClient

logger = logging.getLogger(__name__)


class EventSink:
    """Receives controller notifications. Every hook defaults to a no-op."""

    async def on_set_ampere(self, ampere: int) -> None:
        pass

    async def on_no_ampere_change(self, ampere: int) -> None:
        pass

    async def on_charging_started(self) -> None:
        pass

    async def on_charging_stopped(self) -> None:
        pass

    async def on_wake_up(self, attempt: int) -> None:
        pass

    async def on_retry(self, reason: str, attempt: int) -> None:
        pass

    async def on_fatal_error(self, error: BaseException) -> None:
        pass

    async def on_session_end(self, summary: SessionSummary) -> None:
        pass


class LoggingEventSink(EventSink):
    """Reports events through the logging module."""

    async def on_set_ampere(self, ampere: int) -> None:
        logger.info("Setting charging rate to %dA", ampere)

    async def on_no_ampere_change(self, ampere: int) -> None:
        logger.info("No ampere change. Current charging ampere: %dA", ampere)

    async def on_charging_started(self) -> None:
        logger.info("Charging started")

    async def on_charging_stopped(self) -> None:
        logger.info("Charging stopped")

    async def on_wake_up(self, attempt: int) -> None:
        logger.info("Waking up vehicle (attempt %d)", attempt)

    async def on_retry(self, reason: str, attempt: int) -> None:
        logger.warning("Retrying sync (%s, attempt %d)", reason, attempt)

    async def on_fatal_error(self, error: BaseException) -> None:
        logger.error("Session terminated: %s", error)

    async def on_session_end(self, summary: SessionSummary) -> None:
        logger.info(
            "Session ended after %.0f min: %.2f kWh charged (%.2f kWh solar, %.2f kWh grid), "
            "avg %.1fA, %d ampere fluctuations, grid cost %.2f",
            summary.duration / 60,
            summary.total_energy_charged_kwh,
            summary.solar_energy_used_kwh,
            summary.grid_import_kwh,
            summary.average_charging_speed_amps,
            summary.ampere_fluctuations,
            summary.grid_import_cost,
        )


class MqttEventSink(EventSink):
    """Publishes events as MQTT state topics."""

    def __init__(self, mqtt: MQTTClient, prefix: str) -> None:
        self._mqtt = mqtt
        self._prefix = prefix.rstrip("/")

    def _topic(self, suffix: str) -> str:
        return f"{self._prefix}/{suffix}"

    async def _event(self, name: str, **data: object) -> None:
        await self._mqtt.publish(self._topic(TOPIC_EVENT), json.dumps({"event": name, **data}))

    async def on_set_ampere(self, ampere: int) -> None:
        await self._mqtt.publish(self._topic(TOPIC_AMPERE), str(ampere), retain=True)

    async def on_no_ampere_change(self, ampere: int) -> None:
        await self._mqtt.publish(self._topic(TOPIC_AMPERE), str(ampere), retain=True)

    async def on_charging_started(self) -> None:
        await self._mqtt.publish(self._topic(TOPIC_STATUS), "charging", retain=True)

    async def on_charging_stopped(self) -> None:
        await self._mqtt.publish(self._topic(TOPIC_STATUS), "idle", retain=True)
        await self._mqtt.publish(self._topic(TOPIC_AMPERE), "0", retain=True)

    async def on_wake_up(self, attempt: int) -> None:
        await self._event("wake_up", attempt=attempt)

    async def on_retry(self, reason: str, attempt: int) -> None:
        await self._event("retry", reason=reason, attempt=attempt)

    async def on_fatal_error(self, error: BaseException) -> None:
        await self._mqtt.publish(self._topic(TOPIC_STATUS), "error", retain=True)
        await self._event("fatal_error", error=type(error).__name__, message=str(error))

    async def on_session_end(self, summary: SessionSummary) -> None:
        await self._mqtt.publish(
            self._topic(TOPIC_SESSION), json.dumps(asdict(summary)), retain=True
        )
        await self._mqtt.publish(self._topic(TOPIC_STATUS), "stopped", retain=True)


class CompositeEventSink(EventSink):
    """Forwards every event to several sinks in order."""

    def __init__(self, *sinks: EventSink) -> None:
        self._sinks = sinks

    async def on_set_ampere(self, ampere: int) -> None:
        for sink in self._sinks:
            await sink.on_set_ampere(ampere)

    async def on_no_ampere_change(self, ampere: int) -> None:
        for sink in self._sinks:
            await sink.on_no_ampere_change(ampere)

    async def on_charging_started(self) -> None:
        for sink in self._sinks:
            await sink.on_charging_started()

    async def on_charging_stopped(self) -> None:
        for sink in self._sinks:
            await sink.on_charging_stopped()

    async def on_wake_up(self, attempt: int) -> None:
        for sink in self._sinks:
            await sink.on_wake_up(attempt)

    async def on_retry(self, reason: str, attempt: int) -> None:
        for sink in self._sinks:
            await sink.on_retry(reason, attempt)

    async def on_fatal_error(self, error: BaseException) -> None:
        for sink in self._sinks:
            await sink.on_fatal_error(error)

    async def on_session_end(self, summary: SessionSummary) -> None:
        for sink in self._sinks:
            await sink.on_session_end(summary)
