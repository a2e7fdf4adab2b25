"""Tests for event sinks and MQTT discovery."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from solar_charger.event_sink import CompositeEventSink, LoggingEventSink, MqttEventSink
from solar_charger.ha_discovery import HADiscoveryPublisher
from solar_charger.models import SessionSummary
from solar_charger.const import PENDING_EVENT_LIMIT
from solar_charger.mqtt_client import MQTTClient

SUMMARY = SessionSummary(
    duration=3600,
    total_energy_charged_kwh=2.3,
    grid_import_kwh=0.5,
    solar_energy_used_kwh=1.8,
    average_charging_speed_amps=10,
    ampere_fluctuations=4,
    grid_import_cost=0.15,
)


@pytest.fixture
def mqtt():
    return AsyncMock(spec=MQTTClient)


async def test_mqtt_sink_publishes_ampere_and_status(mqtt):
    sink = MqttEventSink(mqtt, "solar_charger/")

    await sink.on_charging_started()
    await sink.on_set_ampere(12)

    mqtt.publish.assert_any_await("solar_charger/status", "charging", retain=True)
    mqtt.publish.assert_any_await("solar_charger/ampere", "12", retain=True)


async def test_mqtt_sink_publishes_session_summary(mqtt):
    sink = MqttEventSink(mqtt, "solar_charger")

    await sink.on_session_end(SUMMARY)

    topic, payload = mqtt.publish.await_args_list[0].args
    assert topic == "solar_charger/session"
    assert json.loads(payload)["solar_energy_used_kwh"] == 1.8


async def test_mqtt_sink_reports_fatal_error(mqtt):
    sink = MqttEventSink(mqtt, "solar_charger")

    await sink.on_fatal_error(ValueError("boom"))

    topic, payload = mqtt.publish.await_args_list[-1].args
    assert topic == "solar_charger/event"
    assert json.loads(payload) == {"event": "fatal_error", "error": "ValueError", "message": "boom"}


async def test_composite_forwards_to_every_sink():
    first, second = AsyncMock(), AsyncMock()
    sink = CompositeEventSink(first, second)

    await sink.on_retry("vehicle asleep", 2)
    await sink.on_session_end(SUMMARY)

    for inner in (first, second):
        inner.on_retry.assert_awaited_once_with("vehicle asleep", 2)
        inner.on_session_end.assert_awaited_once_with(SUMMARY)


async def test_logging_sink_logs_summary(caplog):
    caplog.set_level("INFO")

    await LoggingEventSink().on_session_end(SUMMARY)

    assert "2.30 kWh charged" in caplog.text


async def test_discovery_announces_sensors(mqtt):
    publisher = HADiscoveryPublisher(mqtt, "solar_charger", "homeassistant")

    await publisher.publish_all()

    published = {call.args[0]: json.loads(call.args[1]) for call in mqtt.publish.await_args_list}
    ampere = published["homeassistant/sensor/solar_charger_ampere/config"]
    assert ampere["state_topic"] == "solar_charger/ampere"
    assert ampere["device"]["identifiers"] == ["solar_charger"]
    assert ampere["availability_topic"] == "solar_charger/availability"
    energy = published["homeassistant/sensor/solar_charger_session_energy/config"]
    assert energy["state_topic"] == "solar_charger/session"
    assert all(call.kwargs["retain"] for call in mqtt.publish.await_args_list)


async def test_mqtt_holds_back_messages_while_disconnected():
    client = MQTTClient("broker", 1883, "solar_charger/availability")
    client._client = AsyncMock()

    await client.publish("solar_charger/status", "charging", retain=True)
    await client.publish("solar_charger/status", "stopped", retain=True)
    for i in range(PENDING_EVENT_LIMIT + 5):
        await client.publish("solar_charger/event", str(i))

    client._client.publish.assert_not_awaited()
    assert client._pending_state == {"solar_charger/status": "stopped"}
    assert len(client._pending_events) == PENDING_EVENT_LIMIT
    assert client._pending_events[0] == ("solar_charger/event", "5")

    client.connected.set()
    await client.flush()

    sent = client._client.publish.await_args_list
    assert sent[0].args == ("solar_charger/status", "stopped")
    assert sent[0].kwargs == {"retain": True}
    assert len(sent) == PENDING_EVENT_LIMIT + 1
    assert not client._pending_state and not client._pending_events
