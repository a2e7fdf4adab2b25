"""MQTT publisher for charger state, built on aiomqtt."""

from __future__ import annotations

import asyncio
import logging
from collections import deque

import aiomqtt

from .const import MQTT_RECONNECT_DELAY, PENDING_EVENT_LIMIT

logger = logging.getLogger(__name__)

ONLINE = "online"
OFFLINE = "offline"


class MQTTClient:
    """Publishes charger state; holds back messages while disconnected.

    Retained messages are state: while offline only the newest payload per
    topic is kept. Non-retained messages are events and are buffered up to
    ``PENDING_EVENT_LIMIT``, dropping the oldest. The broker marks the
    charger offline through the last will on ``availability_topic``.
    """

    def __init__(
        self,
        host: str,
        port: int,
        availability_topic: str,
        username: str = "",
        password: str = "",
    ) -> None:
        self._host = host
        self._port = port
        self._username = username or None
        self._password = password or None
        self.availability_topic = availability_topic
        self._connected = asyncio.Event()
        self._client: aiomqtt.Client | None = None
        self._pending_state: dict[str, str] = {}
        self._pending_events: deque[tuple[str, str]] = deque(maxlen=PENDING_EVENT_LIMIT)

    @property
    def connected(self) -> asyncio.Event:
        """Set while a broker connection is up."""
        return self._connected

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        if self._client is not None and self._connected.is_set():
            try:
                await self._client.publish(topic, payload, retain=retain)
                return
            except aiomqtt.MqttError as e:
                logger.warning("Publish to %s failed (%s), holding it back", topic, e)
        self._hold(topic, payload, retain)

    def _hold(self, topic: str, payload: str, retain: bool) -> None:
        if retain:
            self._pending_state[topic] = payload
        else:
            self._pending_events.append((topic, payload))

    async def start(self) -> None:
        """Keep a broker connection open until cancelled, reconnecting on loss."""
        will = aiomqtt.Will(self.availability_topic, OFFLINE, retain=True)
        while True:
            try:
                logger.info("Connecting to MQTT broker at %s:%d", self._host, self._port)
                async with aiomqtt.Client(
                    hostname=self._host,
                    port=self._port,
                    username=self._username,
                    password=self._password,
                    will=will,
                ) as client:
                    self._client = client
                    await client.publish(self.availability_topic, ONLINE, retain=True)
                    self._connected.set()
                    logger.info("MQTT connected")

                    await self.flush()

                    # Nothing is subscribed; iterating only surfaces disconnects
                    async for _ in client.messages:
                        pass

            except aiomqtt.MqttError as e:
                logger.warning(
                    "MQTT connection lost: %s. Reconnecting in %ds...",
                    e,
                    MQTT_RECONNECT_DELAY,
                )
                await asyncio.sleep(MQTT_RECONNECT_DELAY)
            finally:
                self._connected.clear()
                self._client = None

    async def flush(self) -> None:
        """Send everything held back while disconnected."""
        if self._client is None or not self._connected.is_set():
            return

        held = [(topic, payload, True) for topic, payload in self._pending_state.items()]
        held += [(topic, payload, False) for topic, payload in self._pending_events]
        self._pending_state.clear()
        self._pending_events.clear()

        for index, (topic, payload, retain) in enumerate(held):
            try:
                await self._client.publish(topic, payload, retain=retain)
            except aiomqtt.MqttError:
                for rest in held[index:]:
                    self._hold(*rest)
                break
        else:
            if held:
                logger.debug("Flushed %d held-back MQTT messages", len(held))
