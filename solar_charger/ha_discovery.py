"""HA MQTT Discovery: announce the charger's sensors to Home Assistant."""

from __future__ import annotations

import json
import logging

from .const import (
    DEVICE_IDENTIFIER,
    DEVICE_MANUFACTURER,
    DEVICE_MODEL,
    DEVICE_NAME,
    TOPIC_AMPERE,
    TOPIC_AVAILABILITY,
    TOPIC_SESSION,
    TOPIC_STATUS,
)
from .mqtt_client import MQTTClient

logger = logging.getLogger(__name__)


def _device_info() -> dict:
    """Device block shared by every charger sensor."""
    return {
        "identifiers": [DEVICE_IDENTIFIER],
        "name": DEVICE_NAME,
        "manufacturer": DEVICE_MANUFACTURER,
        "model": DEVICE_MODEL,
    }


class HADiscoveryPublisher:
    """Announces the charger sensors to Home Assistant over MQTT discovery."""

    def __init__(self, mqtt: MQTTClient, topic_prefix: str, discovery_prefix: str) -> None:
        self._mqtt = mqtt
        self._topic_prefix = topic_prefix.rstrip("/")
        self._prefix = discovery_prefix.rstrip("/")

    def entity_configs(self) -> dict[str, dict]:
        """Discovery topic -> config payload for every announced entity."""
        session_topic = f"{self._topic_prefix}/{TOPIC_SESSION}"
        configs = {
            "ampere": {
                "name": "Charging Current",
                "unique_id": f"{DEVICE_IDENTIFIER}_ampere",
                "state_topic": f"{self._topic_prefix}/{TOPIC_AMPERE}",
                "unit_of_measurement": "A",
                "device_class": "current",
                "state_class": "measurement",
                "icon": "mdi:current-ac",
            },
            "status": {
                "name": "Charger Status",
                "unique_id": f"{DEVICE_IDENTIFIER}_status",
                "state_topic": f"{self._topic_prefix}/{TOPIC_STATUS}",
                "icon": "mdi:information-outline",
            },
            "session_energy": {
                "name": "Session Energy",
                "unique_id": f"{DEVICE_IDENTIFIER}_session_energy",
                "state_topic": session_topic,
                "value_template": "{{ value_json.total_energy_charged_kwh | round(2) }}",
                "unit_of_measurement": "kWh",
                "device_class": "energy",
                "icon": "mdi:battery-charging",
            },
            "session_solar": {
                "name": "Session Solar Energy",
                "unique_id": f"{DEVICE_IDENTIFIER}_session_solar",
                "state_topic": session_topic,
                "value_template": "{{ value_json.solar_energy_used_kwh | round(2) }}",
                "unit_of_measurement": "kWh",
                "device_class": "energy",
                "icon": "mdi:solar-power",
            },
            "session_grid_cost": {
                "name": "Session Grid Cost",
                "unique_id": f"{DEVICE_IDENTIFIER}_session_grid_cost",
                "state_topic": session_topic,
                "value_template": "{{ value_json.grid_import_cost | round(2) }}",
                "icon": "mdi:cash",
            },
        }
        shared = {
            "availability_topic": f"{self._topic_prefix}/{TOPIC_AVAILABILITY}",
            "device": _device_info(),
        }
        return {
            f"{self._prefix}/sensor/{DEVICE_IDENTIFIER}_{key}/config": {**config, **shared}
            for key, config in configs.items()
        }

    async def publish_on_connect(self) -> None:
        """Announce once the broker connection is up."""
        await self._mqtt.connected.wait()
        await self.publish_all()

    async def publish_all(self) -> None:
        logger.info("Announcing charger sensors to Home Assistant")
        configs = self.entity_configs()
        for topic, config in configs.items():
            await self._mqtt.publish(topic, json.dumps(config), retain=True)
        logger.info("HA Discovery configs published (%d entities)", len(configs))
