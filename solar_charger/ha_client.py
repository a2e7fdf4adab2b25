"""Home Assistant REST API client."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import aiohttp

from .const import HTTP_TIMEOUT
from .errors import HomeAssistantError

logger = logging.getLogger(__name__)


class HAClient:
    """Client for the HA REST API (directly or via the Supervisor proxy)."""

    def __init__(self, base_url: str, token: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        if not self._token:
            logger.warning("No Home Assistant token set - HA API calls will fail")

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self, method: str, path: str, *, params: dict | None = None, json: Any = None
    ) -> Any:
        """Issue a request and return the decoded JSON body.

        Raises HomeAssistantError with ``status`` None on transport errors
        and with the HTTP status on non-2xx responses.
        """
        url = f"{self._base_url}{path}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    headers=self._headers,
                    params=params,
                    json=json,
                    timeout=aiohttp.ClientTimeout(total=HTTP_TIMEOUT),
                ) as resp:
                    if resp.status not in (200, 201):
                        body = await resp.text()
                        logger.warning("%s %s returned %d", method, path, resp.status)
                        raise HomeAssistantError(
                            f"{method} {path} returned {resp.status}",
                            status=resp.status,
                            body=body,
                        )
                    return await resp.json()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise HomeAssistantError(f"{method} {path} failed: {e}") from e

    async def check_api(self) -> None:
        """Verify the API is reachable and the token is accepted."""
        await self._request("GET", "/")

    async def get_state(self, entity_id: str) -> str | None:
        """Get the state value of an entity.

        Returns None when the entity is unavailable or unknown.
        """
        data = await self._request("GET", f"/states/{entity_id}")
        state = data.get("state")
        if state in ("unavailable", "unknown", None):
            logger.debug("Entity %s is %s", entity_id, state)
            return None
        return state

    async def get_float(self, entity_id: str) -> float | None:
        """Get entity state as a float."""
        state = await self.get_state(entity_id)
        if state is None:
            return None
        try:
            return float(state)
        except (ValueError, TypeError):
            logger.warning("Entity %s has non-numeric state: %s", entity_id, state)
            return None

    async def get_history(self, entity_id: str, start: datetime) -> list[str]:
        """Return the recorded states of an entity since ``start``."""
        data = await self._request(
            "GET",
            f"/history/period/{start.isoformat()}",
            params={
                "filter_entity_id": entity_id,
                "minimal_response": "",
                "no_attributes": "",
            },
        )
        if not data:
            return []
        return [row.get("state") for row in data[0]]

    async def call_service(self, domain: str, service: str, data: dict) -> None:
        """Call a HA service."""
        await self._request("POST", f"/services/{domain}/{service}", json=data)

    async def set_number(self, entity_id: str, value: float) -> None:
        """Set a number entity value."""
        await self.call_service(
            "number", "set_value",
            {"entity_id": entity_id, "value": round(value)},
        )

    async def turn_on(self, entity_id: str) -> None:
        await self.call_service("switch", "turn_on", {"entity_id": entity_id})

    async def turn_off(self, entity_id: str) -> None:
        await self.call_service("switch", "turn_off", {"entity_id": entity_id})

    async def press(self, entity_id: str) -> None:
        await self.call_service("button", "press", {"entity_id": entity_id})
