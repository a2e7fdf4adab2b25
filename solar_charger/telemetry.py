"""Telemetry: electrical readings from Home Assistant sensors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from .config import AppConfig
from .const import (
    TELEMETRY_BACKOFF_FACTOR,
    TELEMETRY_BACKOFF_INITIAL,
    TELEMETRY_MAX_RETRIES,
)
from .errors import DataNotAvailableError, HomeAssistantError, SourceNotAvailableError
from .ha_client import HAClient
from .models import Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class HomeAssistantTelemetry:
    """Reads telemetry fields from HA sensor entities.

    Transport errors are retried with exponential backoff; HTTP error
    statuses are not. A missing or unavailable sensor raises
    DataNotAvailableError, an unreachable API SourceNotAvailableError.
    """

    def __init__(
        self,
        ha: HAClient,
        entities: Mapping[Field, str],
        fixed_voltage: float,
        max_retries: int = TELEMETRY_MAX_RETRIES,
        backoff_initial: float = TELEMETRY_BACKOFF_INITIAL,
    ) -> None:
        self._ha = ha
        self._entities = dict(entities)
        self._fixed_voltage = fixed_voltage
        self._max_retries = max_retries
        self._backoff_initial = backoff_initial

    @classmethod
    def from_config(cls, config: AppConfig, ha: HAClient) -> HomeAssistantTelemetry:
        entities = {
            Field.CURRENT_PRODUCTION: config.production_entity_id,
            Field.CURRENT_LOAD: config.load_entity_id,
            Field.EXPORT_TO_GRID: config.export_entity_id,
            Field.IMPORT_FROM_GRID: config.import_entity_id,
            Field.DAILY_IMPORT: config.daily_import_entity_id,
        }
        if config.voltage_entity_id:
            entities[Field.VOLTAGE] = config.voltage_entity_id
        return cls(ha, entities, fixed_voltage=config.voltage)

    async def query_latest_values(self, fields: Iterable[Field]) -> dict[Field, float]:
        values: dict[Field, float] = {}
        for field in fields:
            values[field] = await self._read(field)
        return values

    async def get_lowest_value_in_last_minutes(self, field: Field, minutes: int) -> float:
        entity_id = self._entity_for(field)
        start = datetime.now(timezone.utc) - timedelta(minutes=minutes)
        states = await self._with_retry(lambda: self._ha.get_history(entity_id, start))

        numeric = []
        for state in states:
            try:
                numeric.append(float(state))
            except (TypeError, ValueError):
                continue
        if not numeric:
            raise DataNotAvailableError(f"No history for {entity_id} in last {minutes} min")
        return min(numeric)

    async def _read(self, field: Field) -> float:
        if field is Field.VOLTAGE and field not in self._entities:
            return self._fixed_voltage

        entity_id = self._entity_for(field)
        value = await self._with_retry(lambda: self._ha.get_float(entity_id))
        if value is None:
            raise DataNotAvailableError(f"{entity_id} has no numeric state")
        return value

    def _entity_for(self, field: Field) -> str:
        entity_id = self._entities.get(field)
        if not entity_id:
            raise DataNotAvailableError(f"No entity configured for {field.value}")
        return entity_id

    async def _with_retry(self, call: Callable[[], Awaitable[T]]) -> T:
        delay = self._backoff_initial
        for attempt in range(self._max_retries + 1):
            try:
                return await call()
            except HomeAssistantError as e:
                if e.status == 404:
                    raise DataNotAvailableError(str(e)) from e
                if not e.is_transport_error:
                    raise SourceNotAvailableError(str(e)) from e
                if attempt == self._max_retries:
                    raise SourceNotAvailableError(
                        f"Telemetry unreachable after {attempt + 1} attempts: {e}"
                    ) from e
                logger.warning(
                    "Telemetry request failed (attempt %d/%d), retrying in %.1fs",
                    attempt + 1,
                    self._max_retries + 1,
                    delay,
                )
                await asyncio.sleep(delay)
                delay *= TELEMETRY_BACKOFF_FACTOR
        raise AssertionError("unreachable")
