"""Fixtures and test doubles."""

from __future__ import annotations

import asyncio

import pytest

from solar_charger.event_sink import EventSink
from solar_charger.models import ChargingLimits, Field, TimingConfig, VehicleChargeState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTelemetry:
    """Serves values from a mutable dict; set ``error`` to fail every query."""

    def __init__(self, **values: float) -> None:
        self.values = {
            Field.VOLTAGE: 230.0,
            Field.CURRENT_PRODUCTION: 5000.0,
            Field.CURRENT_LOAD: 500.0,
            Field.DAILY_IMPORT: 0.0,
            Field.EXPORT_TO_GRID: 3000.0,
            Field.IMPORT_FROM_GRID: 0.0,
        }
        for name, value in values.items():
            self.values[Field[name.upper()]] = value
        self.lowest: dict[Field, float] = {}
        self.error: Exception | None = None
        self.queries: list[tuple[Field, ...]] = []

    async def query_latest_values(self, fields):
        fields = tuple(fields)
        self.queries.append(fields)
        if self.error is not None:
            raise self.error
        return {field: self.values[field] for field in fields}

    async def get_lowest_value_in_last_minutes(self, field, minutes):
        if self.error is not None:
            raise self.error
        return self.lowest.get(field, self.values[field])


class FakeVehicle:
    """Records commands; queued exceptions are raised by the next matching call."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.failures: dict[str, list[Exception]] = {}
        self.always_fail: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.charge_state = VehicleChargeState(battery_level=50.0, charge_limit_soc=80.0)

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if name in self.always_fail:
            raise self.always_fail[name]
        queued = self.failures.get(name)
        if queued:
            raise queued.pop(0)

    async def refresh_access_token(self) -> None:
        await self._call("refresh_access_token")

    async def wake_up_car(self) -> None:
        await self._call("wake_up_car")

    async def start_charging(self) -> None:
        await self._call("start_charging")

    async def stop_charging(self) -> None:
        await self._call("stop_charging")

    async def set_ampere(self, ampere: int) -> None:
        await self._call("set_ampere", ampere)

    async def get_charge_state(self) -> VehicleChargeState:
        await self._call("get_charge_state")
        return self.charge_state


class ScriptedStrategy:
    """Returns queued ampere values, repeating the last one; may raise instead."""

    def __init__(self, *results) -> None:
        self.results = list(results)
        self.calls: list[int] = []

    async def determine_charging_speed(self, current_ampere: int) -> int:
        self.calls.append(current_ampere)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(current_ampere)
        return result


class RecordingSink(EventSink):
    def __init__(self) -> None:
        self.events: list[tuple] = []

    def names(self) -> list[str]:
        return [event[0] for event in self.events]

    async def on_set_ampere(self, ampere):
        self.events.append(("set_ampere", ampere))

    async def on_no_ampere_change(self, ampere):
        self.events.append(("no_ampere_change", ampere))

    async def on_charging_started(self):
        self.events.append(("charging_started",))

    async def on_charging_stopped(self):
        self.events.append(("charging_stopped",))

    async def on_wake_up(self, attempt):
        self.events.append(("wake_up", attempt))

    async def on_retry(self, reason, attempt):
        self.events.append(("retry", reason, attempt))

    async def on_fatal_error(self, error):
        self.events.append(("fatal_error", error))

    async def on_session_end(self, summary):
        self.events.append(("session_end", summary))


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the loop until ``predicate()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def timing() -> TimingConfig:
    return TimingConfig(
        sync_interval=0.001,
        vehicle_awakening_time=0,
        inactivity_time=10_000,
        wait_per_ampere=0.005,
        extra_wait_on_charge_start=0,
        extra_wait_on_charge_stop=0,
        max_runtime=None,
        watchdog_poll_interval=0.001,
        token_refresh_interval=3600,
    )


@pytest.fixture
def limits() -> ChargingLimits:
    return ChargingLimits(
        min_ampere=3,
        max_ampere=32,
        buffer_power=1000,
        voltage=230,
        cost_per_kwh=0.3,
        max_wakeup_attempts=3,
        max_production_drop_retries=10,
        stop_charging_attempts=3,
    )


@pytest.fixture
def telemetry() -> FakeTelemetry:
    return FakeTelemetry()


@pytest.fixture
def vehicle() -> FakeVehicle:
    return FakeVehicle()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
