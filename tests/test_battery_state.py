"""Tests for the battery state cache."""

from __future__ import annotations

import asyncio

from conftest import FakeClock, FakeVehicle
from solar_charger.battery_state import BatteryStateCache
from solar_charger.errors import VehicleCommandFailedError
from solar_charger.events import AmpereChanged, EventBus
from solar_charger.models import VehicleChargeState

CHANGE = AmpereChanged(previous=6, current=9)


async def test_empty_until_first_fetch():
    vehicle = FakeVehicle()
    cache = BatteryStateCache(vehicle, cooldown=600, clock=FakeClock())

    assert cache.get() is None

    await cache.refresh()

    state = cache.get()
    assert state.battery_level == 50.0
    assert state.charge_limit_soc == 80.0
    assert state.queried_at == 0


async def test_first_event_fetches_when_never_queried():
    vehicle = FakeVehicle()
    cache = BatteryStateCache(vehicle, cooldown=600, clock=FakeClock(1000))

    await cache.handle(CHANGE)

    assert vehicle.count("get_charge_state") == 1


async def test_cooldown_suppresses_refresh():
    vehicle = FakeVehicle()
    clock = FakeClock()
    cache = BatteryStateCache(vehicle, cooldown=600, clock=clock)
    await cache.refresh()

    clock.advance(5 * 60)
    await cache.handle(CHANGE)
    assert vehicle.count("get_charge_state") == 1

    clock.advance(6 * 60)
    vehicle.charge_state = VehicleChargeState(battery_level=55.0, charge_limit_soc=80.0)
    await cache.handle(CHANGE)
    assert vehicle.count("get_charge_state") == 2
    assert cache.get().battery_level == 55.0
    assert cache.get().queried_at == 11 * 60


async def test_failed_refresh_keeps_previous_state():
    vehicle = FakeVehicle()
    clock = FakeClock()
    cache = BatteryStateCache(vehicle, cooldown=600, clock=clock)
    await cache.refresh()
    before = cache.get()

    clock.advance(700)
    vehicle.failures["get_charge_state"] = [VehicleCommandFailedError("timeout")]
    await cache.handle(CHANGE)

    assert cache.get() is before


async def test_ignores_unrelated_events():
    vehicle = FakeVehicle()
    cache = BatteryStateCache(vehicle, cooldown=0, clock=FakeClock())

    await cache.handle(object())

    assert vehicle.count("get_charge_state") == 0


async def test_run_consumes_bus_events():
    vehicle = FakeVehicle()
    bus = EventBus()
    cache = BatteryStateCache(vehicle, cooldown=600, clock=FakeClock())
    task = asyncio.create_task(cache.run(bus.subscribe()))

    bus.publish(CHANGE)
    bus.publish(CHANGE)
    for _ in range(5):
        await asyncio.sleep(0)
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    # Second event falls inside the cooldown
    assert vehicle.count("get_charge_state") == 1
    assert cache.get() is not None


async def test_unexpected_refresh_error_keeps_consuming_events():
    vehicle = FakeVehicle()
    vehicle.failures["get_charge_state"] = [ValueError("bad json")]
    bus = EventBus()
    cache = BatteryStateCache(vehicle, cooldown=0, clock=FakeClock())
    task = asyncio.create_task(cache.run(bus.subscribe()))

    bus.publish(CHANGE)
    bus.publish(CHANGE)
    for _ in range(5):
        await asyncio.sleep(0)

    assert not task.done()
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    assert vehicle.count("get_charge_state") == 2
    assert cache.get().battery_level == 50.0
