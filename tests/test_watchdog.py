"""Tests for the production-drop watchdog."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeTelemetry
from solar_charger.errors import ProductionDropError, SourceNotAvailableError
from solar_charger.models import Field
from solar_charger.watchdog import ProductionDropWatchdog


async def test_timer_wins_when_supply_holds():
    telemetry = FakeTelemetry(current_production=5000, import_from_grid=0)
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    await watchdog.watch(baseline=5000, seconds=0.02)

    assert len(asyncio.all_tasks()) == 1


async def test_small_dip_within_buffer_is_tolerated():
    telemetry = FakeTelemetry(current_production=4200, import_from_grid=0)
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    await watchdog.watch(baseline=5000, seconds=0.02)


async def test_production_below_baseline_minus_buffer_raises():
    telemetry = FakeTelemetry(current_production=3900, import_from_grid=0)
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    with pytest.raises(ProductionDropError) as excinfo:
        await watchdog.watch(baseline=5000, seconds=1)

    assert excinfo.value.baseline == 5000
    assert excinfo.value.current == 3900
    assert len(asyncio.all_tasks()) == 1


async def test_grid_import_raises():
    telemetry = FakeTelemetry(current_production=6000, import_from_grid=50)
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    with pytest.raises(ProductionDropError):
        await watchdog.watch(baseline=5000, seconds=1)


async def test_telemetry_failure_propagates():
    telemetry = FakeTelemetry()
    telemetry.error = SourceNotAvailableError("down")
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    with pytest.raises(SourceNotAvailableError):
        await watchdog.watch(baseline=5000, seconds=1)


async def test_polls_production_and_import():
    telemetry = FakeTelemetry()
    watchdog = ProductionDropWatchdog(telemetry, buffer_power=1000, poll_interval=0.001)

    await watchdog.watch(baseline=5000, seconds=0.02)

    assert (Field.CURRENT_PRODUCTION, Field.IMPORT_FROM_GRID) in telemetry.queries
