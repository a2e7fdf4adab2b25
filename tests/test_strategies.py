"""Tests for the charging speed strategies."""

from __future__ import annotations

import pytest

from conftest import FakeTelemetry
from solar_charger.errors import DataNotAvailableError, InadequateDataError
from solar_charger.models import Field
from solar_charger.strategies import (
    ConservativeStrategy,
    ExcessFeedInStrategy,
    ExcessSolarAggressiveStrategy,
    FixedSpeedStrategy,
    SmoothingStrategy,
)
from solar_charger.strategies.base import excess_to_ampere


class TestExcessToAmpere:
    def test_rounds_down_to_multiple(self):
        # 2000W / 230V = 8.7A
        assert excess_to_ampere(2000, 230, 3, 32) == 6

    def test_caps_at_max(self):
        assert excess_to_ampere(9000, 230, 3, 32) == 32

    def test_never_negative(self):
        assert excess_to_ampere(-500, 230, 3, 32) == 0


class TestAggressive:
    async def test_uses_net_export_minus_buffer(self):
        telemetry = FakeTelemetry(export_to_grid=3000, import_from_grid=0)
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000)

        assert await strategy.determine_charging_speed(0) == 6

    async def test_counts_current_draw_as_available(self):
        telemetry = FakeTelemetry(export_to_grid=3000, import_from_grid=0)
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000)

        # 2000W + 6A * 230V = 3380W -> 14.7A
        assert await strategy.determine_charging_speed(6) == 12

    async def test_grid_import_reduces_speed(self):
        telemetry = FakeTelemetry(export_to_grid=0, import_from_grid=700)
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000)

        # 9A * 230V = 2070W - 700W - 1000W = 370W -> 1.6A
        assert await strategy.determine_charging_speed(9) == 0

    async def test_caps_at_max_ampere(self):
        telemetry = FakeTelemetry(export_to_grid=12000)
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000, max_ampere=16)

        assert await strategy.determine_charging_speed(0) == 16

    async def test_telemetry_failure_is_inadequate_data(self):
        telemetry = FakeTelemetry()
        telemetry.error = DataNotAvailableError("sensor unavailable")
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000)

        with pytest.raises(InadequateDataError):
            await strategy.determine_charging_speed(0)

    async def test_records_last_reading(self):
        telemetry = FakeTelemetry(export_to_grid=3000)
        strategy = ExcessSolarAggressiveStrategy(telemetry, buffer_power=1000)
        assert strategy.last_reading is None

        await strategy.determine_charging_speed(0)

        assert ("export_to_grid", 3000) in strategy.last_reading

    @pytest.mark.parametrize("voltage", [0.0, -1.0])
    async def test_dead_voltage_sensor_is_inadequate_data(self, voltage):
        strategy = ExcessSolarAggressiveStrategy(FakeTelemetry(voltage=voltage), buffer_power=1000)

        with pytest.raises(InadequateDataError):
            await strategy.determine_charging_speed(0)


class TestFixedSpeed:
    async def test_charges_when_surplus_covers_fixed_speed(self):
        telemetry = FakeTelemetry(export_to_grid=5000)
        strategy = FixedSpeedStrategy(telemetry, fixed_ampere=16, buffer_power=1000)

        assert await strategy.determine_charging_speed(0) == 16

    async def test_stops_when_surplus_is_short(self):
        telemetry = FakeTelemetry(export_to_grid=4000)
        strategy = FixedSpeedStrategy(telemetry, fixed_ampere=16, buffer_power=1000)

        assert await strategy.determine_charging_speed(0) == 0

    async def test_holds_while_already_charging(self):
        telemetry = FakeTelemetry(export_to_grid=500)
        strategy = FixedSpeedStrategy(telemetry, fixed_ampere=16, buffer_power=1000)

        # 500W + 16A * 230V - 1000W buffer = 3180W, short of 3680W
        assert await strategy.determine_charging_speed(16) == 0

        telemetry.values[Field.EXPORT_TO_GRID] = 1100
        assert await strategy.determine_charging_speed(16) == 16

    def test_rejects_speed_above_max(self):
        with pytest.raises(ValueError):
            FixedSpeedStrategy(FakeTelemetry(), fixed_ampere=40, buffer_power=1000)


class TestFeedIn:
    async def test_absorbs_export_above_cap(self):
        telemetry = FakeTelemetry(export_to_grid=6000, import_from_grid=0)
        strategy = ExcessFeedInStrategy(telemetry, max_feed_in_allowed=5000)

        # 1000W / 230V = 4.3A -> rounded up to 6A
        assert await strategy.determine_charging_speed(0) == 6

    async def test_nothing_below_cap(self):
        telemetry = FakeTelemetry(export_to_grid=4000, import_from_grid=0)
        strategy = ExcessFeedInStrategy(telemetry, max_feed_in_allowed=5000)

        assert await strategy.determine_charging_speed(0) == 0


class TestConservative:
    async def test_dead_voltage_sensor_is_inadequate_data(self):
        strategy = ConservativeStrategy(FakeTelemetry(voltage=0.0))

        with pytest.raises(InadequateDataError):
            await strategy.determine_charging_speed(0)

    async def test_new_production_minimum_changes_last_reading(self):
        telemetry = FakeTelemetry()
        telemetry.lowest[Field.CURRENT_PRODUCTION] = 5000
        strategy = ConservativeStrategy(telemetry)

        await strategy.determine_charging_speed(0)
        first = strategy.last_reading
        telemetry.lowest[Field.CURRENT_PRODUCTION] = 4000
        await strategy.determine_charging_speed(0)

        assert ("lowest_production", 4000) in strategy.last_reading
        assert strategy.last_reading != first

    async def test_uses_lowest_production_in_window(self):
        telemetry = FakeTelemetry(current_production=8000, current_load=2300)
        telemetry.lowest[Field.CURRENT_PRODUCTION] = 5000
        strategy = ConservativeStrategy(telemetry, buffer_power=100)

        # Household load 2300W - 4A * 230V = 1380W; 5000 - 1380 - 100 = 3520W -> 15A
        assert await strategy.determine_charging_speed(4) == 15

    async def test_never_negative(self):
        telemetry = FakeTelemetry(current_load=6000)
        telemetry.lowest[Field.CURRENT_PRODUCTION] = 1000
        strategy = ConservativeStrategy(telemetry)

        assert await strategy.determine_charging_speed(0) == 0

    async def test_missing_history_is_inadequate_data(self):
        telemetry = FakeTelemetry()
        telemetry.error = DataNotAvailableError("no history")
        strategy = ConservativeStrategy(telemetry)

        with pytest.raises(InadequateDataError):
            await strategy.determine_charging_speed(0)


class SequenceStrategy:
    """Returns queued amperes; each reading is fresh unless ``stale`` is set."""

    def __init__(self, *values: int) -> None:
        self.values = list(values)
        self.stale = False
        self.last_reading = 0

    async def determine_charging_speed(self, current_ampere: int) -> int:
        if not self.stale:
            self.last_reading += 1
        return self.values.pop(0)


class TestSmoothing:
    async def test_decrease_applies_immediately(self):
        strategy = SmoothingStrategy(SequenceStrategy(6), required_consistent_reads=3)

        assert await strategy.determine_charging_speed(12) == 6

    async def test_increase_needs_consistent_reads(self):
        strategy = SmoothingStrategy(SequenceStrategy(15, 12, 18), required_consistent_reads=3)

        assert await strategy.determine_charging_speed(6) == 6
        assert await strategy.determine_charging_speed(6) == 6
        # Smallest of the consistent readings wins
        assert await strategy.determine_charging_speed(6) == 12

    async def test_lower_reading_resets_streak(self):
        strategy = SmoothingStrategy(
            SequenceStrategy(15, 15, 3, 15, 15), required_consistent_reads=3
        )

        assert await strategy.determine_charging_speed(6) == 6
        assert await strategy.determine_charging_speed(6) == 6
        assert await strategy.determine_charging_speed(6) == 3
        assert await strategy.determine_charging_speed(3) == 3
        assert await strategy.determine_charging_speed(3) == 3

    async def test_stale_readings_do_not_count(self):
        base = SequenceStrategy(15, 15, 15, 15)
        strategy = SmoothingStrategy(base, required_consistent_reads=2)

        assert await strategy.determine_charging_speed(6) == 6
        base.stale = True
        assert await strategy.determine_charging_speed(6) == 6
        assert await strategy.determine_charging_speed(6) == 6
        base.stale = False
        assert await strategy.determine_charging_speed(6) == 15

    def test_rejects_zero_reads(self):
        with pytest.raises(ValueError):
            SmoothingStrategy(SequenceStrategy(), required_consistent_reads=0)
