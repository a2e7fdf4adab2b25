"""Charging controller: drives one charging session end to end.

The controller owns ``ChargeState`` and is the only writer of it. It runs a
sync loop (strategy -> apply -> settle -> check) next to a token refresh
loop, the battery cache subscriber and an optional runtime limit, and it
tears all of them down in ``stop()``.

Retry policy per sync iteration:

* vehicle asleep: wait, wake the car, retry the iteration; bounded by
  ``max_wakeup_attempts`` and then fatal (VehicleNotWakingUpError).
* production drop while settling: retry the iteration immediately; bounded
  by ``max_production_drop_retries`` and then a defect
  (ProductionDropRetriesExhaustedError).
* anything else (telemetry outage, inadequate data, failed command) ends
  the session.

A fatal error always runs ``stop()`` first so the car is released and the
session summary is emitted.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable

from .battery_state import BatteryStateCache
from .errors import (
    AuthenticationFailedError,
    ChargerError,
    ProductionDropError,
    ProductionDropRetriesExhaustedError,
    SessionAlreadyStartedError,
    TelemetryError,
    VehicleAsleepError,
    VehicleNotWakingUpError,
)
from .event_sink import EventSink
from .events import AmpereChanged, EventBus
from .models import (
    ChargeState,
    ChargingLimits,
    Field,
    SessionStatus,
    SessionSummary,
    TimingConfig,
)
from .ports import ChargingSpeedStrategy, TelemetryPort, VehiclePort
from .watchdog import ProductionDropWatchdog

logger = logging.getLogger(__name__)

# Measured load may lag the car by this much before we complain
CHARGING_CHECK_TOLERANCE = 1.0  # A


class ChargingController:
    """Adjusts the charging current to follow surplus solar production."""

    def __init__(
        self,
        vehicle: VehiclePort,
        telemetry: TelemetryPort,
        strategy: ChargingSpeedStrategy,
        events: EventSink,
        timing: TimingConfig,
        limits: ChargingLimits,
        event_bus: EventBus | None = None,
        battery_state: BatteryStateCache | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._vehicle = vehicle
        self._telemetry = telemetry
        self._strategy = strategy
        self._events = events
        self._timing = timing
        self._limits = limits
        self._bus = event_bus or EventBus()
        self._battery_state = battery_state
        self._clock = clock
        self._watchdog = ProductionDropWatchdog(
            telemetry, limits.buffer_power, timing.watchdog_poll_interval
        )

        self.status = SessionStatus.PENDING
        self.state = ChargeState()

        self._tasks: list[asyncio.Task] = []
        self._sync_task: asyncio.Task | None = None
        self._commands: set[asyncio.Task] = set()
        self._battery_events: asyncio.Queue | None = None
        self._stopped = asyncio.Event()
        self._summary: SessionSummary | None = None

        # Session accounting
        self._started_at: float | None = None
        self._import_snapshot_taken = False
        self._accounted_at: float | None = None
        self._energy_wh = 0.0
        self._ampere_seconds = 0.0
        self._voltage = limits.voltage

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run the session until ``stop()`` is called or a fatal error occurs."""
        if self.status is not SessionStatus.PENDING:
            raise SessionAlreadyStartedError(f"Session is already {self.status.value}")

        self.status = SessionStatus.RUNNING
        self._started_at = self._clock()
        self._accounted_at = self._started_at
        logger.info("Charging session starting")

        try:
            await self._prepare()
            if self.status is not SessionStatus.RUNNING:
                await self._stopped.wait()
                return
            self._spawn_tasks()
            await asyncio.wait({self._sync_task})
        except asyncio.CancelledError:
            await self.stop()
            raise
        except Exception as e:
            await self._fail(e)
            raise

        if not self._sync_task.cancelled() and self._sync_task.exception() is not None:
            error = self._sync_task.exception()
            await self._fail(error)
            raise error

        await self._stopped.wait()

    async def stop(self) -> SessionSummary | None:
        """End the session, release the car and emit the session summary.

        Safe to call more than once and from any task; later calls wait for
        the first one and return the same summary.
        """
        if self.status is SessionStatus.STOPPED:
            await self._stopped.wait()
            return self._summary

        self.status = SessionStatus.STOPPED
        logger.info("Stopping charging session")
        try:
            current = asyncio.current_task()
            pending = [t for t in self._tasks if t is not current and not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            # Commands already on the wire still update ChargeState
            if self._commands:
                await asyncio.gather(*self._commands, return_exceptions=True)

            if self._battery_events is not None:
                self._bus.unsubscribe(self._battery_events)

            if self.state.running:
                await self._stop_charging_for_shutdown()

            self._summary = await self._summarize()
            try:
                await self._events.on_session_end(self._summary)
            except Exception:
                logger.exception("Failed to report session summary")
        finally:
            self._stopped.set()

        return self._summary

    async def _prepare(self) -> None:
        await self._vehicle.refresh_access_token()

        values = await self._telemetry.query_latest_values((Field.DAILY_IMPORT,))
        self.state.daily_import_at_start = values[Field.DAILY_IMPORT]
        self._import_snapshot_taken = True

        if self._battery_state is not None:
            await self._battery_state.refresh()

    def _spawn_tasks(self) -> None:
        self._sync_task = asyncio.create_task(self._sync_loop(), name="sync-loop")
        self._tasks = [
            self._sync_task,
            asyncio.create_task(self._refresh_token_periodically(), name="token-refresh"),
        ]
        if self._battery_state is not None:
            self._battery_events = self._bus.subscribe()
            self._tasks.append(
                asyncio.create_task(
                    self._battery_state.run(self._battery_events), name="battery-state"
                )
            )
        if self._timing.max_runtime is not None:
            self._tasks.append(
                asyncio.create_task(
                    self._limit_runtime(self._timing.max_runtime), name="runtime-limit"
                )
            )

    async def _fail(self, error: BaseException) -> None:
        logger.error("Charging session failed: %s", error)
        try:
            await self._events.on_fatal_error(error)
        except Exception:
            logger.exception("Failed to report fatal error")
        await self.stop()

    async def _refresh_token_periodically(self) -> None:
        while True:
            await asyncio.sleep(self._timing.token_refresh_interval)
            try:
                await self._vehicle.refresh_access_token()
                logger.debug("Vehicle access token refreshed")
            except AuthenticationFailedError as e:
                logger.error("Vehicle access token refresh failed: %s", e)

    async def _limit_runtime(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        logger.info("Maximum session runtime of %.0f min reached", seconds / 60)
        await self.stop()

    # ------------------------------------------------------------------
    # Sync loop and retry policy
    # ------------------------------------------------------------------

    async def _sync_loop(self) -> None:
        while self.status is SessionStatus.RUNNING:
            await self._sync_with_retries()

    async def _sync_with_retries(self) -> None:
        wakeups = 0
        drops = 0
        while True:
            try:
                await self._sync_once()
                return
            except VehicleAsleepError as e:
                if wakeups >= self._limits.max_wakeup_attempts:
                    raise VehicleNotWakingUpError(wakeups) from e
                wakeups += 1
                logger.warning(
                    "Vehicle asleep, waking up and retrying (%d/%d)",
                    wakeups,
                    self._limits.max_wakeup_attempts,
                )
                await self._events.on_retry("vehicle asleep", wakeups)
                await asyncio.sleep(self._timing.vehicle_awakening_time)
                await self._wake_up_car(wakeups)
            except ProductionDropError as e:
                drops += 1
                if drops > self._limits.max_production_drop_retries:
                    raise ProductionDropRetriesExhaustedError(drops) from e
                logger.warning(
                    "Production dropped from %.0fW to %.0fW (import %.0fW), retrying (%d/%d)",
                    e.baseline,
                    e.current,
                    e.grid_import,
                    drops,
                    self._limits.max_production_drop_retries,
                )
                await self._events.on_retry("production drop", drops)

    async def _sync_once(self) -> None:
        current = self.state.ampere if self.state.running else 0
        desired = await self._strategy.determine_charging_speed(current)
        target = max(0, min(desired, self._limits.max_ampere))

        await self.sync_ampere(target)
        await asyncio.sleep(self._timing.sync_interval)
        await self._check_if_correctly_charging()

    async def sync_ampere(self, target: int) -> None:
        """Bring the car to ``target`` amperes, starting or stopping as needed."""
        baseline = (
            await self._telemetry.query_latest_values((Field.CURRENT_PRODUCTION,))
        )[Field.CURRENT_PRODUCTION]

        if target < self._limits.min_ampere:
            if self.state.running:
                logger.info(
                    "Target %dA below minimum %dA, stopping charging",
                    target,
                    self._limits.min_ampere,
                )
                await self._issue(
                    self._vehicle.stop_charging,
                    on_success=functools.partial(self._mark_stopped, count_fluctuation=True),
                )
                await self._events.on_charging_stopped()
                await asyncio.sleep(self._timing.extra_wait_on_charge_stop)
            return

        started = False
        if not self.state.running:
            logger.info("Starting to charge at %dA", target)
            await self._issue(self._vehicle.start_charging, on_success=self._mark_started)
            await self._events.on_charging_started()
            started = True

        if target == self.state.ampere:
            await self._events.on_no_ampere_change(self.state.ampere)
            return

        previous = self.state.ampere
        await self._events.on_set_ampere(target)
        await self._issue(
            self._vehicle.set_ampere,
            target,
            on_success=functools.partial(self._mark_ampere, target),
        )

        wait = abs(target - previous) * self._timing.wait_per_ampere
        if target > previous:
            if started:
                wait += self._timing.extra_wait_on_charge_start
            await self._watchdog.watch(baseline, wait)
        else:
            # Less supply is no risk while we are already drawing less
            await asyncio.sleep(wait)

    async def _check_if_correctly_charging(self) -> None:
        """Compare measured load with the applied current.

        Advisory only: telemetry lags the car, so a mismatch is logged and
        never fails the session.
        """
        if not self.state.running:
            return
        try:
            values = await self._telemetry.query_latest_values(
                (Field.VOLTAGE, Field.CURRENT_LOAD)
            )
        except TelemetryError as e:
            logger.debug("Skipping charging check: %s", e)
            return

        if values[Field.VOLTAGE] > 0:
            self._voltage = values[Field.VOLTAGE]
        measured = values[Field.CURRENT_LOAD] / self._voltage
        if measured + CHARGING_CHECK_TOLERANCE < self.state.ampere:
            logger.warning(
                "Car may not be charging as commanded: set %dA, measured load %.1fA",
                self.state.ampere,
                measured,
            )

    # ------------------------------------------------------------------
    # Vehicle commands
    # ------------------------------------------------------------------

    async def _issue(
        self,
        command: Callable[..., Awaitable[None]],
        *args: object,
        on_success: Callable[[], None] | None = None,
    ) -> None:
        """Send a command and record its effect, even if we are cancelled meanwhile."""
        await self._wake_up_if_inactive()

        async def _run() -> None:
            await command(*args)
            self.state.last_command_at = self._clock()
            if on_success is not None:
                on_success()

        task = asyncio.ensure_future(_run())
        self._commands.add(task)
        task.add_done_callback(self._forget_command)
        await asyncio.shield(task)

    def _forget_command(self, task: asyncio.Task) -> None:
        self._commands.discard(task)
        if not task.cancelled():
            # Mark the exception retrieved; the issuer or stop() handles it
            task.exception()

    async def _wake_up_if_inactive(self) -> None:
        last = self.state.last_command_at
        if last is not None and self._clock() - last > self._timing.inactivity_time:
            logger.info("No command for %.0fs, waking up car first", self._clock() - last)
            await self._wake_up_car(1)

    async def _wake_up_car(self, attempt: int) -> None:
        await self._events.on_wake_up(attempt)
        await self._vehicle.wake_up_car()
        self.state.last_command_at = self._clock()

    async def _stop_charging_for_shutdown(self) -> None:
        attempts = self._limits.stop_charging_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._issue(
                    self._vehicle.stop_charging,
                    on_success=functools.partial(self._mark_stopped, count_fluctuation=False),
                )
                await self._events.on_charging_stopped()
                return
            except VehicleAsleepError:
                if attempt == attempts:
                    logger.error("Vehicle stayed asleep, could not stop charging")
                    return
                logger.warning(
                    "Vehicle asleep while stopping, waking up (%d/%d)", attempt, attempts
                )
                await asyncio.sleep(self._timing.vehicle_awakening_time)
                try:
                    await self._wake_up_car(attempt)
                except ChargerError as e:
                    logger.warning("Wake-up during shutdown failed: %s", e)
            except Exception:
                logger.exception("Failed to stop charging during shutdown")
                return

    # ------------------------------------------------------------------
    # State transitions (only ever called after an acknowledged command)
    # ------------------------------------------------------------------

    def _mark_started(self) -> None:
        self._account()
        self.state.running = True

    def _mark_stopped(self, count_fluctuation: bool) -> None:
        self._account()
        previous = self.state.ampere
        self.state.running = False
        self.state.ampere = 0
        if previous != 0:
            if count_fluctuation:
                self.state.ampere_fluctuations += 1
            self._bus.publish(AmpereChanged(previous=previous, current=0))

    def _mark_ampere(self, ampere: int) -> None:
        self._account()
        previous = self.state.ampere
        self.state.ampere = ampere
        self.state.ampere_fluctuations += 1
        self._bus.publish(AmpereChanged(previous=previous, current=ampere))

    # ------------------------------------------------------------------
    # Session accounting
    # ------------------------------------------------------------------

    def _account(self) -> None:
        """Integrate the applied current since the last change."""
        now = self._clock()
        if self._accounted_at is not None and self.state.running:
            elapsed = now - self._accounted_at
            self._ampere_seconds += self.state.ampere * elapsed
            self._energy_wh += self.state.ampere * self._voltage * elapsed / 3600
        self._accounted_at = now

    async def _summarize(self) -> SessionSummary:
        self._account()
        now = self._clock()
        duration = now - self._started_at if self._started_at is not None else 0.0

        grid_import = 0.0
        if self._import_snapshot_taken:
            try:
                values = await self._telemetry.query_latest_values((Field.DAILY_IMPORT,))
                grid_import = max(0.0, values[Field.DAILY_IMPORT] - self.state.daily_import_at_start)
            except TelemetryError as e:
                logger.warning("Could not read grid import for session summary: %s", e)

        energy = self._energy_wh / 1000
        return SessionSummary(
            duration=duration,
            total_energy_charged_kwh=energy,
            grid_import_kwh=grid_import,
            solar_energy_used_kwh=max(0.0, energy - grid_import),
            average_charging_speed_amps=self._ampere_seconds / duration if duration > 0 else 0.0,
            ampere_fluctuations=self.state.ampere_fluctuations,
            grid_import_cost=grid_import * self._limits.cost_per_kwh,
        )
