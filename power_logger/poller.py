# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""Poll loop for a single meter.

MeterPoller.update() is one acquisition: read the register block, check
its length, publish through the MetricSet. start() runs one acquisition
right away and then one per interval on a background task; stop() asks
the task to finish and waits for any cycle already running.

Lifecycle: IDLE -> RUNNING -> STOPPING -> STOPPED. A stopped poller is
not restarted.
"""

import asyncio
import enum
import logging
import time

from .metrics import MetricSet
from .registers import FRAME_SIZE, READ_SIZE
from .transport import RegisterTransport

logger = logging.getLogger(__name__)

POLL_INTERVAL = 10.0


class PollerState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class PollError(Exception):
    """A single poll cycle failed. The next cycle is unaffected."""


class FrameLengthError(PollError):
    """The transport returned a frame of the wrong size."""

    def __init__(self, length: int, expected: int = FRAME_SIZE):
        super().__init__(f"invalid read size: {length} (expected {expected})")
        self.length = length
        self.expected = expected


class LifecycleError(RuntimeError):
    """start()/stop() called in the wrong state."""


class MeterPoller:
    """Reads one meter on a fixed period and publishes to a MetricSet."""

    def __init__(
        self,
        transport: RegisterTransport,
        metrics: MetricSet,
        *,
        interval: float = POLL_INTERVAL,
        clock=time.monotonic,
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.transport = transport
        self.metrics = metrics
        self.device_name = metrics.device_name
        self._interval = interval
        self._clock = clock

        self._state = PollerState.IDLE
        self._stop_event = asyncio.Event()
        self._first_cycle_done = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()

        # Poll health tracking
        self._poll_count = 0
        self._poll_errors = 0
        self._consecutive_errors = 0
        self._last_poll_duration: float | None = None
        self._last_successful_poll: float | None = None
        self._last_error_msg: str | None = None

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def healthy(self) -> bool:
        """True once a poll has succeeded and the latest one did too."""
        return self._last_successful_poll is not None and self._consecutive_errors == 0

    # -- Poll cycle -------------------------------------------------------

    async def update(self) -> None:
        """Run one acquisition. Raises PollError when it fails."""
        async with self._cycle_lock:
            try:
                frame = await self.transport.read_registers(0, READ_SIZE)
            except Exception as e:
                self.metrics.on_failure()
                raise PollError(f"could not read values: {e}") from e

            if len(frame) != FRAME_SIZE:
                self.metrics.on_failure()
                raise FrameLengthError(len(frame))

            self.metrics.apply(frame, self._clock())

    async def _poll_once(self):
        """Run one cycle, recording the outcome instead of raising."""
        poll_start = time.monotonic()
        try:
            await self.update()
        except PollError as e:
            self._record_error(str(e))
        except Exception as e:
            self._record_error(f"unexpected {type(e).__name__}: {e}")
            logger.exception("[%s] Error in poll cycle", self.device_name)
        else:
            self._poll_count += 1
            self._consecutive_errors = 0
            self._last_successful_poll = time.time()
            if self._poll_count % 60 == 1:
                logger.info(
                    "[%s] Poll #%d: voltage=%.1fV power=%.0fW energy=%.2fkWh (%.0fms)",
                    self.device_name,
                    self._poll_count,
                    self.metrics.get("mains_voltage_v") or 0,
                    self.metrics.get("mains_active_power_w") or 0,
                    self.metrics.get("mains_active_energy_kwh") or 0,
                    (time.monotonic() - poll_start) * 1000,
                )
        finally:
            self._last_poll_duration = time.monotonic() - poll_start

    def _record_error(self, msg: str):
        self._poll_errors += 1
        self._consecutive_errors += 1
        self._last_error_msg = msg
        if self._poll_errors <= 5 or self._poll_errors % 30 == 0:
            logger.error(
                "[%s] Could not update values: %s (error %d)",
                self.device_name, msg, self._poll_errors,
            )

    # -- Lifecycle --------------------------------------------------------

    async def start(self) -> None:
        """Poll once now, then every interval on a background task.

        Returns once the first cycle has finished. The first cycle runs on
        the background task too, so stop() always has a task to wait for.
        """
        if self._state is not PollerState.IDLE:
            raise LifecycleError(f"cannot start poller in state {self._state.value}")
        self._state = PollerState.RUNNING
        logger.info("[%s] Polling every %.1fs", self.device_name, self._interval)

        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poller-{self.device_name}",
        )
        await self._first_cycle_done.wait()

    async def _run(self):
        try:
            await self._poll_once()
        finally:
            self._first_cycle_done.set()

        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(
                    self._stop_event.wait(),
                    timeout=max(0.0, next_tick - loop.time()),
                )
                return
            except asyncio.TimeoutError:
                pass

            await self._poll_once()

            # Ticks missed while a slow cycle ran are dropped, not queued
            now = loop.time()
            next_tick += self._interval
            if next_tick <= now:
                skipped = int((now - next_tick) // self._interval) + 1
                next_tick += skipped * self._interval

    async def stop(self) -> None:
        """Stop scheduling and wait for an in-flight cycle to finish."""
        if self._state is not PollerState.RUNNING:
            raise LifecycleError(f"cannot stop poller in state {self._state.value}")
        self._state = PollerState.STOPPING
        self._stop_event.set()
        try:
            if self._task is not None:
                await self._task
        finally:
            self._task = None
            self._state = PollerState.STOPPED
            logger.info("[%s] Poller stopped after %d polls", self.device_name,
                        self._poll_count)

    def get_status_detail(self) -> dict:
        """Return detailed status for this poller (exposed via API)."""
        now = time.time()
        detail = {
            "device_name": self.device_name,
            "state": self._state.value,
            "healthy": self.healthy,
            "poll_interval": self._interval,
            "poll_count": self._poll_count,
            "poll_errors": self._poll_errors,
            "consecutive_errors": self._consecutive_errors,
            "last_poll_duration_ms": (
                round(self._last_poll_duration * 1000, 1)
                if self._last_poll_duration is not None else None
            ),
            "last_successful_poll": self._last_successful_poll,
            "seconds_since_last_poll": (
                round(now - self._last_successful_poll, 1)
                if self._last_successful_poll else None
            ),
        }
        if self._last_error_msg:
            detail["last_error"] = self._last_error_msg
        if self.transport is not None:
            detail["transport_health"] = self.transport.get_health()
        return detail
