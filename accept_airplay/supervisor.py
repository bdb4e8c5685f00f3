"""
Poll supervisor.

Owns the single background task that gates and drives scanning:

    IDLE → CHECKING_SERVICE → CHECKING_PERMISSION → SCANNING → SLEEPING → CHECKING_PERMISSION ...

- Service gate runs once; any failure stops the agent.
- Permission SUCCESS: scan, then sleep the healthy interval.
- Permission FAILURE_RETRYABLE: mark the run as a retry, sleep the retry interval.
- Permission FAILURE_FATAL: stop.

Cancellation is cooperative: ``stop()`` sets an event that interrupts the current
sleep and is checked before every iteration. A scan in progress always finishes.
"""

import asyncio
import inspect
import logging
import os
import random
from enum import Enum
from typing import Awaitable, Callable, Optional

from accept_airplay.config import HEALTHY_INTERVAL, INTERVAL_TOLERANCE, RETRY_INTERVAL
from accept_airplay.gates import GateResult

logger = logging.getLogger(__name__)


class SupervisorState(Enum):
    IDLE = "idle"
    CHECKING_SERVICE = "checking_service"
    CHECKING_PERMISSION = "checking_permission"
    SCANNING = "scanning"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


class PollSupervisor:
    def __init__(
        self,
        scan: Callable[[], None],
        service_gate: Callable[[], GateResult],
        permission_gate: Callable[[bool], GateResult],
        on_terminate: Optional[Callable[[], None]] = None,
        healthy_interval: float = HEALTHY_INTERVAL,
        retry_interval: float = RETRY_INTERVAL,
        tolerance: float = INTERVAL_TOLERANCE,
        niceness: Optional[int] = None,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            scan: one scanner pass against the live root (fetched by the callee)
            service_gate: background-service registration check, run once
            permission_gate: accessibility check, called with the ``is_retry`` flag
            on_terminate: asks the host to exit; called at most once
            niceness: process priority applied on start, ``None`` to leave as is
            sleep: waits the given (jittered) seconds; defaults to a wait that
                ``stop()`` interrupts
        """
        self._scan = scan
        self._service_gate = service_gate
        self._permission_gate = permission_gate
        self._on_terminate = on_terminate
        self.healthy_interval = healthy_interval
        self.retry_interval = retry_interval
        self.tolerance = tolerance
        self.niceness = niceness
        self._rng = rng or random.Random()
        self._wait = sleep or self._wait_for_cancel

        self._task: Optional[asyncio.Task] = None
        self._cancelled = asyncio.Event()
        self._is_retry = False
        self._state = SupervisorState.IDLE
        self._terminated = False
        self._prioritized = False

    # ---------------- State ----------------

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def is_retry(self) -> bool:
        return self._is_retry

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    # ---------------- Lifecycle ----------------

    def start(self) -> Optional[asyncio.Task]:
        """Spawn the background loop once; later calls return the same task.

        A supervisor is single-use: after it has stopped, ``start()`` does not
        run the service gate or the loop again.
        """
        if self._task is not None or self._cancelled.is_set():
            return self._task

        logger.info("starting")
        self._lower_priority()
        self._task = asyncio.get_running_loop().create_task(self._operation(), name="accept-airplay-supervisor")
        return self._task

    async def stop(self) -> None:
        """Cancel the loop, wait for it to notice, then ask the host to exit."""
        logger.info("stopping")
        self._cancelled.set()

        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            await task
            logger.debug("task cancelled")

        self._state = SupervisorState.STOPPED
        self._terminate()

    def _terminate(self):
        if self._terminated:
            return
        self._terminated = True
        if self._on_terminate is not None:
            self._on_terminate()

    def _lower_priority(self):
        if self.niceness is None or self._prioritized:
            return
        self._prioritized = True
        try:
            os.setpriority(os.PRIO_PROCESS, 0, self.niceness)
        except (OSError, AttributeError) as e:
            logger.warning("could not lower process priority: %s", e)

    # ---------------- Loop ----------------

    async def _operation(self):
        try:
            self._state = SupervisorState.CHECKING_SERVICE
            if await _resolve(self._service_gate()) is not GateResult.SUCCESS:
                logger.error("service registration failed")
                return await self.stop()

            while not self._cancelled.is_set():
                self._state = SupervisorState.CHECKING_PERMISSION
                result = await _resolve(self._permission_gate(self._is_retry))
                if self._cancelled.is_set():
                    break

                if result is GateResult.SUCCESS:
                    self._state = SupervisorState.SCANNING
                    self._scan_once()
                    await self._sleep(self.healthy_interval)
                elif result is GateResult.FAILURE_RETRYABLE:
                    self._is_retry = True
                    await self._sleep(self.retry_interval)
                else:
                    logger.error("accessibility permission denied")
                    return await self.stop()
        except asyncio.CancelledError:
            self._cancelled.set()
            self._state = SupervisorState.STOPPED
            self._terminate()
            raise
        except Exception:
            logger.exception("supervisor failed")
            return await self.stop()

    def _scan_once(self):
        try:
            self._scan()
        except Exception:
            logger.exception("scan failed")

    def jittered(self, seconds: float) -> float:
        spread = seconds * self.tolerance
        return seconds + self._rng.uniform(-spread, spread)

    async def _sleep(self, seconds):
        self._state = SupervisorState.SLEEPING
        await self._wait(self.jittered(seconds))

    async def _wait_for_cancel(self, seconds):
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
