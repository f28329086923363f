"""Convergence polling for PD and TiKV nodes.

Nodes are probed in passes. A pass either satisfies the wait condition or
the poller sleeps one interval and tries again until the deadline passes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from ..cluster.health import HealthProbe, check_node
from ..errors import DeadlineExceededError, HealthCheckError

logger = logging.getLogger(__name__)

PD_HEALTH_PATH = "/pd/api/v1/health"
TIKV_STATUS_PATH = "/status"

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class HealthTarget:
    """One endpoint to probe."""

    role: str
    host: str
    port: int
    path: str

    def __str__(self) -> str:
        return f"{self.role} node {self.host}:{self.port}"


@dataclass
class ConvergenceResult:
    """Result of a successful wait."""

    passes: int
    elapsed_seconds: float
    healthy: list[HealthTarget]


class ConvergencePoller:
    """Poll a set of health endpoints until they converge or time out."""

    def __init__(
        self,
        probe: HealthProbe,
        interval_seconds: float = 10.0,
        sleep: Sleep | None = None,
        clock: Clock | None = None,
    ):
        """Initialize poller.

        Args:
            probe: Health probe used for every node
            interval_seconds: Seconds between passes
            sleep: Awaitable sleep (default: asyncio.sleep)
            clock: Monotonic clock in seconds (default: time.monotonic)
        """
        self.probe = probe
        self.interval_seconds = interval_seconds
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic

    async def is_healthy(self, target: HealthTarget) -> bool:
        try:
            await check_node(self.probe, target.host, target.port, target.path)
        except HealthCheckError as e:
            logger.debug(f"{target} not healthy yet: {e}")
            return False
        return True

    async def wait_for_any(
        self, targets: Sequence[HealthTarget], timeout_seconds: float, what: str = "nodes"
    ) -> ConvergenceResult:
        """Wait until at least one target answers healthy.

        Raises:
            DeadlineExceededError: If none did within timeout_seconds
        """

        async def check_pass() -> list[HealthTarget]:
            for target in targets:
                if await self.is_healthy(target):
                    return [target]
            return []

        return await self._poll(check_pass, timeout_seconds, what)

    async def wait_for_all(
        self, targets: Sequence[HealthTarget], timeout_seconds: float, what: str = "nodes"
    ) -> ConvergenceResult:
        """Wait until every target answers healthy within a single pass.

        Raises:
            DeadlineExceededError: If no pass was fully healthy within timeout_seconds
        """
        if not targets:
            return ConvergenceResult(passes=0, elapsed_seconds=0.0, healthy=[])

        async def check_pass() -> list[HealthTarget]:
            for target in targets:
                if not await self.is_healthy(target):
                    return []
            return list(targets)

        return await self._poll(check_pass, timeout_seconds, what)

    async def _poll(
        self,
        check_pass: Callable[[], Awaitable[list[HealthTarget]]],
        timeout_seconds: float,
        what: str,
    ) -> ConvergenceResult:
        start = self.clock()
        deadline = start + timeout_seconds
        passes = 0

        while self.clock() < deadline:
            passes += 1
            healthy = await check_pass()
            if healthy:
                elapsed = self.clock() - start
                logger.info(f"{what} converged after {passes} pass(es), {elapsed:.1f}s")
                return ConvergenceResult(passes=passes, elapsed_seconds=elapsed, healthy=healthy)
            await self.sleep(self.interval_seconds)

        raise DeadlineExceededError(
            f"{what} failed to become healthy within {timeout_seconds:g}s",
            data={"passes": passes},
            timeout=timeout_seconds,
        )
