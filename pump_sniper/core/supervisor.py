from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from ..utils.helpers import wait_or_stop


class LoopSupervisor:
    """
    Restarts a long-running loop after uncaught errors.

    Backoff grows with consecutive failures:
    ``min(base * factor ** (n - 1), max_delay)`` seconds.
    """

    def __init__(
        self,
        name: str,
        target: Callable[[asyncio.Event], Awaitable[None]],
        base_delay: float = 5.0,
        factor: float = 1.5,
        max_delay: float = 60.0,
        wait: Callable[[asyncio.Event, float], Awaitable[bool]] = wait_or_stop,
    ) -> None:
        self.name = name
        self.target = target
        self.base_delay = base_delay
        self.factor = factor
        self.max_delay = max_delay
        self._wait = wait
        self.consecutive_failures = 0
        self.restarts = 0
        self.logger = logging.getLogger("pump_sniper.supervisor")

    def mark_healthy(self) -> None:
        """Called by the target after a successful iteration."""
        self.consecutive_failures = 0

    def backoff_delay(self, failures: int) -> float:
        return min(self.base_delay * self.factor ** (failures - 1), self.max_delay)

    async def run(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                await self.target(stop_event)
                self.consecutive_failures = 0
                if stop_event.is_set():
                    break
                self.logger.warning("%s exited unexpectedly, restarting", self.name)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.consecutive_failures += 1
                delay = self.backoff_delay(self.consecutive_failures)
                self.logger.error(
                    "%s crashed (%d consecutive): %s. Restarting in %.1fs",
                    self.name, self.consecutive_failures, e, delay,
                )
                if await self._wait(stop_event, delay):
                    break
            self.restarts += 1
