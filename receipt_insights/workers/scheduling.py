"""Schedulers: the suspension points of the analysis job controller.

The controller never calls ``asyncio.sleep`` directly. It awaits
``scheduler.sleep(delay)`` with delays expressed in abstract time units, so the
same state machine runs against the wall clock in production and against a
synthetic clock in tests.
"""

import asyncio
from abc import ABC, abstractmethod


class Scheduler(ABC):
    """Abstract base class for cancellable delays."""

    @abstractmethod
    async def sleep(self, delay: float) -> None:
        """Suspend for ``delay`` time units. Must be interruptible by task cancellation."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the running event loop's clock."""

    def __init__(self, time_unit: float = 1.0) -> None:
        """Initialize with the length of one time unit in seconds."""
        self.time_unit = time_unit

    async def sleep(self, delay: float) -> None:
        """Sleep ``delay * time_unit`` seconds."""
        await asyncio.sleep(delay * self.time_unit)


class VirtualScheduler(Scheduler):
    """Scheduler with a synthetic clock: sleeping advances time and yields once to the loop."""

    def __init__(self) -> None:
        """Start the synthetic clock at zero."""
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, delay: float) -> None:
        """Advance the synthetic clock by ``delay`` and let other tasks run."""
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)
