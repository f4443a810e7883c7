"""
Async semaphore and concurrency control

Named semaphores serialize pipeline cycles per namespace, so a manual
trigger never races a scheduled run of the same tenant.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class SemaphoreStats:
    """Statistics for semaphore usage"""

    name: str
    capacity: int
    current_value: int
    waiting_count: int
    total_acquisitions: int
    total_timeouts: int
    average_hold_time: float
    max_hold_time: float

    @property
    def utilization(self) -> float:
        """Current utilization as percentage"""
        return ((self.capacity - self.current_value) / self.capacity) * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "capacity": self.capacity,
            "current_value": self.current_value,
            "waiting_count": self.waiting_count,
            "utilization_percent": self.utilization,
            "total_acquisitions": self.total_acquisitions,
            "total_timeouts": self.total_timeouts,
            "average_hold_time": self.average_hold_time,
            "max_hold_time": self.max_hold_time,
        }


class AsyncSemaphore:
    """
    Async semaphore with statistics and timeout support

    With a capacity of one it acts as a single-flight lock: waiters queue up
    in FIFO order and run one at a time.
    """

    def __init__(self, value: int, name: str = "unnamed"):
        if value < 1:
            raise ValueError("Semaphore capacity must be at least 1")

        self.name = name
        self.capacity = value
        self._semaphore = asyncio.Semaphore(value)

        self._total_acquisitions = 0
        self._total_timeouts = 0
        self._hold_times: list[float] = []
        self._max_hold_time = 0.0

        self._active_acquisitions: dict[int, float] = {}
        self._next_acquisition_id = 0

    @asynccontextmanager
    async def acquire(self, timeout: Optional[float] = None):
        """
        Acquire the semaphore with an optional timeout

        Raises:
            asyncio.TimeoutError: If the timeout is exceeded
        """
        acquisition_id = self._next_acquisition_id
        self._next_acquisition_id += 1

        try:
            if timeout is not None:
                await asyncio.wait_for(self._semaphore.acquire(), timeout=timeout)
            else:
                await self._semaphore.acquire()
        except asyncio.TimeoutError:
            self._total_timeouts += 1
            logger.warning(
                f"Semaphore '{self.name}' acquisition timeout after {timeout}s"
            )
            raise

        self._active_acquisitions[acquisition_id] = time.time()
        self._total_acquisitions += 1
        logger.debug(f"Semaphore '{self.name}' acquired (id={acquisition_id})")

        try:
            yield
        finally:
            hold_time = time.time() - self._active_acquisitions.pop(acquisition_id)
            self._hold_times.append(hold_time)
            self._max_hold_time = max(self._max_hold_time, hold_time)

            self._semaphore.release()
            logger.debug(f"Semaphore '{self.name}' released (id={acquisition_id})")

    def locked(self) -> bool:
        """Check if semaphore is at capacity (no permits available)"""
        return self._semaphore.locked()

    def get_stats(self) -> SemaphoreStats:
        current_value = self._semaphore._value  # noqa: SLF001
        waiters = getattr(self._semaphore, "_waiters", None)  # noqa: SLF001

        avg_hold_time = (
            sum(self._hold_times) / len(self._hold_times) if self._hold_times else 0.0
        )

        return SemaphoreStats(
            name=self.name,
            capacity=self.capacity,
            current_value=current_value,
            waiting_count=len(waiters) if waiters else 0,
            total_acquisitions=self._total_acquisitions,
            total_timeouts=self._total_timeouts,
            average_hold_time=avg_hold_time,
            max_hold_time=self._max_hold_time,
        )

    def check_leaks(self, max_hold_time: float = 300.0) -> int:
        """Number of acquisitions held longer than ``max_hold_time`` seconds"""
        current_time = time.time()
        leaked_count = 0

        for acquisition_id, acquire_time in list(self._active_acquisitions.items()):
            hold_time = current_time - acquire_time
            if hold_time > max_hold_time:
                logger.warning(
                    f"Potential semaphore leak in '{self.name}': "
                    f"acquisition {acquisition_id} held for {hold_time:.1f}s"
                )
                leaked_count += 1

        return leaked_count


class SemaphoreManager:
    """Registry of named semaphores"""

    def __init__(self):
        self._semaphores: dict[str, AsyncSemaphore] = {}
        self._default_capacities = {
            "pipeline_cycle": 1,
        }

    def get_semaphore(
        self, name: str, capacity: Optional[int] = None
    ) -> AsyncSemaphore:
        """
        Get or create a named semaphore

        Args:
            name: Semaphore name, e.g. ``pipeline_cycle:<namespace>``
            capacity: Capacity for a new semaphore; defaults by the name
                prefix before ``:``, else 1
        """
        if name not in self._semaphores:
            if capacity is None:
                prefix = name.split(":", 1)[0]
                capacity = self._default_capacities.get(prefix, 1)

            self._semaphores[name] = AsyncSemaphore(capacity, name)
            logger.info(f"Created semaphore '{name}' with capacity {capacity}")

        return self._semaphores[name]

    def list_semaphores(self) -> dict[str, SemaphoreStats]:
        return {
            name: semaphore.get_stats() for name, semaphore in self._semaphores.items()
        }

    def check_all_leaks(self, max_hold_time: float = 300.0) -> dict[str, int]:
        leak_counts = {}
        for name, semaphore in self._semaphores.items():
            leak_count = semaphore.check_leaks(max_hold_time)
            if leak_count > 0:
                leak_counts[name] = leak_count
        return leak_counts

    def set_default_capacity(self, name: str, capacity: int) -> None:
        self._default_capacities[name] = capacity


_semaphore_manager = SemaphoreManager()


def get_semaphore_manager() -> SemaphoreManager:
    """Get the global semaphore manager"""
    return _semaphore_manager
