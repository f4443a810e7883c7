"""
Timer-driven auto-sync

Runs automation cycles on an interval as a cancellable asyncio task. The
pipeline stays synchronous; cycles run in a worker thread and cycles of the
same namespace are serialized through a single-flight semaphore.
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Optional

from .concurrency import SemaphoreManager, get_semaphore_manager
from .context import NamespaceContext
from .observability.tracer import trace_async
from .pipeline import AutomationPipeline, CycleReport

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """
    Periodic runner for ``AutomationPipeline.run_cycle``

    Args:
        pipeline: Pipeline to run
        interval_minutes: Time between cycles, defaults to the configured
            scheduler interval
        namespace: Tenant to run for, defaults to the pipeline's namespace
        run_immediately: Run a cycle as soon as the loop starts
    """

    def __init__(
        self,
        pipeline: AutomationPipeline,
        interval_minutes: Optional[float] = None,
        namespace: Optional[str] = None,
        run_immediately: bool = False,
        semaphore_manager: Optional[SemaphoreManager] = None,
    ):
        self.pipeline = pipeline
        self.interval_minutes = (
            interval_minutes
            if interval_minutes is not None
            else pipeline.config.scheduler.interval_minutes
        )
        if self.interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")

        self.namespace = namespace or pipeline.namespace
        self.run_immediately = run_immediately
        self._semaphores = semaphore_manager or get_semaphore_manager()
        self._task: Optional[asyncio.Task] = None

        self.run_count = 0
        self.failure_count = 0
        self.last_report: Optional[CycleReport] = None
        self.last_error: Optional[BaseException] = None

    @property
    def semaphore_name(self) -> str:
        return f"pipeline_cycle:{self.namespace}"

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @trace_async("scheduler.trigger")
    async def trigger(self, now: Optional[datetime] = None) -> CycleReport:
        """
        Run one cycle now

        Waits for a cycle of the same namespace already in flight, so manual
        and scheduled runs never overlap.
        """
        semaphore = self._semaphores.get_semaphore(self.semaphore_name, capacity=1)
        async with semaphore.acquire():
            with NamespaceContext(self.namespace):
                # to_thread copies the context, namespace included
                report = await asyncio.to_thread(self.pipeline.run_cycle, now)

        self.run_count += 1
        self.last_report = report
        return report

    async def _loop(self) -> None:
        interval_seconds = self.interval_minutes * 60
        logger.info(
            f"Auto-sync started for {self.namespace} "
            f"(every {self.interval_minutes} minutes)"
        )
        if not self.run_immediately:
            await asyncio.sleep(interval_seconds)

        while True:
            try:
                await self.trigger()
            except Exception as e:
                self.failure_count += 1
                self.last_error = e
                logger.exception(f"Auto-sync cycle failed for {self.namespace}: {e}")
            await asyncio.sleep(interval_seconds)

    def start(self) -> asyncio.Task:
        """
        Start the periodic loop on the running event loop

        Raises:
            RuntimeError: If already running
        """
        if self.is_running:
            raise RuntimeError(f"Auto-sync for {self.namespace} is already running")
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name=f"itilops-autosync-{self.namespace}"
        )
        return self._task

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish"""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info(f"Auto-sync stopped for {self.namespace}")
