"""Periodic background jobs run inside the application's event loop."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from ticketdesk.metrics import MetricsRegistry, metrics_registry

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PeriodicJob:
    """Run ``action`` every ``interval_seconds`` until cancelled."""

    name: str
    interval_seconds: float
    action: Callable[[], Awaitable[Any]]
    run_immediately: bool = False

    async def run_once(self, metrics: MetricsRegistry | None = None) -> bool:
        registry = metrics or metrics_registry
        registry.counter("job_runs_total").inc(labels={"job": self.name})
        try:
            await self.action()
        except asyncio.CancelledError:
            raise
        except Exception:
            registry.counter("job_failures_total").inc(labels={"job": self.name})
            logger.exception("Background job %s failed", self.name)
            return False
        logger.info("Background job %s completed", self.name)
        return True

    async def run_loop(self, metrics: MetricsRegistry | None = None) -> None:
        if self.run_immediately:
            await self.run_once(metrics)
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once(metrics)


class JobRunner:
    """Own the tasks of a set of periodic jobs for the lifetime of the app."""

    def __init__(self, jobs: list[PeriodicJob], *, metrics: MetricsRegistry | None = None) -> None:
        self._jobs = list(jobs)
        self._metrics = metrics or metrics_registry
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def jobs(self) -> list[PeriodicJob]:
        return list(self._jobs)

    def start(self) -> None:
        if self._tasks:
            return
        for job in self._jobs:
            task = asyncio.create_task(job.run_loop(self._metrics), name=f"ticketdesk-job-{job.name}")
            self._tasks.append(task)
        logger.info("Started %d background jobs", len(self._tasks))

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
