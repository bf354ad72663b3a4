from __future__ import annotations

import asyncio
import logging

import pytest

from ticketdesk.core.config import Settings
from ticketdesk.jobs import JobRunner, PeriodicJob
from ticketdesk.main import Services, build_jobs
from ticketdesk.metrics import MetricsRegistry


@pytest.mark.asyncio
async def test_run_once_counts_successful_runs():
    registry = MetricsRegistry()
    calls: list[str] = []

    async def action() -> None:
        calls.append("ran")

    job = PeriodicJob(name="demo", interval_seconds=60, action=action)

    assert await job.run_once(registry) is True
    assert calls == ["ran"]
    assert registry.counter("job_runs_total").value({"job": "demo"}) == 1
    assert registry.counter("job_failures_total").value({"job": "demo"}) == 0


@pytest.mark.asyncio
async def test_run_once_logs_and_counts_failures(caplog):
    registry = MetricsRegistry()

    async def action() -> None:
        raise RuntimeError("database unavailable")

    job = PeriodicJob(name="broken", interval_seconds=60, action=action)

    with caplog.at_level(logging.ERROR, logger="ticketdesk.jobs"):
        assert await job.run_once(registry) is False

    assert registry.counter("job_failures_total").value({"job": "broken"}) == 1
    assert "Background job broken failed" in caplog.text


@pytest.mark.asyncio
async def test_run_once_propagates_cancellation():
    async def action() -> None:
        raise asyncio.CancelledError()

    job = PeriodicJob(name="cancelled", interval_seconds=60, action=action)

    with pytest.raises(asyncio.CancelledError):
        await job.run_once(MetricsRegistry())


@pytest.mark.asyncio
async def test_runner_starts_and_stops_jobs():
    registry = MetricsRegistry()
    ran = asyncio.Event()

    async def action() -> None:
        ran.set()

    runner = JobRunner(
        [PeriodicJob(name="tick", interval_seconds=3600, action=action, run_immediately=True)],
        metrics=registry,
    )
    runner.start()
    await asyncio.wait_for(ran.wait(), timeout=1)
    await runner.stop()

    assert registry.counter("job_runs_total").value({"job": "tick"}) == 1


def _services(desk) -> Services:
    return Services(
        users=desk.users,
        tickets=desk.tickets,
        user_service=desk.user_service,
        scorer=desk.scorer,
        workloads=desk.workloads,
        scheduler=desk.scheduler,
        escalator=desk.escalator,
    )


@pytest.mark.asyncio
async def test_build_jobs_wires_scoring_and_escalation(desk):
    services = _services(desk)
    settings = Settings(score_job_interval_seconds=120, sla_job_interval_seconds=30)

    jobs = build_jobs(services, settings)

    assert [(job.name, job.interval_seconds) for job in jobs] == [
        ("productivity-scores", 120),
        ("sla-escalation", 30),
    ]
    assert all([await job.run_once(desk.metrics) for job in jobs])


@pytest.mark.asyncio
async def test_scoring_job_runs_at_startup(desk, alice):
    jobs = build_jobs(_services(desk), Settings(score_job_interval_seconds=604800))
    scoring = next(job for job in jobs if job.name == "productivity-scores")
    escalation = next(job for job in jobs if job.name == "sla-escalation")
    assert scoring.run_immediately is True
    assert escalation.run_immediately is False

    finished = asyncio.Event()
    recalculate = scoring.action

    async def action() -> None:
        await recalculate()
        finished.set()

    scoring.action = action
    runner = JobRunner([scoring], metrics=desk.metrics)
    runner.start()
    await asyncio.wait_for(finished.wait(), timeout=5)
    await runner.stop()

    assert await desk.scorer.history(alice.id)
