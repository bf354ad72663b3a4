from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ticketdesk.api.errors import register_exception_handlers
from ticketdesk.api.routes import agents, metrics, ping, tickets, users
from ticketdesk.assignment.scheduler import AssignmentScheduler
from ticketdesk.core.clock import utcnow
from ticketdesk.core.config import Settings, get_settings
from ticketdesk.core.logging import configure_logging, init_tracer, shutdown_tracer
from ticketdesk.dependencies.auth import TokenIdentityProvider
from ticketdesk.jobs import JobRunner, PeriodicJob
from ticketdesk.metrics import MetricsRegistry, metrics_registry
from ticketdesk.middleware import IdentityMiddleware
from ticketdesk.scoring.models import week_start_for
from ticketdesk.scoring.repository import AgentScoreRepository
from ticketdesk.scoring.scorer import ProductivityScorer
from ticketdesk.tickets.escalation import SlaEscalator
from ticketdesk.tickets.repository import TicketRepository
from ticketdesk.tickets.service import TicketService
from ticketdesk.users.repository import UserRepository
from ticketdesk.users.service import UserService
from ticketdesk.workload.tracker import WorkloadTracker


def _to_asyncpg_dsn(dsn: str) -> str:
    """Ensure the SQLAlchemy DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    return dsn


@dataclass(slots=True)
class Services:
    """Wired service graph shared by the API and the background jobs."""

    users: UserRepository
    tickets: TicketService
    user_service: UserService
    scorer: ProductivityScorer
    workloads: WorkloadTracker
    scheduler: AssignmentScheduler
    escalator: SlaEscalator


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    metrics: MetricsRegistry | None = None,
) -> Services:
    registry = metrics or metrics_registry
    user_repository = UserRepository(session_factory)
    ticket_repository = TicketRepository(session_factory, engine=engine)
    scorer = ProductivityScorer(
        ticket_repository.ledger,
        AgentScoreRepository(session_factory),
        user_repository,
        default_score=settings.default_productivity_score,
    )
    ticket_service = TicketService(
        ticket_repository,
        user_repository,
        resolution_listener=scorer,
        metrics=registry,
        retry_attempts=settings.status_retry_attempts,
    )
    workloads = WorkloadTracker(
        ticket_repository, user_repository, scorer, policy=settings.workload_policy
    )
    return Services(
        users=user_repository,
        tickets=ticket_service,
        user_service=UserService(user_repository, ticket_repository, scorer),
        scorer=scorer,
        workloads=workloads,
        scheduler=AssignmentScheduler(ticket_service, workloads, metrics=registry),
        escalator=SlaEscalator(
            ticket_service,
            low_after_days=settings.sla_low_escalation_days,
            medium_after_days=settings.sla_medium_escalation_days,
        ),
    )


def build_jobs(services: Services, settings: Settings) -> list[PeriodicJob]:
    async def recalculate_scores() -> None:
        current = week_start_for(utcnow())
        await services.scorer.calculate_week(current - timedelta(weeks=1))
        await services.scorer.calculate_week(current)
        await services.scorer.cleanup(settings.score_history_weeks)

    return [
        PeriodicJob(
            name="productivity-scores",
            interval_seconds=settings.score_job_interval_seconds,
            action=recalculate_scores,
            run_immediately=True,
        ),
        PeriodicJob(
            name="sla-escalation",
            interval_seconds=settings.sla_job_interval_seconds,
            action=services.escalator.run,
        ),
    ]


def attach_services(app: FastAPI, services: Services | None) -> None:
    app.state.services = services
    app.state.ticket_service = services.tickets if services else None
    app.state.user_service = services.user_service if services else None
    app.state.productivity_scorer = services.scorer if services else None
    app.state.workload_tracker = services.workloads if services else None
    app.state.assignment_scheduler = services.scheduler if services else None


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app_logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    app.state.logger = app_logger
    app.state.tracer_provider = tracer_provider
    attach_services(app, None)
    runner: JobRunner | None = None
    db_engine: AsyncEngine | None = None
    try:
        db_engine = create_async_engine(
            _to_asyncpg_dsn(settings.database_dsn), echo=settings.database_echo, future=True
        )
        session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
        services = build_services(session_factory, settings, engine=db_engine)
        await services.tickets.ensure_schema()
        if settings.seed_users:
            seeded = await services.users.upsert_users(settings.seed_users)
            app_logger.info("Seeded %d users", len(seeded))
        attach_services(app, services)
        if settings.jobs_enabled:
            runner = JobRunner(build_jobs(services, settings))
            runner.start()
    except Exception:
        app_logger.exception("Service initialisation failed; API will answer 503")
        attach_services(app, None)
        if db_engine is not None:
            await db_engine.dispose()
            db_engine = None
    try:
        yield
    finally:
        if runner is not None:
            await runner.stop()
        if db_engine is not None:
            await db_engine.dispose()
        shutdown_tracer(tracer_provider)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.identity_provider = TokenIdentityProvider(settings.auth_tokens)
    app.state.metrics = metrics_registry
    app.add_middleware(IdentityMiddleware)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(agents.router)
    app.include_router(users.router)
    app.include_router(metrics.router)
    return app


app = create_app()
