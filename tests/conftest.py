from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import packages.db.models  # noqa: F401  registers tables on SQLModel.metadata
from ticketdesk.assignment.scheduler import AssignmentScheduler
from ticketdesk.metrics import MetricsRegistry
from ticketdesk.scoring.repository import AgentScoreRepository
from ticketdesk.scoring.scorer import ProductivityScorer
from ticketdesk.tickets.escalation import SlaEscalator
from ticketdesk.tickets.models import Customer, Ticket
from ticketdesk.tickets.repository import TicketRepository
from ticketdesk.tickets.service import TicketService
from ticketdesk.tickets.state import Priority
from ticketdesk.users.models import Actor, Role, User
from ticketdesk.users.repository import UserRepository
from ticketdesk.users.service import UserService
from ticketdesk.workload.tracker import WorkloadTracker


class FakeClock:
    """Settable clock; every call returns the current value."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


@dataclass
class Desk:
    users: UserRepository
    repository: TicketRepository
    tickets: TicketService
    scorer: ProductivityScorer
    workloads: WorkloadTracker
    scheduler: AssignmentScheduler
    escalator: SlaEscalator
    user_service: UserService
    metrics: MetricsRegistry
    clock: FakeClock

    async def add_agent(self, agent_id: str, name: str | None = None) -> User:
        name = name or agent_id.title()
        return await self.users.create_user(
            user_id=agent_id, name=name, email=f"{agent_id}@example.com", role=Role.AGENT
        )

    async def add_manager(self, manager_id: str = "manager-1") -> User:
        return await self.users.create_user(
            user_id=manager_id, name="Morgan Manager", email=f"{manager_id}@example.com", role=Role.MANAGER
        )

    async def new_ticket(self, title: str = "Printer jammed", *, priority: Priority | None = None) -> Ticket:
        return await self.tickets.create_ticket(
            title=title,
            description=f"{title} on the third floor",
            customer=Customer(name="Casey Customer", email="casey@example.com"),
            priority=priority,
        )


@pytest.fixture
def clock() -> FakeClock:
    # Wednesday, so a whole ISO week sits on either side.
    return FakeClock(datetime(2024, 3, 6, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ticketdesk.db'}")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def desk(session_factory: async_sessionmaker, engine: AsyncEngine, clock: FakeClock) -> Desk:
    metrics = MetricsRegistry()
    users = UserRepository(session_factory)
    repository = TicketRepository(session_factory, engine=engine)
    scorer = ProductivityScorer(repository.ledger, AgentScoreRepository(session_factory), users, clock=clock)
    tickets = TicketService(repository, users, resolution_listener=scorer, metrics=metrics, clock=clock)
    workloads = WorkloadTracker(repository, users, scorer)
    return Desk(
        users=users,
        repository=repository,
        tickets=tickets,
        scorer=scorer,
        workloads=workloads,
        scheduler=AssignmentScheduler(tickets, workloads, metrics=metrics),
        escalator=SlaEscalator(tickets, clock=clock),
        user_service=UserService(users, repository, scorer),
        metrics=metrics,
        clock=clock,
    )


@pytest_asyncio.fixture
async def manager(desk: Desk) -> Actor:
    return Actor.from_user(await desk.add_manager())


@pytest_asyncio.fixture
async def alice(desk: Desk) -> Actor:
    return Actor.from_user(await desk.add_agent("agent-a", "Alice"))


@pytest_asyncio.fixture
async def bob(desk: Desk) -> Actor:
    return Actor.from_user(await desk.add_agent("agent-b", "Bob"))
