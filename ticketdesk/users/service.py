from __future__ import annotations

import logging
from typing import Protocol

from ticketdesk.core.errors import NotFoundError, ValidationError
from ticketdesk.tickets.repository import TicketRepository
from ticketdesk.tickets.state import TicketStatus

from .models import AgentDetails, User
from .repository import UserRepository

logger = logging.getLogger(__name__)


class ScoreLookup(Protocol):
    async def current_score(self, agent_id: str) -> float:
        ...


class UserService:
    """Agent directory, profile details and heartbeat."""

    def __init__(self, users: UserRepository, tickets: TicketRepository, scores: ScoreLookup) -> None:
        self._users = users
        self._tickets = tickets
        self._scores = scores

    async def get_user(self, user_id: str) -> User:
        return await self._users.require_user(user_id)

    async def list_agents(self) -> list[User]:
        return await self._users.list_agents()

    async def heartbeat(self, user_id: str) -> User:
        user = await self._users.touch_heartbeat(user_id)
        logger.debug("Heartbeat from %s", user_id)
        return user

    async def agent_details(self, agent_id: str) -> AgentDetails:
        agent = await self._users.get_user(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent {agent_id} not found")
        if not agent.is_agent:
            raise ValidationError(f"User {agent_id} is not an agent")
        counts = await self._tickets.count_by_status(agent_id)
        return AgentDetails(
            agent=agent,
            not_started_count=counts[TicketStatus.NOT_STARTED],
            in_progress_count=counts[TicketStatus.IN_PROGRESS],
            closed_count=counts[TicketStatus.RESOLVED] + counts[TicketStatus.INVALID],
            productivity_score=await self._scores.current_score(agent_id),
        )
