from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Query

from ticketdesk.api.schemas import CamelModel, UserModel
from ticketdesk.dependencies import (
    AssignmentSchedulerDep,
    ManagerActor,
    ProductivityScorerDep,
    UserServiceDep,
    WorkloadTrackerDep,
)
from ticketdesk.scoring.models import AgentScore
from ticketdesk.workload.tracker import WorkloadSnapshot

router = APIRouter(prefix="/agents", tags=["agents"])


class WorkloadModel(CamelModel):
    agent_id: str
    agent_name: str
    not_started: int
    in_progress: int
    total_active: int
    not_started_by_priority: dict[str, int]
    in_progress_by_priority: dict[str, int]
    productivity_score: float
    workload_score: float
    policy: str
    policy_version: int

    @classmethod
    def from_snapshot(cls, snapshot: WorkloadSnapshot) -> "WorkloadModel":
        return cls(
            agent_id=snapshot.agent_id,
            agent_name=snapshot.agent_name,
            not_started=snapshot.not_started,
            in_progress=snapshot.in_progress,
            total_active=snapshot.total_active,
            not_started_by_priority=dict(snapshot.counts.not_started),
            in_progress_by_priority=dict(snapshot.counts.in_progress),
            productivity_score=snapshot.productivity_score,
            workload_score=snapshot.workload_score,
            policy=snapshot.policy,
            policy_version=snapshot.policy_version,
        )


class AgentDetailsModel(CamelModel):
    agent: UserModel
    not_started_count: int
    in_progress_count: int
    closed_count: int
    productivity_score: float


class AgentScoreModel(CamelModel):
    agent_id: str
    agent_name: str
    week_start: date
    week_end: date
    tickets_resolved: int
    tickets_invalid: int
    tickets_closed: int
    productivity_score: float
    calculated_at: datetime

    @classmethod
    def from_entity(cls, score: AgentScore) -> "AgentScoreModel":
        return cls(
            agent_id=score.agent_id,
            agent_name=score.agent_name,
            week_start=score.week_start,
            week_end=score.week_end,
            tickets_resolved=score.tickets_resolved,
            tickets_invalid=score.tickets_invalid,
            tickets_closed=score.tickets_closed,
            productivity_score=score.productivity_score,
            calculated_at=score.calculated_at,
        )


class AssignmentStatsModel(CamelModel):
    workloads: list[WorkloadModel]
    unassigned_count: int
    agent_count: int
    total_active_tickets: int


@router.get("", response_model=list[UserModel], summary="List agents")
async def list_agents(users: UserServiceDep, actor: ManagerActor) -> list[UserModel]:
    return [UserModel.from_entity(agent) for agent in await users.list_agents()]


@router.get("/workloads", response_model=list[WorkloadModel])
async def list_workloads(tracker: WorkloadTrackerDep, actor: ManagerActor) -> list[WorkloadModel]:
    return [WorkloadModel.from_snapshot(snapshot) for snapshot in await tracker.compute_all()]


@router.get("/scores", response_model=list[AgentScoreModel])
async def list_scores(
    scorer: ProductivityScorerDep,
    actor: ManagerActor,
    weeks: int | None = Query(default=None, ge=1, le=520),
) -> list[AgentScoreModel]:
    if weeks is None:
        scores = await scorer.current_week_scores()
    else:
        scores = await scorer.scores_for_last_weeks(weeks)
    return [AgentScoreModel.from_entity(score) for score in scores]


@router.post("/scores/recalculate", response_model=list[AgentScoreModel])
async def recalculate_scores(
    scorer: ProductivityScorerDep,
    actor: ManagerActor,
    week_start: date | None = Query(default=None, alias="weekStart"),
) -> list[AgentScoreModel]:
    scores = await scorer.calculate_week(week_start)
    return [AgentScoreModel.from_entity(score) for score in scores]


@router.get("/assignment-stats", response_model=AssignmentStatsModel)
async def assignment_stats(scheduler: AssignmentSchedulerDep, actor: ManagerActor) -> AssignmentStatsModel:
    stats = await scheduler.assignment_stats()
    return AssignmentStatsModel(
        workloads=[WorkloadModel.from_snapshot(snapshot) for snapshot in stats.workloads],
        unassigned_count=stats.unassigned_count,
        agent_count=stats.agent_count,
        total_active_tickets=stats.total_active_tickets,
    )


@router.get("/{agent_id}", response_model=AgentDetailsModel)
async def get_agent(agent_id: str, users: UserServiceDep, actor: ManagerActor) -> AgentDetailsModel:
    details = await users.agent_details(agent_id)
    return AgentDetailsModel(
        agent=UserModel.from_entity(details.agent),
        not_started_count=details.not_started_count,
        in_progress_count=details.in_progress_count,
        closed_count=details.closed_count,
        productivity_score=details.productivity_score,
    )


@router.get("/{agent_id}/workload", response_model=WorkloadModel)
async def get_agent_workload(agent_id: str, tracker: WorkloadTrackerDep, actor: ManagerActor) -> WorkloadModel:
    return WorkloadModel.from_snapshot(await tracker.compute_workload(agent_id))


@router.get("/{agent_id}/scores", response_model=list[AgentScoreModel])
async def get_agent_scores(
    agent_id: str, scorer: ProductivityScorerDep, actor: ManagerActor
) -> list[AgentScoreModel]:
    return [AgentScoreModel.from_entity(score) for score in await scorer.history(agent_id)]
