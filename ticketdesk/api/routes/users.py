from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter

from ticketdesk.api.schemas import CamelModel, UserModel
from ticketdesk.dependencies import CurrentActor, UserServiceDep

router = APIRouter(prefix="/users", tags=["users"])


class HeartbeatModel(CamelModel):
    status: str
    last_active_at: datetime


@router.post("/heartbeat", response_model=HeartbeatModel, summary="Record that the caller is active")
async def heartbeat(users: UserServiceDep, actor: CurrentActor) -> HeartbeatModel:
    user = await users.heartbeat(actor.id)
    assert user.last_active_at is not None
    return HeartbeatModel(status="ok", last_active_at=user.last_active_at)


@router.get("/me", response_model=UserModel)
async def current_user(users: UserServiceDep, actor: CurrentActor) -> UserModel:
    return UserModel.from_entity(await users.get_user(actor.id))
