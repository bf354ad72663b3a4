from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from ticketdesk.dependencies import ManagerActor, MetricsRegistryDep

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", summary="Snapshot of in-process metrics")
async def metrics_snapshot(registry: MetricsRegistryDep, actor: ManagerActor) -> dict[str, Any]:
    return registry.snapshot()
