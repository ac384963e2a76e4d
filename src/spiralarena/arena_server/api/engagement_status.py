from __future__ import annotations

from fastapi import HTTPException

from spiralarena.arena_server.api.utils import engagement_payload, rpc_success
from spiralarena.arena_server.combat.models import EngagementStatus


async def handle(request: dict, arena) -> dict:
    engagement_id = request.get("engagement_id")
    include_logs = bool(request.get("include_rounds"))

    if engagement_id is not None:
        if isinstance(engagement_id, bool) or not isinstance(engagement_id, int):
            raise HTTPException(status_code=400, detail="engagement_id must be an integer")
        engagement = arena.engagements.get(engagement_id)
        return rpc_success(
            {"engagement": engagement_payload(engagement, include_logs=include_logs)}
        )

    state_raw = request.get("state")
    status = None
    if state_raw:
        try:
            status = EngagementStatus.from_str(str(state_raw))
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    engagements = arena.engagements.list_engagements(status)
    return rpc_success(
        {"engagements": [engagement_payload(e, include_logs=include_logs) for e in engagements]}
    )
