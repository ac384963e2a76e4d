from __future__ import annotations

from spiralarena.arena_server.api.utils import (
    engagement_payload,
    require_actor,
    require_int,
    rpc_success,
)


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    engagement_id = require_int(request, "engagement_id")

    if request.get("resume"):
        randomness = await arena.engagements.resume(actor_id, engagement_id)
    else:
        randomness = await arena.engagements.start(actor_id, engagement_id)
    engagement = arena.engagements.get(engagement_id)
    return rpc_success(
        {
            "engagement": engagement_payload(engagement),
            "request_id": randomness.request_id,
        }
    )
