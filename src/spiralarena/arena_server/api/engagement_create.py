from __future__ import annotations

from spiralarena.arena_server.api.utils import (
    engagement_payload,
    require_actor,
    require_int,
    rpc_success,
)


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    engagement = await arena.engagements.create(
        actor_id,
        require_int(request, "engagement_id"),
        min_participants=require_int(request, "min_participants"),
        entry_fee=require_int(request, "entry_fee", default=0),
        countdown_delay=require_int(request, "countdown_delay", default=0),
    )
    return rpc_success({"engagement": engagement_payload(engagement)})
