from __future__ import annotations

from spiralarena.arena_server.api.utils import require_actor, require_int, rpc_success


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    engagement_id = require_int(request, "engagement_id")

    amount = await arena.engagements.claim(actor_id, engagement_id)
    engagement = arena.engagements.get(engagement_id)
    survivor = arena.registry.get(engagement.survivor_id)
    return rpc_success(
        {
            "engagement_id": engagement_id,
            "amount": amount,
            "backer_id": survivor.backer_id,
        }
    )
