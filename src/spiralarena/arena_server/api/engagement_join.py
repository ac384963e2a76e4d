from __future__ import annotations

from spiralarena.arena_server.api.utils import (
    engagement_payload,
    require_actor,
    require_int,
    require_str,
    rpc_success,
)


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    combatant_id = require_str(request, "combatant_id")
    engagement_id = require_int(request, "engagement_id")
    paid_amount = require_int(request, "paid_amount", default=0)

    result = await arena.engagements.join(actor_id, combatant_id, engagement_id, paid_amount)
    return rpc_success(
        {
            "engagement": engagement_payload(result.engagement),
            "combatant": result.combatant.to_dict(),
            "started": result.started,
            "request_id": result.request.request_id if result.request else None,
        }
    )
