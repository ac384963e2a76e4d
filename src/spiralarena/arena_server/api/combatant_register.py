from __future__ import annotations

from fastapi import HTTPException

from spiralarena.arena_server.api.utils import require_actor, rpc_success


async def handle(request: dict, arena) -> dict:
    backer_id = require_actor(request)
    attributes = request.get("attributes")
    if not isinstance(attributes, list):
        raise HTTPException(status_code=400, detail="attributes must be a list of integers")

    combatant = await arena.registry.register(backer_id, attributes)
    return rpc_success({"combatant": combatant.to_dict()})
