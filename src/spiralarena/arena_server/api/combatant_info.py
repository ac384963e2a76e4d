from __future__ import annotations

from fastapi import HTTPException

from spiralarena.arena_server.api.utils import rpc_success


async def handle(request: dict, arena) -> dict:
    combatant_id = request.get("combatant_id")
    backer_id = request.get("backer_id")

    if combatant_id:
        combatant = arena.registry.get(str(combatant_id))
        return rpc_success({"combatant": combatant.to_dict()})
    if backer_id:
        combatants = arena.registry.list_for_backer(str(backer_id))
        return rpc_success({"combatants": [c.to_dict() for c in combatants]})
    raise HTTPException(status_code=400, detail="Provide combatant_id or backer_id")
