"""Callback endpoint through which a remote randomness provider delivers words."""

from __future__ import annotations

from fastapi import HTTPException

from spiralarena.arena_server.api.utils import require_actor, require_str, rpc_success


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    arena.authority.require_oracle(actor_id)

    request_id = require_str(request, "randomness_request_id")
    words = request.get("random_words")
    if not isinstance(words, list):
        raise HTTPException(status_code=400, detail="random_words must be a list of integers")

    outcome = await arena.continuation.fulfill(request_id, words)
    return rpc_success(
        {
            "engagement_round": outcome.round_number,
            "scenario": outcome.scenario,
            "eliminated": list(outcome.eliminated),
            "remaining": list(outcome.roster),
            "survivor_id": outcome.survivor_id,
        }
    )
