"""RPC handler for querying the event journal (owner and backer modes)."""

from __future__ import annotations

from fastapi import HTTPException

from spiralarena.arena_server.api.utils import require_actor, rpc_success
from spiralarena.arena_server.errors import NotAuthorized

SORT_DIRECTIONS = ("forward", "reverse")


def _optional_int(request: dict, key: str) -> int | None:
    value = request.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPException(status_code=400, detail=f"{key} must be an integer")
    return value


def _optional_str(request: dict, key: str) -> str | None:
    value = request.get(key)
    if value is not None and not isinstance(value, str):
        raise HTTPException(status_code=400, detail=f"{key} must be a string")
    return value or None


async def handle(request: dict, arena) -> dict:
    actor_id = require_actor(request)
    journal = arena.event_dispatcher.event_logger
    if journal is None:
        raise HTTPException(status_code=503, detail="Event log is disabled")

    engagement_id = _optional_int(request, "engagement_id")
    limit = _optional_int(request, "limit")
    event = _optional_str(request, "event")
    backer_id = _optional_str(request, "backer_id")

    sort_direction = request.get("sort_direction") or "forward"
    if sort_direction not in SORT_DIRECTIONS:
        raise HTTPException(
            status_code=400, detail="sort_direction must be 'forward' or 'reverse'"
        )

    # Backers only ever see events they sent or received.
    if not arena.authority.is_owner(actor_id):
        if backer_id not in (None, actor_id):
            raise NotAuthorized("Backers may only query their own events")
        backer_id = actor_id

    events, truncated = journal.query(
        engagement_id=engagement_id,
        backer_id=backer_id,
        event=event,
        limit=limit,
        sort_direction=sort_direction,
    )
    return rpc_success({"events": events, "count": len(events), "truncated": truncated})
