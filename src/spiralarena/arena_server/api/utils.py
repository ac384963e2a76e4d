"""Shared helpers for arena API handlers."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import HTTPException

from spiralarena.arena_server.combat.models import Engagement
from spiralarena.arena_server.core.authorization import RESERVED_ACTOR_PREFIX
from spiralarena.arena_server.errors import ArenaError
from spiralarena.arena_server.rpc.rpc import ARENA_ERROR_HEADER


def rpc_success(data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {"success": True}
    if data:
        result.update(data)
    return result


def arena_http_error(exc: ArenaError) -> HTTPException:
    """Translate a core error into the HTTP error surfaced to callers."""
    return HTTPException(
        status_code=exc.status_code,
        detail=exc.detail,
        headers={ARENA_ERROR_HEADER: exc.code},
    )


def require_actor(request: dict) -> str:
    actor_id = request.get("actor_id")
    if not isinstance(actor_id, str) or not actor_id.strip():
        raise HTTPException(status_code=400, detail="Missing actor_id")
    if actor_id.startswith(RESERVED_ACTOR_PREFIX):
        raise HTTPException(status_code=403, detail="Reserved actor id")
    return actor_id


def require_str(request: dict, key: str) -> str:
    value = request.get(key)
    if not isinstance(value, str) or not value.strip():
        raise HTTPException(status_code=400, detail=f"Missing {key}")
    return value


def require_int(request: dict, key: str, *, default: Optional[int] = None) -> int:
    value = request.get(key, default)
    if value is None:
        raise HTTPException(status_code=400, detail=f"Missing {key}")
    if isinstance(value, bool) or not isinstance(value, int):
        raise HTTPException(status_code=400, detail=f"{key} must be an integer")
    return value


def engagement_payload(engagement: Engagement, *, include_logs: bool = False) -> dict:
    payload = engagement.to_dict()
    if include_logs:
        payload["rounds"] = [log.to_dict() for log in engagement.logs]
    return payload
