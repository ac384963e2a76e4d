"""Spiral Arena server: HTTP RPC endpoints plus a WebSocket event channel."""

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect

from spiralarena.arena_server.api import (
    combatant_info as api_combatant_info,
    combatant_register as api_combatant_register,
    engagement_claim as api_engagement_claim,
    engagement_create as api_engagement_create,
    engagement_join as api_engagement_join,
    engagement_start as api_engagement_start,
    engagement_status as api_engagement_status,
    event_query as api_event_query,
    randomness_fulfill as api_randomness_fulfill,
)
from spiralarena.arena_server.api.utils import arena_http_error
from spiralarena.arena_server.core.arena import Arena, lifespan
from spiralarena.arena_server.errors import ArenaError
from spiralarena.arena_server.rpc import rpc_bad_request, rpc_error, rpc_success
from spiralarena.arena_server.rpc.connection import Connection

logger = logging.getLogger("spiral-arena.server")

VERSION = "0.1.0"

ArenaHandler = Callable[[Dict[str, Any], Arena], Awaitable[Dict[str, Any]]]


async def _server_status(_: Dict[str, Any], arena: Arena) -> Dict[str, Any]:
    return {
        "name": "Spiral Arena",
        "version": VERSION,
        "status": "running",
        "combatants": len(arena.registry),
        "engagements": len(arena.engagements.list_engagements()),
        "pending_requests": len(arena.continuation.pending_requests()),
        "scenarios": [s.name for s in arena.modifier_table.scenarios],
    }


RPC_HANDLERS: Dict[str, ArenaHandler] = {
    "combatant.register": api_combatant_register.handle,
    "combatant.info": api_combatant_info.handle,
    "engagement.create": api_engagement_create.handle,
    "engagement.join": api_engagement_join.handle,
    "engagement.start": api_engagement_start.handle,
    "engagement.claim": api_engagement_claim.handle,
    "engagement.status": api_engagement_status.handle,
    "randomness.fulfill": api_randomness_fulfill.handle,
    "event.query": api_event_query.handle,
    "server_status": _server_status,
}


async def dispatch(endpoint: str, payload: Dict[str, Any], arena: Arena) -> Dict[str, Any]:
    """Run one RPC handler, translating core errors into HTTP errors."""
    handler = RPC_HANDLERS.get(endpoint)
    if handler is None:
        raise HTTPException(status_code=404, detail=f"Unknown endpoint: {endpoint}")
    try:
        return await handler(payload, arena)
    except ArenaError as exc:
        logger.info("RPC %s rejected: %s (%s)", endpoint, exc.detail, exc.code)
        raise arena_http_error(exc) from exc


def create_app() -> FastAPI:
    app = FastAPI(title="Spiral Arena", version=VERSION, lifespan=lifespan)

    @app.get("/")
    async def root(request: Request) -> Dict[str, Any]:
        return await _server_status({}, request.app.state.arena)

    @app.post("/api/{endpoint}")
    async def http_rpc(endpoint: str, request: Request) -> Dict[str, Any]:
        try:
            payload = await request.json()
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Invalid payload type; expected object")
        return await dispatch(endpoint, payload, request.app.state.arena)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        await websocket.accept()
        arena: Arena = websocket.app.state.arena
        connection = Connection(websocket)
        await arena.event_dispatcher.register(connection)
        logger.info("WebSocket connected id=%s", connection.connection_id)
        try:
            while True:
                raw = await websocket.receive_text()
                await _handle_frame(websocket, connection, arena, raw)
        except WebSocketDisconnect:
            logger.info("WebSocket disconnected id=%s", connection.connection_id)
        finally:
            await arena.event_dispatcher.unregister(connection)

    return app


async def _handle_frame(
    websocket: WebSocket, connection: Connection, arena: Arena, raw: str
) -> None:
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        await websocket.send_json(rpc_bad_request(str(uuid.uuid4()), "unknown", "Invalid JSON"))
        return
    if not isinstance(frame, dict):
        await websocket.send_json(
            rpc_bad_request(str(uuid.uuid4()), "unknown", "Frame must be an object")
        )
        return

    frame_id = str(frame.get("id") or uuid.uuid4())
    message_type = frame.get("type", "rpc")

    if message_type == "identify":
        backer_id = frame.get("backer_id")
        if not backer_id:
            await websocket.send_json(rpc_bad_request(frame_id, "identify", "Missing backer_id"))
            return
        try:
            connection.set_backer(backer_id)
        except ValueError as exc:
            await websocket.send_json(rpc_bad_request(frame_id, "identify", str(exc)))
            return
        logger.info("WebSocket %s identified as %s", connection.connection_id, backer_id)
        await websocket.send_json(
            rpc_success(frame_id, "identify", connection.identity(arena.registry))
        )
        return

    if message_type != "rpc":
        await websocket.send_json(
            rpc_bad_request(frame_id, str(message_type), f"Unknown frame type: {message_type}")
        )
        return

    endpoint = frame.get("endpoint") or "unknown"
    payload = frame.get("payload") or {}
    if not isinstance(payload, dict):
        await websocket.send_json(
            rpc_bad_request(frame_id, endpoint, "Invalid payload type; expected object")
        )
        return

    try:
        result = await dispatch(endpoint, dict(payload), arena)
    except HTTPException as exc:
        await websocket.send_json(rpc_error(frame_id, endpoint, exc))
        return
    except Exception as exc:  # noqa: BLE001
        logger.exception("RPC handler error endpoint=%s", endpoint)
        await websocket.send_json(rpc_error(frame_id, endpoint, exc))
        return
    await websocket.send_json(rpc_success(frame_id, endpoint, result))


app = create_app()
