"""WebSocket RPC reply frames."""

from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException

from spiralarena.arena_server.errors import ArenaError

ARENA_ERROR_HEADER = "X-Arena-Error"


def _reply(frame_id: str, endpoint: str, ok: bool, key: str, body: Dict[str, Any]) -> Dict[str, Any]:
    return {"frame_type": "rpc", "id": frame_id, "endpoint": endpoint, "ok": ok, key: body}


def describe_error(exc: BaseException) -> Tuple[int, Any, Optional[str]]:
    """Status, detail and arena error code (if any) for an exception."""
    if isinstance(exc, ArenaError):
        return exc.status_code, exc.detail, exc.code
    if isinstance(exc, HTTPException):
        return exc.status_code, exc.detail, (exc.headers or {}).get(ARENA_ERROR_HEADER)
    return 500, str(exc), None


def rpc_success(frame_id: str, endpoint: str, result: Dict[str, Any]) -> Dict[str, Any]:
    return _reply(frame_id, endpoint, True, "result", result)


def rpc_error(frame_id: str, endpoint: str, exc: BaseException) -> Dict[str, Any]:
    """Error frame; ``error.code`` is present only for arena errors."""
    status, detail, code = describe_error(exc)
    error: Dict[str, Any] = {"status": status, "detail": detail}
    if code:
        error["code"] = code
    return _reply(frame_id, endpoint, False, "error", error)


def rpc_bad_request(frame_id: str, endpoint: str, detail: str) -> Dict[str, Any]:
    return _reply(frame_id, endpoint, False, "error", {"status": 400, "detail": detail})
