"""Server infrastructure for the arena RPC surface."""

from spiralarena.arena_server.rpc.rpc import (
    ARENA_ERROR_HEADER,
    rpc_bad_request,
    rpc_error,
    rpc_success,
)
from spiralarena.arena_server.rpc.events import EventSink, EventDispatcher

__all__ = [
    "ARENA_ERROR_HEADER",
    "rpc_bad_request",
    "rpc_error",
    "rpc_success",
    "EventSink",
    "EventDispatcher",
]
