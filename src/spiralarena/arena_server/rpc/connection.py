"""WebSocket connection management for the arena server."""

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING

from fastapi import WebSocket

from spiralarena.arena_server.core.authorization import RESERVED_ACTOR_PREFIX

if TYPE_CHECKING:
    from spiralarena.arena_server.core.combatant_registry import CombatantRegistry

logger = logging.getLogger("spiral-arena.server.connection")


class Connection:
    """A WebSocket client acting for a single backer.

    Until it identifies, a connection only receives broadcast events. The
    backer is bound once and cannot change afterwards.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())
        self.backer_id: str | None = None
        self._send_lock = asyncio.Lock()

    async def send_event(self, envelope: dict) -> None:
        async with self._send_lock:
            await self.websocket.send_json(envelope)
        logger.debug("Connection %s <- %s", self.connection_id, envelope.get("event"))

    def match_backer(self, backer_id: str) -> bool:
        return self.backer_id is not None and self.backer_id == backer_id

    def set_backer(self, backer_id: str) -> None:
        """Bind this connection to ``backer_id``.

        Raises:
            ValueError: For a blank or reserved id, or when the connection
                already acts for another backer
        """
        if not isinstance(backer_id, str) or not backer_id.strip():
            raise ValueError("backer_id must be a non-empty string")
        if backer_id.startswith(RESERVED_ACTOR_PREFIX):
            raise ValueError(f"'{backer_id}' is reserved for the arena")
        if self.backer_id is not None and self.backer_id != backer_id:
            raise ValueError(
                f"Connection already acts for backer '{self.backer_id}', "
                f"cannot switch to '{backer_id}'"
            )
        self.backer_id = backer_id

    def identity(self, registry: "CombatantRegistry") -> dict:
        """Identify reply: the backer's combatants and the engagements they are in."""
        combatants = registry.list_for_backer(self.backer_id) if self.backer_id else []
        return {
            "identified": self.backer_id is not None,
            "backer_id": self.backer_id,
            "combatants": [c.combatant_id for c in combatants],
            "engagements": sorted(
                {c.engagement_id for c in combatants if c.engagement_id is not None}
            ),
        }
