"""Administrative capability checks."""

from __future__ import annotations

from typing import Optional

from spiralarena.arena_server.errors import NotAuthorized

RESERVED_ACTOR_PREFIX = "arena:"
SELF_ACTOR = f"{RESERVED_ACTOR_PREFIX}self"


class ArenaAuthority:
    """Distinguishes the owner, the arena itself and the randomness oracle."""

    def __init__(self, owner_id: str, *, oracle_id: Optional[str] = None) -> None:
        if not owner_id:
            raise ValueError("owner_id is required")
        self.owner_id = owner_id
        self.oracle_id = oracle_id

    def is_owner(self, actor: Optional[str]) -> bool:
        return actor is not None and actor == self.owner_id

    def require_owner(self, actor: Optional[str]) -> None:
        if not self.is_owner(actor):
            raise NotAuthorized("Only the arena owner may perform this action")

    def require_owner_or_self(self, actor: Optional[str]) -> None:
        if actor == SELF_ACTOR:
            return
        self.require_owner(actor)

    def require_oracle(self, actor: Optional[str]) -> None:
        if self.oracle_id is None:
            self.require_owner(actor)
            return
        if actor != self.oracle_id:
            raise NotAuthorized("Only the randomness oracle may deliver draws")
