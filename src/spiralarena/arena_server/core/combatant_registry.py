"""Registry of combatants keyed by the fingerprint of their attributes."""

from __future__ import annotations

import hashlib
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from spiralarena.arena_server.combat.models import (
    ATTRIBUTE_COUNT,
    ATTRIBUTE_MAX,
    ATTRIBUTE_MIN,
    ATTRIBUTE_TOTAL,
    MAX_HEALTH,
    Combatant,
    CombatantStatus,
)
from spiralarena.arena_server.core.locks import TimedLock
from spiralarena.arena_server.errors import (
    AlreadyExists,
    AttributesSumInvalid,
    CombatantNotFound,
    InvalidAttribute,
)

logger = logging.getLogger("spiral-arena.registry")


def validate_attributes(attributes: Sequence[int]) -> Tuple[int, ...]:
    """Return the attributes as a tuple or raise a validation error."""
    if isinstance(attributes, (str, bytes)) or len(attributes) != ATTRIBUTE_COUNT:
        raise InvalidAttribute(f"Exactly {ATTRIBUTE_COUNT} attributes are required")
    values = tuple(attributes)
    for index, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidAttribute(f"Attribute {index} must be an integer")
        if value < ATTRIBUTE_MIN or value > ATTRIBUTE_MAX:
            raise InvalidAttribute(
                f"Attribute {index} is {value}; must be within {ATTRIBUTE_MIN}..{ATTRIBUTE_MAX}"
            )
    total = sum(values)
    if total != ATTRIBUTE_TOTAL:
        raise AttributesSumInvalid(f"Attributes sum to {total}; must be {ATTRIBUTE_TOTAL}")
    return values


def combatant_fingerprint(attributes: Sequence[int]) -> str:
    """Deterministic id for an attribute vector."""
    return hashlib.sha256(bytes(attributes)).hexdigest()


class CombatantRegistry:
    """Owns combatant records; a separately locked shared table."""

    def __init__(self, *, lock_timeout: float = 30.0) -> None:
        self._combatants: Dict[str, Combatant] = {}
        self.lock = TimedLock("combatant-registry", timeout=lock_timeout)

    def __contains__(self, combatant_id: str) -> bool:
        return combatant_id in self._combatants

    def __len__(self) -> int:
        return len(self._combatants)

    async def register(self, backer_id: str, attributes: Sequence[int]) -> Combatant:
        if not backer_id:
            raise ValueError("backer_id is required")
        values = validate_attributes(attributes)
        combatant_id = combatant_fingerprint(values)
        async with self.lock.for_owner(f"register:{backer_id}"):
            if combatant_id in self._combatants:
                raise AlreadyExists(f"Combatant {combatant_id} is already registered")
            combatant = Combatant(
                combatant_id=combatant_id,
                backer_id=backer_id,
                attributes=values,
            )
            self._combatants[combatant_id] = combatant
        logger.info("Registered combatant %s for backer %s", combatant_id, backer_id)
        return combatant

    def get(self, combatant_id: str) -> Combatant:
        combatant = self._combatants.get(combatant_id)
        if combatant is None:
            raise CombatantNotFound(f"Unknown combatant: {combatant_id}")
        return combatant

    def find(self, combatant_id: str) -> Optional[Combatant]:
        return self._combatants.get(combatant_id)

    def list_for_backer(self, backer_id: str) -> List[Combatant]:
        return [c for c in self._combatants.values() if c.backer_id == backer_id]

    # ------------------------------------------------------------------
    # Mutators used by the engagement manager under ``self.lock``
    # ------------------------------------------------------------------
    def mark_ready(self, combatant_id: str, engagement_id: int) -> None:
        combatant = self.get(combatant_id)
        combatant.status = CombatantStatus.READY
        combatant.engagement_id = engagement_id

    def mark_in_engagement(self, combatant_id: str) -> None:
        self.get(combatant_id).status = CombatantStatus.IN_ENGAGEMENT

    def release(self, combatant_id: str) -> None:
        combatant = self.get(combatant_id)
        combatant.status = CombatantStatus.NOT_READY
        combatant.engagement_id = None

    def apply_health(self, combatant_id: str, health: int) -> None:
        combatant = self.get(combatant_id)
        if health > combatant.health:
            raise ValueError(
                f"Health of {combatant_id} cannot rise ({combatant.health} -> {health})"
            )
        combatant.health = max(0, min(MAX_HEALTH, health))
