"""Combat subsystem for Spiral Arena."""

from spiralarena.arena_server.combat.models import (
    Combatant,
    CombatantStatus,
    Engagement,
    EngagementStatus,
    RandomnessRequest,
    RoundLog,
    RoundOutcome,
)
from spiralarena.arena_server.combat.modifiers import (
    ModifierTable,
    Scenario,
    default_modifier_table,
)
from spiralarena.arena_server.combat.engine import adjusted_attribute, resolve_round
from spiralarena.arena_server.combat.oracle import (
    HttpRandomnessOracle,
    LocalRandomnessOracle,
    RandomnessOracle,
)
from spiralarena.arena_server.combat.continuation import RoundContinuation, map_draws

__all__ = [
    "Combatant",
    "CombatantStatus",
    "Engagement",
    "EngagementStatus",
    "RandomnessRequest",
    "RoundLog",
    "RoundOutcome",
    "ModifierTable",
    "Scenario",
    "default_modifier_table",
    "adjusted_attribute",
    "resolve_round",
    "HttpRandomnessOracle",
    "LocalRandomnessOracle",
    "RandomnessOracle",
    "RoundContinuation",
    "map_draws",
]
