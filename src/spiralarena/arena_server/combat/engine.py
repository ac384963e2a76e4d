"""Combat round resolution logic."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from spiralarena.arena_server.combat.models import (
    ATTRIBUTE_COUNT,
    ATTRIBUTE_MAX,
    Combatant,
    RoundOutcome,
)
from spiralarena.arena_server.combat.modifiers import ModifierTable


def adjusted_attribute(value: int, increment: int, decrement: int) -> int:
    """Apply a scenario modifier: increment capped at 10, then decrement floored at 0."""
    adjusted = min(value + increment, ATTRIBUTE_MAX)
    if decrement > adjusted:
        return 0
    return adjusted - decrement


def resolve_round(
    roster: Sequence[str],
    combatants: Mapping[str, Combatant],
    table: ModifierTable,
    scenario: int,
    draws: Sequence[int],
    *,
    round_number: int = 1,
) -> RoundOutcome:
    """Resolve a single combat round.

    The roster is walked from the most recent registration backwards. Each
    draw that beats the adjusted attribute costs one point of health; a hit
    taken at health 1 eliminates the combatant, which is swapped with the last
    roster entry and popped. The round stops as soon as one combatant remains.
    Inputs are not mutated.
    """

    if len(draws) != ATTRIBUTE_COUNT:
        raise ValueError(f"Expected {ATTRIBUTE_COUNT} draws, got {len(draws)}")
    if not 0 <= scenario < len(table):
        raise ValueError(f"Scenario index {scenario} outside table of {len(table)}")

    active: List[str] = list(roster)
    healths: Dict[str, int] = {cid: combatants[cid].health for cid in active}
    damage: Dict[str, int] = {cid: 0 for cid in active}
    eliminated: List[str] = []
    survivor_id: Optional[str] = None

    adjusted = [
        [
            adjusted_attribute(
                combatants[cid].attributes[attr],
                table.increment(scenario, attr),
                table.decrement(scenario, attr),
            )
            for attr in range(ATTRIBUTE_COUNT)
        ]
        for cid in active
    ]
    adjusted_by_id = dict(zip(active, adjusted))

    index = len(active)
    while index > 0:
        index -= 1
        cid = active[index]
        limits = adjusted_by_id[cid]
        for attr in range(ATTRIBUTE_COUNT):
            if draws[attr] <= limits[attr]:
                continue
            if healths[cid] > 1:
                healths[cid] -= 1
                damage[cid] += 1
                continue
            # Swap-and-pop; entries after ``index`` were already visited.
            active[index] = active[-1]
            active.pop()
            eliminated.append(cid)
            break
        if eliminated and len(active) == 1:
            survivor_id = active[0]
            break

    return RoundOutcome(
        round_number=round_number,
        scenario=scenario,
        draws=tuple(draws),
        roster=active,
        healths=healths,
        damage=damage,
        eliminated=eliminated,
        survivor_id=survivor_id,
    )
