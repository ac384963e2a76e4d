"""Event emission hooks wired into the engagement manager and continuation."""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from spiralarena.arena_server.combat.models import (
    Combatant,
    Engagement,
    RandomnessRequest,
    RoundOutcome,
)

logger = logging.getLogger("spiral-arena.combat.callbacks")


def _backers(registry: Any, combatant_ids: Iterable[str]) -> List[str]:
    backers: List[str] = []
    for cid in combatant_ids:
        combatant: Optional[Combatant] = registry.find(cid)
        if combatant is not None and combatant.backer_id not in backers:
            backers.append(combatant.backer_id)
    return backers


def engagement_summary(engagement: Engagement) -> dict:
    return {
        "engagement_id": engagement.engagement_id,
        "state": engagement.status.value,
        "round": engagement.round_number,
        "reward_pool": engagement.reward_pool,
        "roster_size": len(engagement.roster),
    }


async def on_engagement_created(engagement: Engagement, arena, event_dispatcher) -> None:
    await event_dispatcher.emit("engagement.created", engagement.to_dict())


async def on_combatant_joined(
    engagement: Engagement, combatant: Combatant, paid: int, arena, event_dispatcher
) -> None:
    payload = {
        **engagement_summary(engagement),
        "combatant_id": combatant.combatant_id,
        "backer_id": combatant.backer_id,
        "paid": paid,
        "countdown_deadline": engagement.countdown_deadline,
    }
    await event_dispatcher.emit("engagement.joined", payload)


async def on_engagement_started(
    engagement: Engagement, request: RandomnessRequest, arena, event_dispatcher
) -> None:
    payload = {
        **engagement_summary(engagement),
        "roster": list(engagement.roster),
        "request_id": request.request_id,
    }
    await event_dispatcher.emit(
        "engagement.started",
        payload,
        backer_filter=_backers(arena.registry, engagement.roster),
    )


async def on_round_requested(
    engagement: Engagement, request: RandomnessRequest, arena, event_dispatcher
) -> None:
    payload = {
        "engagement_id": engagement.engagement_id,
        "round": request.round_number,
        "request_id": request.request_id,
    }
    await event_dispatcher.emit(
        "round.requested",
        payload,
        backer_filter=_backers(arena.registry, engagement.roster),
    )


async def on_round_resolved(
    engagement: Engagement, outcome: RoundOutcome, arena, event_dispatcher
) -> None:
    scenario_name = arena.modifier_table[outcome.scenario].name
    involved = [*outcome.roster, *outcome.eliminated]
    payload = {
        "engagement_id": engagement.engagement_id,
        "round": outcome.round_number,
        "scenario": outcome.scenario,
        "scenario_name": scenario_name,
        "draws": list(outcome.draws),
        "damage": {cid: dmg for cid, dmg in outcome.damage.items() if dmg},
        "healths": dict(outcome.healths),
        "eliminated": list(outcome.eliminated),
        "remaining": list(outcome.roster),
    }
    backers = _backers(arena.registry, involved)
    await event_dispatcher.emit("round.resolved", payload, backer_filter=backers)

    for cid in outcome.eliminated:
        combatant = arena.registry.find(cid)
        if combatant is None:
            continue
        await event_dispatcher.emit(
            "combatant.eliminated",
            {
                "engagement_id": engagement.engagement_id,
                "round": outcome.round_number,
                "combatant_id": cid,
                "backer_id": combatant.backer_id,
            },
            backer_filter=[combatant.backer_id],
        )


async def on_engagement_completed(
    engagement: Engagement, outcome: RoundOutcome, arena, event_dispatcher
) -> None:
    survivor = arena.registry.find(outcome.survivor_id) if outcome.survivor_id else None
    payload = {
        **engagement_summary(engagement),
        "survivor_id": outcome.survivor_id,
        "survivor_backer_id": survivor.backer_id if survivor else None,
        "rounds": len(engagement.logs),
    }
    logger.info(
        "Engagement %s completed after %s round(s); survivor=%s",
        engagement.engagement_id,
        len(engagement.logs),
        outcome.survivor_id,
    )
    await event_dispatcher.emit("engagement.completed", payload)


async def on_reward_claimed(
    engagement: Engagement, recipient_id: str, amount: int, arena, event_dispatcher
) -> None:
    payload = {
        "engagement_id": engagement.engagement_id,
        "backer_id": recipient_id,
        "amount": amount,
    }
    await event_dispatcher.emit("reward.claimed", payload, backer_filter=[recipient_id])
