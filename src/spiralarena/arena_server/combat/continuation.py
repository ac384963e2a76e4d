"""Randomness request/continuation protocol driving engagement rounds."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from spiralarena.arena_server.combat.engine import resolve_round
from spiralarena.arena_server.combat.models import (
    ATTRIBUTE_COUNT,
    DRAW_MAX,
    Engagement,
    EngagementStatus,
    RandomnessRequest,
    RoundLog,
    RoundOutcome,
)
from spiralarena.arena_server.combat.modifiers import ModifierTable
from spiralarena.arena_server.combat.oracle import RandomnessOracle
from spiralarena.arena_server.core.locks import EngagementLockManager
from spiralarena.arena_server.errors import (
    InvalidDraws,
    RequestAlreadyPending,
    UnknownRequest,
)

if TYPE_CHECKING:
    from spiralarena.arena_server.core.combatant_registry import CombatantRegistry

RoundRequestedCallback = Callable[[Engagement, RandomnessRequest], Awaitable[None]]
RoundResolvedCallback = Callable[[Engagement, RoundOutcome], Awaitable[None]]
EngagementCompletedCallback = Callable[[Engagement, RoundOutcome], Awaitable[None]]
EngagementLookup = Callable[[int], Optional[Engagement]]

WORDS_PER_ROUND = ATTRIBUTE_COUNT + 1

logger = logging.getLogger("spiral-arena.combat.continuation")


def map_draws(raw_values: Sequence[int], scenario_count: int) -> Tuple[List[int], int]:
    """Bound raw oracle words: ten attribute draws in 0..10 and one scenario index."""
    draws = [value % (DRAW_MAX + 1) for value in raw_values[:ATTRIBUTE_COUNT]]
    scenario = raw_values[ATTRIBUTE_COUNT] % scenario_count
    return draws, scenario


def _validate_words(raw_values: Sequence[int]) -> List[int]:
    if isinstance(raw_values, (str, bytes)):
        raise InvalidDraws("Draws must be a sequence of integers")
    try:
        words = list(raw_values)
    except TypeError as exc:
        raise InvalidDraws("Draws must be a sequence of integers") from exc
    if len(words) != WORDS_PER_ROUND:
        raise InvalidDraws(f"Expected {WORDS_PER_ROUND} random words, got {len(words)}")
    for word in words:
        if isinstance(word, bool) or not isinstance(word, int) or word < 0:
            raise InvalidDraws("Random words must be non-negative integers")
    return words


class RoundContinuation:
    """Issues one randomness request per round and resumes on fulfillment."""

    def __init__(
        self,
        *,
        oracle: RandomnessOracle,
        registry: "CombatantRegistry",
        table: ModifierTable,
        locks: EngagementLockManager,
        lookup: EngagementLookup,
        confirmations: int = 3,
        on_round_requested: Optional[RoundRequestedCallback] = None,
        on_round_resolved: Optional[RoundResolvedCallback] = None,
        on_engagement_completed: Optional[EngagementCompletedCallback] = None,
    ) -> None:
        self._oracle = oracle
        self._registry = registry
        self._table = table
        self._locks = locks
        self._lookup = lookup
        self._confirmations = confirmations
        self._requests: Dict[str, RandomnessRequest] = {}
        self._on_round_requested = on_round_requested
        self._on_round_resolved = on_round_resolved
        self._on_engagement_completed = on_engagement_completed
        oracle.set_callback(self.fulfill)

    def configure_callbacks(
        self,
        *,
        on_round_requested: Optional[RoundRequestedCallback] = None,
        on_round_resolved: Optional[RoundResolvedCallback] = None,
        on_engagement_completed: Optional[EngagementCompletedCallback] = None,
    ) -> None:
        """Update callback hooks at runtime."""

        if on_round_requested is not None:
            self._on_round_requested = on_round_requested
        if on_round_resolved is not None:
            self._on_round_resolved = on_round_resolved
        if on_engagement_completed is not None:
            self._on_engagement_completed = on_engagement_completed

    @property
    def table(self) -> ModifierTable:
        return self._table

    def pending_requests(self) -> List[RandomnessRequest]:
        return list(self._requests.values())

    def get_request(self, request_id: str) -> Optional[RandomnessRequest]:
        return self._requests.get(request_id)

    # ------------------------------------------------------------------
    # Requests (caller holds the engagement lock)
    # ------------------------------------------------------------------
    async def request_round_locked(
        self, engagement: Engagement, round_number: int
    ) -> RandomnessRequest:
        """Ask the oracle for the words of ``round_number``."""

        if engagement.pending_request_id is not None:
            raise RequestAlreadyPending(
                f"Engagement {engagement.engagement_id} already awaits "
                f"request {engagement.pending_request_id}"
            )
        request_id = await self._oracle.request_draws(self._confirmations, WORDS_PER_ROUND)
        if request_id in self._requests:
            raise RuntimeError(f"Oracle reused request id {request_id}")
        request = RandomnessRequest(
            request_id=request_id,
            engagement_id=engagement.engagement_id,
            round_number=round_number,
        )
        self._requests[request_id] = request
        engagement.pending_request_id = request_id
        logger.info(
            "Randomness requested: engagement=%s round=%s request_id=%s",
            engagement.engagement_id,
            round_number,
            request_id,
        )
        return request

    def withdraw_locked(self, engagement: Engagement, request: RandomnessRequest) -> None:
        """Forget ``request`` after the operation that issued it failed.

        Words delivered for it later are rejected as an unknown request.
        """
        self._requests.pop(request.request_id, None)
        if engagement.pending_request_id == request.request_id:
            engagement.pending_request_id = None
        logger.warning(
            "Randomness request withdrawn: engagement=%s request_id=%s",
            engagement.engagement_id,
            request.request_id,
        )

    async def emit_round_requested(self, engagement: Engagement, request: RandomnessRequest) -> None:
        if self._on_round_requested:
            await self._on_round_requested(engagement, request)

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------
    async def fulfill(self, request_id: str, raw_values: Sequence[int]) -> RoundOutcome:
        """Consume the words for ``request_id`` and resolve its round.

        Raises:
            UnknownRequest: Unknown, foreign or already fulfilled request id
            InvalidDraws: Malformed word vector
        """

        request = self._requests.get(request_id)
        if request is None:
            raise UnknownRequest(f"Unknown randomness request: {request_id}")
        words = _validate_words(raw_values)

        callbacks: List[Tuple[str, Engagement, object]] = []
        follow_up_error: Optional[Exception] = None
        async with self._locks.lock(request.engagement_id, f"fulfill:{request_id}"):
            request = self._requests.get(request_id)
            if request is None:
                raise UnknownRequest(f"Randomness request already fulfilled: {request_id}")
            engagement = self._lookup(request.engagement_id)
            if (
                engagement is None
                or engagement.status != EngagementStatus.IN_PROGRESS
                or engagement.pending_request_id != request_id
            ):
                raise UnknownRequest(
                    f"Request {request_id} does not belong to an engagement in progress"
                )

            del self._requests[request_id]
            engagement.pending_request_id = None
            request.draws, request.scenario = map_draws(words, len(self._table))

            outcome = await self._apply_round_locked(engagement, request)
            callbacks.append(("resolved", engagement, outcome))

            if outcome.completed:
                callbacks.append(("completed", engagement, outcome))
            else:
                engagement.round_number += 1
                try:
                    next_request = await self.request_round_locked(
                        engagement, engagement.round_number
                    )
                except Exception as exc:
                    logger.exception(
                        "Follow-up request failed: engagement=%s round=%s; resume required",
                        engagement.engagement_id,
                        engagement.round_number,
                    )
                    follow_up_error = exc
                else:
                    callbacks.append(("requested", engagement, next_request))

        # The round stands even when its follow-up request failed.
        await self._dispatch(callbacks)
        if follow_up_error is not None:
            raise follow_up_error
        return outcome

    async def _apply_round_locked(
        self, engagement: Engagement, request: RandomnessRequest
    ) -> RoundOutcome:
        registry = self._registry
        async with registry.lock.for_owner(f"round:{engagement.engagement_id}"):
            combatants = {cid: registry.get(cid) for cid in engagement.roster}
            logger.debug(
                "Resolving round: engagement=%s round=%s scenario=%s draws=%s roster=%s",
                engagement.engagement_id,
                engagement.round_number,
                request.scenario,
                request.draws,
                engagement.roster,
            )
            outcome = resolve_round(
                engagement.roster,
                combatants,
                self._table,
                request.scenario,
                request.draws,
                round_number=engagement.round_number,
            )

            for cid, health in outcome.healths.items():
                registry.apply_health(cid, health)
            for cid in outcome.eliminated:
                registry.release(cid)
            engagement.roster = list(outcome.roster)

            if outcome.survivor_id is not None:
                registry.release(outcome.survivor_id)
                engagement.survivor_id = outcome.survivor_id
                engagement.status = EngagementStatus.COMPLETED
                engagement.completed_at = datetime.now(timezone.utc)

        engagement.logs.append(
            RoundLog(
                round_number=outcome.round_number,
                request_id=request.request_id,
                scenario=outcome.scenario,
                draws=outcome.draws,
                damage={cid: dmg for cid, dmg in outcome.damage.items() if dmg},
                eliminated=list(outcome.eliminated),
                survivor_id=outcome.survivor_id,
            )
        )
        logger.info(
            "Round resolved: engagement=%s round=%s eliminated=%s remaining=%s survivor=%s",
            engagement.engagement_id,
            outcome.round_number,
            outcome.eliminated,
            len(outcome.roster),
            outcome.survivor_id,
        )
        return outcome

    async def _dispatch(self, callbacks: List[Tuple[str, Engagement, object]]) -> None:
        # Callbacks run outside the engagement lock.
        for tag, engagement, payload in callbacks:
            try:
                if tag == "resolved" and self._on_round_resolved:
                    await self._on_round_resolved(engagement, payload)  # type: ignore[arg-type]
                elif tag == "completed" and self._on_engagement_completed:
                    await self._on_engagement_completed(engagement, payload)  # type: ignore[arg-type]
                elif tag == "requested":
                    await self.emit_round_requested(engagement, payload)  # type: ignore[arg-type]
            except asyncio.CancelledError:
                logger.warning(
                    "Callback cancelled: engagement=%s tag=%s",
                    engagement.engagement_id,
                    tag,
                )
                continue
            except Exception:
                logger.exception(
                    "Callback failure: engagement=%s round=%s tag=%s",
                    engagement.engagement_id,
                    engagement.round_number,
                    tag,
                )
                raise
