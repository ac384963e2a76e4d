"""Engagement lifecycle: creation, registration, countdown, start and claim."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from spiralarena.arena_server.combat.continuation import RoundContinuation
from spiralarena.arena_server.combat.models import (
    Combatant,
    CombatantStatus,
    Engagement,
    EngagementStatus,
    RandomnessRequest,
    RoundLog,
)
from spiralarena.arena_server.combat.modifiers import ModifierTable
from spiralarena.arena_server.combat.oracle import RandomnessOracle
from spiralarena.arena_server.core.authorization import ArenaAuthority
from spiralarena.arena_server.core.combatant_registry import CombatantRegistry
from spiralarena.arena_server.core.locks import EngagementLockManager
from spiralarena.arena_server.core.reward_ledger import RewardLedger
from spiralarena.arena_server.errors import (
    AlreadyExists,
    CombatantBusy,
    CombatantNotReady,
    EngagementInProgress,
    EngagementNotFound,
    EngagementNotReady,
    InsufficientFee,
    InvalidCountdownDelay,
    InvalidEngagementConfig,
    InvalidEngagementId,
    NotAuthorized,
    NotEnoughParticipants,
    NothingToClaim,
    RequestAlreadyPending,
)

MAX_COUNTDOWN_DELAY = 7 * 24 * 60 * 60
MIN_PARTICIPANTS = 2

EngagementCreatedCallback = Callable[[Engagement], Awaitable[None]]
CombatantJoinedCallback = Callable[[Engagement, Combatant, int], Awaitable[None]]
EngagementStartedCallback = Callable[[Engagement, RandomnessRequest], Awaitable[None]]
RewardClaimedCallback = Callable[[Engagement, str, int], Awaitable[None]]

logger = logging.getLogger("spiral-arena.engagements")


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class JoinResult:
    engagement: Engagement
    combatant: Combatant
    started: bool
    request: Optional[RandomnessRequest] = None


class EngagementManager:
    """Owns engagement records and their rosters."""

    def __init__(
        self,
        *,
        registry: CombatantRegistry,
        ledger: RewardLedger,
        oracle: RandomnessOracle,
        authority: ArenaAuthority,
        table: ModifierTable,
        confirmations: int = 3,
        max_countdown_delay: int = MAX_COUNTDOWN_DELAY,
        lock_timeout: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._engagements: Dict[int, Engagement] = {}
        self._registry = registry
        self._ledger = ledger
        self._authority = authority
        self._max_countdown_delay = max_countdown_delay
        self._clock = clock
        self._locks = EngagementLockManager(timeout=lock_timeout)
        self.continuation = RoundContinuation(
            oracle=oracle,
            registry=registry,
            table=table,
            locks=self._locks,
            lookup=self.find,
            confirmations=confirmations,
        )
        self._on_engagement_created: Optional[EngagementCreatedCallback] = None
        self._on_combatant_joined: Optional[CombatantJoinedCallback] = None
        self._on_engagement_started: Optional[EngagementStartedCallback] = None
        self._on_reward_claimed: Optional[RewardClaimedCallback] = None

    def configure_callbacks(
        self,
        *,
        on_engagement_created: Optional[EngagementCreatedCallback] = None,
        on_combatant_joined: Optional[CombatantJoinedCallback] = None,
        on_engagement_started: Optional[EngagementStartedCallback] = None,
        on_reward_claimed: Optional[RewardClaimedCallback] = None,
    ) -> None:
        """Update callback hooks at runtime."""

        if on_engagement_created is not None:
            self._on_engagement_created = on_engagement_created
        if on_combatant_joined is not None:
            self._on_combatant_joined = on_combatant_joined
        if on_engagement_started is not None:
            self._on_engagement_started = on_engagement_started
        if on_reward_claimed is not None:
            self._on_reward_claimed = on_reward_claimed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def find(self, engagement_id: int) -> Optional[Engagement]:
        return self._engagements.get(engagement_id)

    def get(self, engagement_id: int) -> Engagement:
        engagement = self._engagements.get(engagement_id)
        if engagement is None:
            raise EngagementNotFound(f"Unknown engagement: {engagement_id}")
        return engagement

    def list_engagements(self, status: Optional[EngagementStatus] = None) -> List[Engagement]:
        engagements = sorted(self._engagements.values(), key=lambda e: e.engagement_id)
        if status is None:
            return engagements
        return [e for e in engagements if e.status == status]

    def round_logs(self, engagement_id: int) -> List[RoundLog]:
        return list(self.get(engagement_id).logs)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def create(
        self,
        actor: str,
        engagement_id: int,
        *,
        min_participants: int,
        entry_fee: int,
        countdown_delay: int,
    ) -> Engagement:
        self._authority.require_owner(actor)
        if not _is_int(engagement_id) or engagement_id <= 0:
            raise InvalidEngagementId(f"Invalid engagement id: {engagement_id!r}")
        if engagement_id in self._engagements:
            raise AlreadyExists(f"Engagement {engagement_id} already exists")
        if not _is_int(countdown_delay) or not 0 <= countdown_delay <= self._max_countdown_delay:
            raise InvalidCountdownDelay(
                f"Countdown delay must be within 0..{self._max_countdown_delay} seconds"
            )
        if not _is_int(min_participants) or min_participants < MIN_PARTICIPANTS:
            raise InvalidEngagementConfig(
                f"min_participants must be an integer >= {MIN_PARTICIPANTS}"
            )
        if not _is_int(entry_fee) or entry_fee < 0:
            raise InvalidEngagementConfig("entry_fee must be a non-negative integer")

        async with self._locks.lock(engagement_id, f"create:{actor}"):
            if engagement_id in self._engagements:
                raise AlreadyExists(f"Engagement {engagement_id} already exists")
            engagement = Engagement(
                engagement_id=engagement_id,
                min_participants=min_participants,
                entry_fee=entry_fee,
                countdown_delay=countdown_delay,
                status=EngagementStatus.READY,
            )
            self._engagements[engagement_id] = engagement

        logger.info(
            "Engagement created: id=%s min=%s fee=%s delay=%ss",
            engagement_id,
            min_participants,
            entry_fee,
            countdown_delay,
        )
        if self._on_engagement_created:
            await self._on_engagement_created(engagement)
        return engagement

    async def join(
        self,
        actor: str,
        combatant_id: str,
        engagement_id: int,
        paid_amount: int,
    ) -> JoinResult:
        """Enroll a combatant, starting the engagement if its countdown is due."""

        combatant = self._registry.get(combatant_id)
        if actor != combatant.backer_id:
            raise NotAuthorized("Only the combatant's backer may enroll it")
        if engagement_id not in self._engagements:
            raise EngagementNotReady(f"Engagement {engagement_id} is not open for registration")

        started_countdown = False
        async with self._locks.lock(engagement_id, f"join:{combatant_id}"):
            engagement = self._engagements.get(engagement_id)
            if engagement is None or engagement.status != EngagementStatus.READY:
                raise EngagementNotReady(f"Engagement {engagement_id} is not open for registration")

            async with self._registry.lock.for_owner(f"join:{combatant_id}"):
                if combatant.status != CombatantStatus.NOT_READY:
                    raise CombatantBusy(
                        f"Combatant {combatant_id} is already enrolled in engagement "
                        f"{combatant.engagement_id}"
                    )
                if paid_amount < engagement.entry_fee:
                    raise InsufficientFee(
                        f"Entry fee is {engagement.entry_fee}, paid {paid_amount}"
                    )

                now = self._clock()
                if (
                    not engagement.countdown_started_at
                    and engagement.registered_count < engagement.min_participants
                ):
                    engagement.countdown_started_at = now
                    started_countdown = True
                    logger.info(
                        "Countdown started: engagement=%s deadline=%s",
                        engagement_id,
                        engagement.countdown_deadline,
                    )
                await self._ledger.deposit(engagement, actor, paid_amount)
                engagement.registered_count += 1
                self._registry.mark_ready(combatant_id, engagement_id)
                engagement.roster.append(combatant_id)

            logger.info(
                "Combatant joined: engagement=%s combatant=%s roster=%s pool=%s",
                engagement_id,
                combatant_id,
                len(engagement.roster),
                engagement.reward_pool,
            )

            request: Optional[RandomnessRequest] = None
            if (
                engagement.countdown_elapsed(now)
                and len(engagement.roster) >= engagement.min_participants
            ):
                try:
                    request = await self._start_locked(engagement)
                except Exception:
                    await self._undo_join_locked(
                        engagement, combatant, actor, paid_amount, started_countdown
                    )
                    raise

        if self._on_combatant_joined:
            await self._on_combatant_joined(engagement, combatant, paid_amount)
        if request is not None:
            await self._emit_started(engagement, request)
        return JoinResult(
            engagement=engagement,
            combatant=combatant,
            started=request is not None,
            request=request,
        )

    async def start(self, actor: str, engagement_id: int) -> RandomnessRequest:
        self._authority.require_owner_or_self(actor)
        self.get(engagement_id)
        async with self._locks.lock(engagement_id, f"start:{actor}"):
            engagement = self.get(engagement_id)
            request = await self._start_locked(engagement)
        await self._emit_started(engagement, request)
        return request

    async def _start_locked(self, engagement: Engagement) -> RandomnessRequest:
        if engagement.status in (EngagementStatus.IN_PROGRESS, EngagementStatus.COMPLETED):
            raise EngagementInProgress(f"Engagement {engagement.engagement_id} already started")
        if engagement.status != EngagementStatus.READY:
            raise EngagementNotReady(f"Engagement {engagement.engagement_id} is not ready")
        if len(engagement.roster) < engagement.min_participants:
            raise NotEnoughParticipants(
                f"Engagement {engagement.engagement_id} has {len(engagement.roster)} of "
                f"{engagement.min_participants} participants"
            )
        for cid in engagement.roster:
            if self._registry.get(cid).status != CombatantStatus.READY:
                raise CombatantNotReady(f"Combatant {cid} is not ready")

        request = await self.continuation.request_round_locked(
            engagement, engagement.round_number
        )
        try:
            async with self._registry.lock.for_owner(f"start:{engagement.engagement_id}"):
                for cid in engagement.roster:
                    self._registry.mark_in_engagement(cid)
                engagement.status = EngagementStatus.IN_PROGRESS
                engagement.started_at = datetime.now(timezone.utc)
        except BaseException:
            self.continuation.withdraw_locked(engagement, request)
            raise
        logger.info(
            "Engagement started: id=%s roster=%s request_id=%s",
            engagement.engagement_id,
            len(engagement.roster),
            request.request_id,
        )
        return request

    async def _undo_join_locked(
        self,
        engagement: Engagement,
        combatant: Combatant,
        payer_id: str,
        paid_amount: int,
        started_countdown: bool,
    ) -> None:
        """Reverse a join whose inline start failed, refunding the fee."""

        async with self._registry.lock.for_owner(f"undo-join:{combatant.combatant_id}"):
            engagement.roster.remove(combatant.combatant_id)
            engagement.registered_count -= 1
            self._registry.release(combatant.combatant_id)
            if started_countdown:
                engagement.countdown_started_at = 0
        await self._ledger.refund(engagement, payer_id, paid_amount)
        logger.warning(
            "Join rolled back: engagement=%s combatant=%s refunded=%s",
            engagement.engagement_id,
            combatant.combatant_id,
            paid_amount,
        )

    async def resume(self, actor: str, engagement_id: int) -> RandomnessRequest:
        """Reissue the randomness request of an engagement whose request failed."""

        self._authority.require_owner(actor)
        self.get(engagement_id)
        async with self._locks.lock(engagement_id, f"resume:{actor}"):
            engagement = self.get(engagement_id)
            if engagement.status != EngagementStatus.IN_PROGRESS:
                raise EngagementNotReady(f"Engagement {engagement_id} is not in progress")
            if engagement.pending_request_id is not None:
                raise RequestAlreadyPending(
                    f"Engagement {engagement_id} already awaits {engagement.pending_request_id}"
                )
            request = await self.continuation.request_round_locked(
                engagement, engagement.round_number
            )
        await self.continuation.emit_round_requested(engagement, request)
        return request

    async def claim(self, actor: str, engagement_id: int) -> int:
        """Pay the pool to the survivor's backer. Returns the amount paid."""

        if engagement_id not in self._engagements:
            raise NothingToClaim(f"Engagement {engagement_id} has nothing to claim")
        async with self._locks.lock(engagement_id, f"claim:{actor}"):
            engagement = self._engagements.get(engagement_id)
            if (
                engagement is None
                or engagement.status != EngagementStatus.COMPLETED
                or engagement.survivor_id is None
                or engagement.reward_pool <= 0
            ):
                raise NothingToClaim(f"Engagement {engagement_id} has nothing to claim")
            recipient = self._registry.get(engagement.survivor_id).backer_id
            amount = await self._ledger.payout(engagement, recipient)
            engagement.claimed_at = datetime.now(timezone.utc)

        if self._on_reward_claimed:
            await self._on_reward_claimed(engagement, recipient, amount)
        return amount

    async def _emit_started(self, engagement: Engagement, request: RandomnessRequest) -> None:
        if self._on_engagement_started:
            await self._on_engagement_started(engagement, request)
        await self.continuation.emit_round_requested(engagement, request)
