"""Tests for the engagement lifecycle."""

import pytest

from spiralarena.arena_server.combat.models import CombatantStatus, EngagementStatus
from spiralarena.arena_server.core.arena import Arena
from spiralarena.arena_server.core.authorization import SELF_ACTOR
from spiralarena.arena_server.errors import (
    AlreadyExists,
    CombatantBusy,
    CombatantNotFound,
    CustodyTransferFailed,
    EngagementInProgress,
    EngagementNotFound,
    EngagementNotReady,
    InsufficientFee,
    InvalidCountdownDelay,
    InvalidEngagementConfig,
    InvalidEngagementId,
    LockTimeout,
    NotAuthorized,
    NotEnoughParticipants,
    NothingToClaim,
    UnknownRequest,
)
from spiralarena.tests.helpers import (
    ALICE,
    BALANCED,
    BOB,
    BRITTLE,
    CAROL,
    GRAZE,
    ORACLE,
    OWNER,
    STEADY,
    words,
)
from spiralarena.utils.config import ArenaSettings


async def _create(arena, engagement_id=1, *, min_participants=2, fee=10, delay=60):
    return await arena.engagements.create(
        OWNER,
        engagement_id,
        min_participants=min_participants,
        entry_fee=fee,
        countdown_delay=delay,
    )


async def _pair(arena):
    alpha = await arena.registry.register(ALICE, BALANCED)
    beta = await arena.registry.register(BOB, BRITTLE)
    return alpha, beta


@pytest.mark.asyncio
class TestCreate:
    async def test_owner_creates_ready_engagement(self, arena):
        engagement = await _create(arena)

        assert engagement.status == EngagementStatus.READY
        assert engagement.registered_count == 0
        assert engagement.reward_pool == 0
        assert arena.engagements.get(1) is engagement

    async def test_non_owner_rejected(self, arena):
        with pytest.raises(NotAuthorized):
            await arena.engagements.create(
                ALICE, 1, min_participants=2, entry_fee=0, countdown_delay=0
            )
        assert arena.engagements.find(1) is None

    @pytest.mark.parametrize("engagement_id", [0, -3, "1", True])
    async def test_invalid_id_rejected(self, arena, engagement_id):
        with pytest.raises(InvalidEngagementId):
            await _create(arena, engagement_id)

    async def test_duplicate_id_rejected(self, arena):
        await _create(arena)
        with pytest.raises(AlreadyExists):
            await _create(arena, fee=99)
        assert arena.engagements.get(1).entry_fee == 10

    @pytest.mark.parametrize("delay", [-1, 7 * 24 * 60 * 60 + 1])
    async def test_countdown_delay_bounds(self, arena, delay):
        with pytest.raises(InvalidCountdownDelay):
            await _create(arena, delay=delay)

    async def test_countdown_delay_upper_bound_inclusive(self, arena):
        engagement = await _create(arena, delay=7 * 24 * 60 * 60)
        assert engagement.countdown_delay == 604800

    async def test_needs_two_participants(self, arena):
        with pytest.raises(InvalidEngagementConfig):
            await _create(arena, min_participants=1)

    async def test_negative_fee_rejected(self, arena):
        with pytest.raises(InvalidEngagementConfig):
            await _create(arena, fee=-5)


@pytest.mark.asyncio
class TestJoin:
    async def test_join_enrolls_and_deposits(self, arena, clock):
        await _create(arena)
        alpha, _ = await _pair(arena)

        result = await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)

        engagement = result.engagement
        assert result.started is False
        assert engagement.roster == [alpha.combatant_id]
        assert engagement.registered_count == 1
        assert engagement.reward_pool == 10
        assert engagement.countdown_started_at == clock.now
        assert alpha.status == CombatantStatus.READY
        assert alpha.engagement_id == 1
        assert arena.custody.held == 10

    async def test_overpayment_goes_to_pool(self, arena):
        await _create(arena)
        alpha, _ = await _pair(arena)
        result = await arena.engagements.join(ALICE, alpha.combatant_id, 1, 25)
        assert result.engagement.reward_pool == 25

    async def test_unknown_combatant(self, arena):
        await _create(arena)
        with pytest.raises(CombatantNotFound):
            await arena.engagements.join(ALICE, "nope", 1, 10)

    async def test_only_backer_may_enroll(self, arena):
        await _create(arena)
        alpha, _ = await _pair(arena)
        with pytest.raises(NotAuthorized):
            await arena.engagements.join(BOB, alpha.combatant_id, 1, 10)

    async def test_unknown_engagement_is_not_ready(self, arena):
        alpha, _ = await _pair(arena)
        with pytest.raises(EngagementNotReady):
            await arena.engagements.join(ALICE, alpha.combatant_id, 42, 10)

    async def test_insufficient_fee_leaves_no_trace(self, arena):
        await _create(arena)
        alpha, _ = await _pair(arena)

        with pytest.raises(InsufficientFee):
            await arena.engagements.join(ALICE, alpha.combatant_id, 1, 9)

        engagement = arena.engagements.get(1)
        assert engagement.roster == []
        assert engagement.reward_pool == 0
        assert engagement.countdown_started_at == 0
        assert alpha.status == CombatantStatus.NOT_READY
        assert arena.custody.held == 0

    async def test_combatant_busy_across_engagements(self, arena):
        await _create(arena, 1)
        await _create(arena, 2)
        alpha, _ = await _pair(arena)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)

        with pytest.raises(CombatantBusy):
            await arena.engagements.join(ALICE, alpha.combatant_id, 2, 10)
        with pytest.raises(CombatantBusy):
            await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)

        assert arena.engagements.get(2).roster == []
        assert arena.engagements.get(1).registered_count == 1

    async def test_countdown_starts_once(self, arena, clock):
        await _create(arena, min_participants=3)
        alpha, beta = await _pair(arena)
        started = clock.now

        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        clock.advance(10)
        await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        engagement = arena.engagements.get(1)
        assert engagement.countdown_started_at == started
        assert engagement.countdown_deadline == started + 60

    async def test_join_before_deadline_does_not_start(self, arena, clock, oracle):
        await _create(arena)
        alpha, beta = await _pair(arena)

        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        clock.advance(59)
        result = await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        assert result.started is False
        assert result.engagement.status == EngagementStatus.READY
        assert oracle.requests == []

    async def test_join_after_deadline_auto_starts(self, arena, clock, oracle):
        await _create(arena)
        alpha, beta = await _pair(arena)

        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        clock.advance(60)
        result = await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        assert result.started is True
        assert result.request.request_id == "req-1"
        assert result.engagement.status == EngagementStatus.IN_PROGRESS
        assert result.engagement.pending_request_id == "req-1"
        assert oracle.requests == [("req-1", 3, 11)]
        assert alpha.status == CombatantStatus.IN_ENGAGEMENT
        assert beta.status == CombatantStatus.IN_ENGAGEMENT

    async def test_zero_delay_starts_once_minimum_reached(self, arena):
        await _create(arena, delay=0)
        alpha, beta = await _pair(arena)

        first = await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        second = await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        assert first.started is False
        assert second.started is True

    async def test_join_after_start_rejected(self, arena):
        await _create(arena, delay=0)
        alpha, beta = await _pair(arena)
        gamma = await arena.registry.register(CAROL, STEADY)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        with pytest.raises(EngagementNotReady):
            await arena.engagements.join(CAROL, gamma.combatant_id, 1, 10)


    async def test_failed_auto_start_rolls_back_join(self, arena, oracle):
        await _create(arena, delay=0)
        alpha, beta = await _pair(arena)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        started = arena.engagements.get(1).countdown_started_at
        oracle.fail_next = True

        with pytest.raises(ConnectionError):
            await arena.engagements.join(BOB, beta.combatant_id, 1, 10)

        engagement = arena.engagements.get(1)
        assert engagement.status == EngagementStatus.READY
        assert engagement.roster == [alpha.combatant_id]
        assert engagement.registered_count == 1
        assert engagement.reward_pool == 10
        assert engagement.countdown_started_at == started
        assert engagement.pending_request_id is None
        assert beta.status == CombatantStatus.NOT_READY
        assert beta.engagement_id is None
        assert alpha.status == CombatantStatus.READY
        assert arena.custody.held == 10
        assert arena.custody.balance_of(BOB) == 10

        result = await arena.engagements.join(BOB, beta.combatant_id, 1, 10)
        assert result.started is True
        assert result.engagement.reward_pool == 20

    async def test_unknown_engagement_allocates_no_lock(self, arena):
        alpha, _ = await _pair(arena)
        with pytest.raises(EngagementNotReady):
            await arena.engagements.join(ALICE, alpha.combatant_id, 42, 10)
        with pytest.raises(NothingToClaim):
            await arena.engagements.claim(ALICE, 43)
        with pytest.raises(EngagementNotFound):
            await arena.engagements.start(OWNER, 44)
        assert 42 not in arena.engagements._locks
        assert 43 not in arena.engagements._locks
        assert 44 not in arena.engagements._locks


@pytest.mark.asyncio
class TestStart:
    async def _ready(self, arena):
        await _create(arena)
        alpha, beta = await _pair(arena)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        await arena.engagements.join(BOB, beta.combatant_id, 1, 10)
        return alpha, beta

    async def test_owner_starts_engagement(self, arena, oracle):
        alpha, beta = await self._ready(arena)

        request = await arena.engagements.start(OWNER, 1)

        engagement = arena.engagements.get(1)
        assert request.request_id == "req-1"
        assert request.round_number == 1
        assert engagement.status == EngagementStatus.IN_PROGRESS
        assert engagement.started_at is not None
        assert alpha.status == CombatantStatus.IN_ENGAGEMENT
        assert beta.status == CombatantStatus.IN_ENGAGEMENT
        assert arena.continuation.get_request("req-1") is request

    async def test_arena_itself_may_start(self, arena):
        await self._ready(arena)
        request = await arena.engagements.start(SELF_ACTOR, 1)
        assert request.request_id == "req-1"

    async def test_non_owner_rejected(self, arena):
        await self._ready(arena)
        with pytest.raises(NotAuthorized):
            await arena.engagements.start(ALICE, 1)

    async def test_unknown_engagement(self, arena):
        with pytest.raises(EngagementNotFound):
            await arena.engagements.start(OWNER, 9)

    async def test_not_enough_participants(self, arena, oracle):
        await _create(arena)
        alpha, _ = await _pair(arena)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)

        with pytest.raises(NotEnoughParticipants):
            await arena.engagements.start(OWNER, 1)
        assert oracle.requests == []

    async def test_second_start_rejected(self, arena, oracle):
        await self._ready(arena)
        await arena.engagements.start(OWNER, 1)

        with pytest.raises(EngagementInProgress):
            await arena.engagements.start(OWNER, 1)
        assert len(oracle.requests) == 1

    async def test_oracle_failure_leaves_engagement_ready(self, arena, oracle):
        alpha, beta = await self._ready(arena)
        oracle.fail_next = True

        with pytest.raises(ConnectionError):
            await arena.engagements.start(OWNER, 1)

        engagement = arena.engagements.get(1)
        assert engagement.status == EngagementStatus.READY
        assert engagement.pending_request_id is None
        assert alpha.status == CombatantStatus.READY
        assert beta.status == CombatantStatus.READY

        request = await arena.engagements.start(OWNER, 1)
        assert request.request_id == "req-1"

    async def test_registry_timeout_withdraws_request(self, oracle, clock):
        settings = ArenaSettings(
            owner_id=OWNER, oracle_id=ORACLE, event_log_enabled=False, lock_timeout=0.05
        )
        arena = Arena(settings, oracle=oracle, clock=clock)
        alpha, beta = await self._ready(arena)

        await arena.registry.lock.acquire("holder")
        try:
            with pytest.raises(LockTimeout):
                await arena.engagements.start(OWNER, 1)
        finally:
            arena.registry.lock.release("holder")

        engagement = arena.engagements.get(1)
        assert engagement.status == EngagementStatus.READY
        assert engagement.pending_request_id is None
        assert arena.continuation.get_request("req-1") is None
        assert alpha.status == CombatantStatus.READY
        with pytest.raises(UnknownRequest):
            await oracle.deliver(words(GRAZE), request_id="req-1")

        request = await arena.engagements.start(OWNER, 1)
        assert request.request_id == "req-2"
        assert engagement.status == EngagementStatus.IN_PROGRESS


class FailingCustody:
    def __init__(self):
        self.deposits = []

    async def deposit(self, payer_id, amount):
        self.deposits.append((payer_id, amount))

    async def transfer(self, recipient_id, amount):
        raise RuntimeError("custody offline")


@pytest.mark.asyncio
class TestClaim:
    async def _complete(self, arena, oracle):
        await _create(arena)
        alpha, beta = await _pair(arena)
        await arena.engagements.join(ALICE, alpha.combatant_id, 1, 10)
        await arena.engagements.join(BOB, beta.combatant_id, 1, 10)
        await arena.engagements.start(OWNER, 1)
        arena.registry.apply_health(beta.combatant_id, 1)
        await oracle.deliver(words(GRAZE))
        return alpha, beta

    async def test_claim_before_completion(self, arena):
        await _create(arena)
        with pytest.raises(NothingToClaim):
            await arena.engagements.claim(ALICE, 1)

    async def test_claim_unknown_engagement(self, arena):
        with pytest.raises(NothingToClaim):
            await arena.engagements.claim(ALICE, 77)

    async def test_pool_paid_to_survivor_backer_once(self, arena, oracle):
        alpha, beta = await self._complete(arena, oracle)

        engagement = arena.engagements.get(1)
        assert engagement.status == EngagementStatus.COMPLETED
        assert engagement.survivor_id == alpha.combatant_id
        assert alpha.status == CombatantStatus.NOT_READY
        assert beta.status == CombatantStatus.NOT_READY

        # Anyone may trigger the payout; it always goes to the survivor's backer.
        amount = await arena.engagements.claim(CAROL, 1)

        assert amount == 20
        assert engagement.reward_pool == 0
        assert engagement.claimed_at is not None
        assert arena.custody.balance_of(ALICE) == 20
        assert arena.custody.balance_of(CAROL) == 0

        with pytest.raises(NothingToClaim):
            await arena.engagements.claim(ALICE, 1)
        assert arena.custody.balance_of(ALICE) == 20

    async def test_failed_transfer_restores_pool(self, settings, oracle, clock):
        arena = Arena(settings, oracle=oracle, custody=FailingCustody(), clock=clock)
        await self._complete(arena, oracle)

        with pytest.raises(CustodyTransferFailed):
            await arena.engagements.claim(ALICE, 1)

        engagement = arena.engagements.get(1)
        assert engagement.reward_pool == 20
        assert engagement.claimed_at is None

    async def test_combatants_rejoin_after_completion(self, arena, oracle):
        alpha, beta = await self._complete(arena, oracle)
        await _create(arena, 2)

        await arena.engagements.join(ALICE, alpha.combatant_id, 2, 10)
        result = await arena.engagements.join(BOB, beta.combatant_id, 2, 10)

        assert result.engagement.roster == [alpha.combatant_id, beta.combatant_id]
        # Health is not restored between engagements.
        assert beta.health == 1
