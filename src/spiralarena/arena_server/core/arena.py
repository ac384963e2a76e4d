import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from loguru import logger

from spiralarena.arena_server.combat import callbacks
from spiralarena.arena_server.combat.continuation import RoundContinuation
from spiralarena.arena_server.combat.modifiers import ModifierTable, default_modifier_table
from spiralarena.arena_server.combat.oracle import (
    HttpRandomnessOracle,
    LocalRandomnessOracle,
    RandomnessOracle,
)
from spiralarena.arena_server.core.authorization import ArenaAuthority
from spiralarena.arena_server.core.combatant_registry import CombatantRegistry
from spiralarena.arena_server.core.engagement_manager import EngagementManager
from spiralarena.arena_server.core.reward_ledger import FeeCustody, InMemoryCustody, RewardLedger
from spiralarena.arena_server.rpc.events import EventDispatcher
from spiralarena.arena_server.server_logging.event_log import EventLogger
from spiralarena.utils.config import ArenaSettings, get_arena_data_path


def build_oracle(settings: ArenaSettings) -> RandomnessOracle:
    if settings.oracle_url:
        logger.info("Using remote randomness provider at {}", settings.oracle_url)
        return HttpRandomnessOracle(
            settings.oracle_url,
            callback_url=settings.oracle_callback_url,
            api_key=settings.oracle_api_key,
        )
    logger.info(
        "Using local randomness oracle (delivery delay {}s)", settings.local_oracle_delay
    )
    return LocalRandomnessOracle(delivery_delay=settings.local_oracle_delay)


def load_modifier_table(settings: ArenaSettings) -> ModifierTable:
    if settings.modifier_table_path is None:
        return default_modifier_table()
    logger.info("Loading modifier table from {}", settings.modifier_table_path)
    return ModifierTable.from_yaml(settings.modifier_table_path)


class Arena:
    """Wires the registry, engagements, ledger and oracle together."""

    def __init__(
        self,
        settings: Optional[ArenaSettings] = None,
        *,
        oracle: Optional[RandomnessOracle] = None,
        custody: Optional[FeeCustody] = None,
        modifier_table: Optional[ModifierTable] = None,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or ArenaSettings()
        self.modifier_table = modifier_table or load_modifier_table(self.settings)
        self.registry = CombatantRegistry(lock_timeout=self.settings.lock_timeout)
        self.custody = custody or InMemoryCustody(timeout=self.settings.lock_timeout)
        self.ledger = RewardLedger(self.custody)
        self.authority = ArenaAuthority(
            self.settings.owner_id, oracle_id=self.settings.oracle_id
        )
        self.oracle = oracle or build_oracle(self.settings)
        self.engagements = EngagementManager(
            registry=self.registry,
            ledger=self.ledger,
            oracle=self.oracle,
            authority=self.authority,
            table=self.modifier_table,
            confirmations=self.settings.confirmations,
            max_countdown_delay=self.settings.max_countdown_delay,
            lock_timeout=self.settings.lock_timeout,
            clock=clock,
        )
        self.event_dispatcher = event_dispatcher or EventDispatcher()
        self._configure_callbacks()

    @property
    def continuation(self) -> RoundContinuation:
        return self.engagements.continuation

    def _configure_callbacks(self) -> None:
        dispatcher = self.event_dispatcher
        self.engagements.configure_callbacks(
            on_engagement_created=lambda eng: callbacks.on_engagement_created(
                eng, self, dispatcher
            ),
            on_combatant_joined=lambda eng, combatant, paid: callbacks.on_combatant_joined(
                eng, combatant, paid, self, dispatcher
            ),
            on_engagement_started=lambda eng, req: callbacks.on_engagement_started(
                eng, req, self, dispatcher
            ),
            on_reward_claimed=lambda eng, recipient, amount: callbacks.on_reward_claimed(
                eng, recipient, amount, self, dispatcher
            ),
        )
        self.continuation.configure_callbacks(
            on_round_requested=lambda eng, req: callbacks.on_round_requested(
                eng, req, self, dispatcher
            ),
            on_round_resolved=lambda eng, out: callbacks.on_round_resolved(
                eng, out, self, dispatcher
            ),
            on_engagement_completed=lambda eng, out: callbacks.on_engagement_completed(
                eng, out, self, dispatcher
            ),
        )

    async def aclose(self) -> None:
        await self.oracle.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A pre-built arena on app.state (tests, embedding) is used as-is.
    arena: Optional[Arena] = getattr(app.state, "arena", None)
    if arena is None:
        arena = Arena(ArenaSettings.from_env())
    settings = arena.settings
    if settings.event_log_enabled:
        log_path = get_arena_data_path() / "event-log.jsonl"
        arena.event_dispatcher.set_event_logger(EventLogger(log_path))
        logger.info("Event log at {}", log_path)
    app.state.arena = arena
    logger.info(
        "Arena ready: owner={} scenarios={}",
        settings.owner_id,
        [s.name for s in arena.modifier_table.scenarios],
    )
    try:
        yield
    finally:
        await arena.aclose()
        logger.info("Arena shut down")
