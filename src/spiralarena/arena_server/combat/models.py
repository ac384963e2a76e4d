"""Data models for the arena combat subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

ATTRIBUTE_COUNT = 10
ATTRIBUTE_MIN = 1
ATTRIBUTE_MAX = 10
ATTRIBUTE_TOTAL = 50
STARTING_HEALTH = 20
MAX_HEALTH = 255
DRAW_MAX = 10

ATTRIBUTE_NAMES: Tuple[str, ...] = (
    "strength",
    "agility",
    "endurance",
    "intellect",
    "perception",
    "willpower",
    "resolve",
    "fortune",
    "stealth",
    "tactics",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CombatantStatus(Enum):
    """Lifecycle of a registered combatant."""

    NOT_READY = "not_ready"
    READY = "ready"
    IN_ENGAGEMENT = "in_engagement"


class EngagementStatus(Enum):
    """Lifecycle of an engagement."""

    NOT_READY = "not_ready"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: str) -> "EngagementStatus":
        try:
            return cls(value.lower())
        except ValueError as exc:
            raise ValueError(f"Unknown engagement state: {value}") from exc


@dataclass
class Combatant:
    """A registered squad with fixed attributes and a health counter."""

    combatant_id: str
    backer_id: str
    attributes: Tuple[int, ...]
    health: int = STARTING_HEALTH
    status: CombatantStatus = CombatantStatus.NOT_READY
    engagement_id: Optional[int] = None
    registered_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, object]:
        return {
            "combatant_id": self.combatant_id,
            "backer_id": self.backer_id,
            "attributes": list(self.attributes),
            "health": self.health,
            "state": self.status.value,
            "engagement_id": self.engagement_id,
            "registered_at": self.registered_at.isoformat(),
        }


@dataclass
class RoundLog:
    """Record of a resolved round."""

    round_number: int
    request_id: str
    scenario: int
    draws: Tuple[int, ...]
    damage: Dict[str, int]
    eliminated: List[str]
    survivor_id: Optional[str]
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, object]:
        return {
            "round": self.round_number,
            "request_id": self.request_id,
            "scenario": self.scenario,
            "draws": list(self.draws),
            "damage": dict(self.damage),
            "eliminated": list(self.eliminated),
            "survivor_id": self.survivor_id,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Engagement:
    """A fee-gated elimination tournament with its own roster and pool."""

    engagement_id: int
    min_participants: int
    entry_fee: int
    countdown_delay: int
    status: EngagementStatus = EngagementStatus.NOT_READY
    countdown_started_at: float = 0.0
    reward_pool: int = 0
    registered_count: int = 0
    round_number: int = 1
    roster: List[str] = field(default_factory=list)
    survivor_id: Optional[str] = None
    pending_request_id: Optional[str] = None
    logs: List[RoundLog] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None

    @property
    def countdown_deadline(self) -> Optional[float]:
        if not self.countdown_started_at:
            return None
        return self.countdown_started_at + self.countdown_delay

    def countdown_elapsed(self, now: float) -> bool:
        deadline = self.countdown_deadline
        return deadline is not None and now >= deadline

    def to_dict(self) -> Dict[str, object]:
        return {
            "engagement_id": self.engagement_id,
            "state": self.status.value,
            "min_participants": self.min_participants,
            "entry_fee": self.entry_fee,
            "countdown_delay": self.countdown_delay,
            "countdown_started_at": self.countdown_started_at,
            "countdown_deadline": self.countdown_deadline,
            "reward_pool": self.reward_pool,
            "registered_count": self.registered_count,
            "round": self.round_number,
            "roster": list(self.roster),
            "survivor_id": self.survivor_id,
            "pending_request_id": self.pending_request_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
        }


@dataclass
class RandomnessRequest:
    """Outstanding oracle request correlated to an engagement round."""

    request_id: str
    engagement_id: int
    round_number: int
    draws: List[int] = field(default_factory=lambda: [0] * ATTRIBUTE_COUNT)
    scenario: int = 0
    requested_at: datetime = field(default_factory=_utcnow)


@dataclass
class RoundOutcome:
    """Result of resolving one round, returned by the engine."""

    round_number: int
    scenario: int
    draws: Tuple[int, ...]
    roster: List[str]
    healths: Dict[str, int]
    damage: Dict[str, int]
    eliminated: List[str]
    survivor_id: Optional[str]

    @property
    def completed(self) -> bool:
        return self.survivor_id is not None
