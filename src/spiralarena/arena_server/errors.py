"""Error types raised by the arena core.

Every error carries a stable ``code`` (surfaced in RPC error frames), a
``category`` and the HTTP status the API layer maps it to.
"""

from __future__ import annotations

from typing import Literal

ErrorCategory = Literal[
    "validation",
    "state_conflict",
    "not_found",
    "authorization",
    "economic",
    "integrity",
    "custody",
]


class ArenaError(Exception):
    """Base class for all arena failures."""

    code: str = "arena_error"
    category: ErrorCategory = "validation"
    status_code: int = 400

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.code
        super().__init__(self.detail)


# ---------------------------------------------------------------------------
# Validation errors
# ---------------------------------------------------------------------------
class ValidationError(ArenaError):
    category: ErrorCategory = "validation"
    status_code = 400


class InvalidAttribute(ValidationError):
    code = "invalid_attribute"


class AttributesSumInvalid(ValidationError):
    code = "attributes_sum_invalid"


class InvalidEngagementId(ValidationError):
    code = "invalid_engagement_id"


class InvalidCountdownDelay(ValidationError):
    code = "invalid_countdown_delay"


class InvalidEngagementConfig(ValidationError):
    code = "invalid_engagement_config"


class InvalidDraws(ValidationError):
    code = "invalid_draws"


class InvalidModifierTable(ValidationError):
    code = "invalid_modifier_table"


# ---------------------------------------------------------------------------
# State conflicts
# ---------------------------------------------------------------------------
class StateConflictError(ArenaError):
    category: ErrorCategory = "state_conflict"
    status_code = 409


class AlreadyExists(StateConflictError):
    code = "already_exists"


class EngagementNotReady(StateConflictError):
    code = "engagement_not_ready"


class CombatantBusy(StateConflictError):
    code = "combatant_busy"


class EngagementInProgress(StateConflictError):
    code = "engagement_in_progress"


class CombatantNotReady(StateConflictError):
    code = "combatant_not_ready"


class RequestAlreadyPending(StateConflictError):
    code = "request_already_pending"


class LockTimeout(StateConflictError):
    code = "lock_timeout"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------
class NotFoundError(ArenaError):
    category: ErrorCategory = "not_found"
    status_code = 404


class CombatantNotFound(NotFoundError):
    code = "combatant_not_found"


class EngagementNotFound(NotFoundError):
    code = "engagement_not_found"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------
class NotAuthorized(ArenaError):
    code = "not_authorized"
    category: ErrorCategory = "authorization"
    status_code = 403


# ---------------------------------------------------------------------------
# Economic errors
# ---------------------------------------------------------------------------
class EconomicError(ArenaError):
    category: ErrorCategory = "economic"
    status_code = 402


class InsufficientFee(EconomicError):
    code = "insufficient_fee"


class NotEnoughParticipants(EconomicError):
    code = "not_enough_participants"


class NothingToClaim(EconomicError):
    code = "nothing_to_claim"


# ---------------------------------------------------------------------------
# Randomness integrity and custody
# ---------------------------------------------------------------------------
class UnknownRequest(ArenaError):
    code = "unknown_request"
    category: ErrorCategory = "integrity"
    status_code = 409


class CustodyTransferFailed(ArenaError):
    code = "custody_transfer_failed"
    category: ErrorCategory = "custody"
    status_code = 502


__all__ = [
    "ArenaError",
    "ErrorCategory",
    "ValidationError",
    "InvalidAttribute",
    "AttributesSumInvalid",
    "InvalidEngagementId",
    "InvalidCountdownDelay",
    "InvalidEngagementConfig",
    "InvalidDraws",
    "InvalidModifierTable",
    "StateConflictError",
    "AlreadyExists",
    "EngagementNotReady",
    "CombatantBusy",
    "EngagementInProgress",
    "CombatantNotReady",
    "RequestAlreadyPending",
    "LockTimeout",
    "NotFoundError",
    "CombatantNotFound",
    "EngagementNotFound",
    "NotAuthorized",
    "EconomicError",
    "InsufficientFee",
    "NotEnoughParticipants",
    "NothingToClaim",
    "UnknownRequest",
    "CustodyTransferFailed",
]
