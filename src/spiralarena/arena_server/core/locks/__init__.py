"""Lock implementations for serializing arena operations."""

from spiralarena.arena_server.core.locks.base import TimedLock
from spiralarena.arena_server.core.locks.engagement_locks import EngagementLockManager

__all__ = ["TimedLock", "EngagementLockManager"]
