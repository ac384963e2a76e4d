"""Per-engagement locking for serialized arena mutations."""

import logging
from contextlib import asynccontextmanager
from typing import Dict

from spiralarena.arena_server.core.locks.base import TimedLock

logger = logging.getLogger("spiral-arena.locks.engagement")


class EngagementLockManager:
    """Manages one lock per engagement with timeout protection.

    Engagement locks are always taken before the combatant registry lock.
    """

    def __init__(self, timeout: float = 30.0):
        """Initialize engagement lock manager.

        Args:
            timeout: Lock acquisition timeout in seconds
        """
        self.timeout = timeout
        self._locks: Dict[int, TimedLock] = {}

    def _get_lock(self, engagement_id: int) -> TimedLock:
        """Get or create lock for an engagement."""
        lock = self._locks.get(engagement_id)
        if lock is None:
            lock = TimedLock(f"engagement-{engagement_id}", timeout=self.timeout)
            self._locks[engagement_id] = lock
            logger.debug("Created lock for engagement %s", engagement_id)
        return lock

    def __contains__(self, engagement_id: int) -> bool:
        return engagement_id in self._locks

    def is_locked(self, engagement_id: int) -> bool:
        lock = self._locks.get(engagement_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def lock(self, engagement_id: int, owner: str):
        """Serialize all mutations of one engagement.

        Locks are never evicted, so callers only lock ids that exist or are
        being created.

        Usage:
            async with engagement_locks.lock(engagement_id, "join"):
                # Mutate the engagement

        Raises:
            LockTimeout: If lock acquisition times out
        """
        engagement_lock = self._get_lock(engagement_id)
        async with engagement_lock.for_owner(owner):
            yield
