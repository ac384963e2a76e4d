"""Base lock class with acquisition timeout."""

import asyncio
import logging
import time
from typing import Optional

from spiralarena.arena_server.errors import LockTimeout

logger = logging.getLogger("spiral-arena.locks")


class TimedLock:
    """Async mutex that gives up after ``timeout`` seconds of waiting.

    Unlike a bare ``asyncio.Lock`` a stuck holder surfaces as a
    :class:`LockTimeout` for the next caller instead of hanging it forever.
    """

    def __init__(self, name: str, timeout: float = 30.0):
        """Initialize timed lock.

        Args:
            name: Identifier used in log lines and errors
            timeout: Seconds a caller waits before giving up
        """
        self.name = name
        self.timeout = timeout
        self._lock = asyncio.Lock()
        self._owner: Optional[str] = None
        self._acquired_at: Optional[float] = None

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self, owner: str) -> None:
        """Acquire the lock for ``owner``.

        Raises:
            LockTimeout: If the lock is still held after ``timeout`` seconds
        """
        try:
            if self._lock.locked():
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
        except asyncio.TimeoutError as exc:
            held_for = time.monotonic() - self._acquired_at if self._acquired_at else 0.0
            logger.warning(
                "Lock timeout on %s: '%s' waited %.2fs, held by '%s' for %.2fs",
                self.name,
                owner,
                self.timeout,
                self._owner,
                held_for,
            )
            raise LockTimeout(f"{self.name} is busy; try again") from exc
        self._owner = owner
        self._acquired_at = time.monotonic()
        logger.debug("Lock %s acquired by '%s'", self.name, owner)

    def release(self, owner: str) -> None:
        """Release the lock held by ``owner``."""
        if self._owner != owner:
            logger.warning(
                "Lock %s released by '%s' while owned by '%s'",
                self.name,
                owner,
                self._owner,
            )
        logger.debug("Lock %s released by '%s'", self.name, owner)
        self._owner = None
        self._acquired_at = None
        self._lock.release()

    def for_owner(self, owner: str) -> "_OwnedLock":
        """Bind an owner for context manager usage.

        Usage:
            async with lock.for_owner("join:combatant"):
                # Perform locked operations
        """
        return _OwnedLock(self, owner)


class _OwnedLock:
    def __init__(self, lock: TimedLock, owner: str) -> None:
        self._lock = lock
        self._owner = owner

    async def __aenter__(self) -> TimedLock:
        await self._lock.acquire(self._owner)
        return self._lock

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._lock.release(self._owner)
        return False
