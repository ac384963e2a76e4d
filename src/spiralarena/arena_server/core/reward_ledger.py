"""Fee custody and engagement reward pools."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Protocol

from spiralarena.arena_server.combat.models import Engagement
from spiralarena.arena_server.core.locks import TimedLock
from spiralarena.arena_server.errors import CustodyTransferFailed, NothingToClaim

logger = logging.getLogger("spiral-arena.ledger")


class FeeCustody(Protocol):
    """Holds entry fees until they are paid out."""

    async def deposit(self, payer_id: str, amount: int) -> None:
        ...

    async def transfer(self, recipient_id: str, amount: int) -> None:
        ...


class InMemoryCustody:
    """Custody that tracks escrowed funds and paid-out balances in memory."""

    def __init__(self, timeout: float = 30.0):
        self._lock = TimedLock("custody", timeout=timeout)
        self.held = 0
        self.deposits: Dict[str, int] = defaultdict(int)
        self.balances: Dict[str, int] = defaultdict(int)

    async def deposit(self, payer_id: str, amount: int) -> None:
        """Escrow ``amount`` paid by ``payer_id``.

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError(f"Cannot deposit negative amount: {amount}")
        async with self._lock.for_owner(payer_id):
            self.held += amount
            self.deposits[payer_id] += amount
            logger.debug("Escrowed %d from %s (held=%d)", amount, payer_id, self.held)

    async def transfer(self, recipient_id: str, amount: int) -> None:
        """Pay ``amount`` out of escrow to ``recipient_id``.

        Raises:
            CustodyTransferFailed: If escrow cannot cover the amount
        """
        if amount < 0:
            raise ValueError(f"Cannot transfer negative amount: {amount}")
        async with self._lock.for_owner(recipient_id):
            if amount > self.held:
                raise CustodyTransferFailed(
                    f"Escrow holds {self.held}, cannot pay {amount} to {recipient_id}"
                )
            self.held -= amount
            self.balances[recipient_id] += amount
            logger.debug(
                "Paid %d to %s (held=%d, balance=%d)",
                amount,
                recipient_id,
                self.held,
                self.balances[recipient_id],
            )

    def balance_of(self, account_id: str) -> int:
        return self.balances.get(account_id, 0)


class RewardLedger:
    """Accumulates entry fees into pools and settles them once."""

    def __init__(self, custody: FeeCustody):
        self.custody = custody

    async def deposit(self, engagement: Engagement, payer_id: str, amount: int) -> int:
        """Escrow a fee and add it to the engagement pool. Returns the new pool."""
        await self.custody.deposit(payer_id, amount)
        engagement.reward_pool += amount
        return engagement.reward_pool

    async def refund(self, engagement: Engagement, payer_id: str, amount: int) -> None:
        """Return an escrowed fee to its payer and take it back out of the pool."""
        await self.custody.transfer(payer_id, amount)
        engagement.reward_pool -= amount
        logger.info(
            "Refunded %d to %s from engagement %s", amount, payer_id, engagement.engagement_id
        )

    async def payout(self, engagement: Engagement, recipient_id: str) -> int:
        """Zero the pool and pay it to ``recipient_id``. Returns the amount paid.

        A failed transfer restores the pool before the error propagates.
        """
        amount = engagement.reward_pool
        if amount <= 0:
            raise NothingToClaim(f"Engagement {engagement.engagement_id} has nothing to claim")
        engagement.reward_pool = 0
        try:
            await self.custody.transfer(recipient_id, amount)
        except CustodyTransferFailed:
            engagement.reward_pool = amount
            raise
        except Exception as exc:
            engagement.reward_pool = amount
            raise CustodyTransferFailed(f"Transfer to {recipient_id} failed: {exc}") from exc
        logger.info(
            "Paid reward pool of engagement %s (%d) to %s",
            engagement.engagement_id,
            amount,
            recipient_id,
        )
        return amount
