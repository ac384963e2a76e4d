"""Fakes and attribute vectors shared by the arena tests."""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

from spiralarena.arena_server.combat.models import Combatant

OWNER = "owner"
ORACLE = "oracle"
ALICE = "alice"
BOB = "bob"
CAROL = "carol"

# Scenario 0 ("ambush") lowers attribute 0 by one, so BRITTLE's adjusted
# attribute 0 is 0 while BALANCED and STEADY keep 4 and 5.
BALANCED = [5] * 10
BRITTLE = [1, 9, 5, 5, 5, 5, 5, 5, 5, 5]
STEADY = [6, 4, 5, 5, 5, 5, 5, 5, 5, 5]

# Beats BRITTLE's adjusted attribute 0 and nothing else in scenario 0.
GRAZE = [4, 0, 0, 0, 0, 0, 0, 0, 0, 0]
QUIET = [0] * 10
MAXED = [10] * 10


class FakeClock:
    """Deterministic stand-in for ``time.time``."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedOracle:
    """Oracle that records requests and delivers words only when told to."""

    def __init__(self) -> None:
        self.requests: List[Tuple[str, int, int]] = []
        self.callback: Optional[Callable] = None
        self.closed = False
        self.fail_next = False

    def set_callback(self, callback) -> None:
        self.callback = callback

    async def request_draws(self, confirmations: int, num_words: int) -> str:
        if self.fail_next:
            self.fail_next = False
            raise ConnectionError("oracle unavailable")
        request_id = f"req-{len(self.requests) + 1}"
        self.requests.append((request_id, confirmations, num_words))
        return request_id

    @property
    def last_request_id(self) -> str:
        return self.requests[-1][0]

    async def deliver(self, draws: Sequence[int], request_id: Optional[str] = None):
        assert self.callback is not None
        return await self.callback(request_id or self.last_request_id, list(draws))

    async def aclose(self) -> None:
        self.closed = True


def words(draws: Sequence[int], scenario: int = 0) -> List[int]:
    """Raw oracle words that map onto ``draws`` and ``scenario``."""
    return [*draws, scenario]


def make_combatant(
    combatant_id: str, attributes: Sequence[int], *, health: int = 20, backer_id: str = ALICE
) -> Combatant:
    return Combatant(
        combatant_id=combatant_id,
        backer_id=backer_id,
        attributes=tuple(attributes),
        health=health,
    )
