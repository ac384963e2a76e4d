"""Randomness oracle adapters.

An oracle accepts ``request_draws`` calls and, some time later, invokes the
registered ``on_draws_ready`` callback exactly once per accepted request with
the raw random words.
"""

from __future__ import annotations

import asyncio
import secrets
import uuid
from typing import Awaitable, Callable, Optional, Protocol, Sequence, Set

import httpx
from loguru import logger

from spiralarena.arena_server.errors import ArenaError

DrawsReadyCallback = Callable[[str, Sequence[int]], Awaitable[object]]


class RandomnessOracle(Protocol):
    """Asynchronous provider of random words."""

    def set_callback(self, callback: DrawsReadyCallback) -> None:
        ...

    async def request_draws(self, confirmations: int, num_words: int) -> str:
        ...

    async def aclose(self) -> None:
        ...


class LocalRandomnessOracle:
    """In-process oracle delivering ``secrets`` words after a fixed delay."""

    def __init__(self, *, delivery_delay: float = 0.0, word_bits: int = 256) -> None:
        self._delivery_delay = delivery_delay
        self._word_bits = word_bits
        self._callback: Optional[DrawsReadyCallback] = None
        self._tasks: Set[asyncio.Task[None]] = set()

    def set_callback(self, callback: DrawsReadyCallback) -> None:
        self._callback = callback

    async def request_draws(self, confirmations: int, num_words: int) -> str:
        if self._callback is None:
            raise RuntimeError("LocalRandomnessOracle has no fulfillment callback")
        request_id = uuid.uuid4().hex
        words = [secrets.randbits(self._word_bits) for _ in range(num_words)]
        task = asyncio.create_task(self._deliver(request_id, words))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(
            "Local oracle accepted request {} (confirmations={}, words={})",
            request_id,
            confirmations,
            num_words,
        )
        return request_id

    async def _deliver(self, request_id: str, words: Sequence[int]) -> None:
        if self._delivery_delay > 0:
            await asyncio.sleep(self._delivery_delay)
        # Yield so the requesting call finishes recording the request first.
        await asyncio.sleep(0)
        assert self._callback is not None
        try:
            await self._callback(request_id, words)
        except ArenaError as exc:
            logger.warning("Fulfillment for {} rejected: {}", request_id, exc.detail)
        except Exception:
            logger.exception("Fulfillment for {} failed", request_id)
            raise

    async def drain(self) -> None:
        """Wait until every scheduled delivery has run, including follow-ups."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


class HttpRandomnessOracle:
    """Oracle backed by a remote provider.

    Requests are posted to ``{base_url}/requests``; the provider later calls
    back the arena's ``randomness_fulfill`` endpoint with the words.
    """

    def __init__(
        self,
        base_url: str,
        *,
        callback_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else None
        self._client = client or httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout
        )
        self._callback_url = callback_url

    def set_callback(self, callback: DrawsReadyCallback) -> None:
        """No-op: the provider delivers words through ``randomness.fulfill``."""

    async def request_draws(self, confirmations: int, num_words: int) -> str:
        payload = {"confirmations": confirmations, "num_words": num_words}
        if self._callback_url:
            payload["callback_url"] = self._callback_url
        response = await self._client.post("/requests", json=payload)
        response.raise_for_status()
        body = response.json()
        request_id = body.get("request_id")
        if not isinstance(request_id, str) or not request_id:
            raise RuntimeError(f"Oracle response missing request_id: {body!r}")
        logger.info("Randomness requested from provider: request_id={}", request_id)
        return request_id

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = [
    "DrawsReadyCallback",
    "RandomnessOracle",
    "LocalRandomnessOracle",
    "HttpRandomnessOracle",
]
