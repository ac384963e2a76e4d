"""Fan-out of arena events to connected backers."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Protocol

from spiralarena.arena_server.server_logging.event_log import (
    EventLogger,
    EventRecord,
    utc_timestamp,
)

logger = logging.getLogger("spiral-arena.events")


class EventSink(Protocol):
    """A single backer's live connection."""

    async def send_event(self, envelope: dict) -> None:
        ...

    def match_backer(self, backer_id: str) -> bool:
        ...


def _engagement_of(payload: dict) -> int | None:
    value = payload.get("engagement_id")
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class EventDispatcher:
    """Sends event envelopes to sinks, optionally restricted to some backers.

    A sink that fails to receive an event is logged and skipped; delivery to
    the remaining sinks continues. When an :class:`EventLogger` is attached
    every emit is journaled once as ``sent`` plus once per receiving sink.
    """

    def __init__(self) -> None:
        self._sinks: set[EventSink] = set()
        self._sinks_lock = asyncio.Lock()
        self._journal: EventLogger | None = None

    @property
    def event_logger(self) -> EventLogger | None:
        return self._journal

    def set_event_logger(self, event_logger: EventLogger | None) -> None:
        self._journal = event_logger

    async def register(self, sink: EventSink) -> None:
        async with self._sinks_lock:
            self._sinks.add(sink)

    async def unregister(self, sink: EventSink) -> None:
        async with self._sinks_lock:
            self._sinks.discard(sink)

    async def _targets(self, backers: list[str] | None) -> list[EventSink]:
        async with self._sinks_lock:
            sinks = list(self._sinks)
        if backers is None:
            return sinks
        return [s for s in sinks if any(s.match_backer(b) for b in backers)]

    async def emit(
        self,
        event: str,
        payload: dict,
        *,
        backer_filter: Iterable[str] | None = None,
        meta: dict | None = None,
        log_event: bool = True,
    ) -> None:
        """Send ``event`` to every sink, or only to ``backer_filter``'s sinks."""

        backers = None if backer_filter is None else [b for b in backer_filter if b]
        envelope = {"frame_type": "event", "event": event, "payload": payload}
        if meta:
            envelope["meta"] = meta

        targets = await self._targets(backers)
        results = await asyncio.gather(
            *(sink.send_event(envelope) for sink in targets), return_exceptions=True
        )

        deliveries: list[tuple[str | None, dict]] = []
        for sink, result in zip(targets, results):
            receiver = getattr(sink, "backer_id", None)
            if isinstance(result, BaseException):
                logger.error("Delivery of %s to %s failed: %r", event, receiver, result)
                deliveries.append((receiver, {"status": "error", "error": repr(result)}))
            else:
                deliveries.append((receiver, {"status": "ok"}))
        delivered = sum(1 for _, outcome in deliveries if outcome["status"] == "ok")
        logger.debug("Event %s delivered to %d/%d sink(s)", event, delivered, len(targets))

        if log_event and self._journal is not None:
            self._journal_event(event, payload, meta, backers, deliveries)

    def _journal_event(
        self,
        event: str,
        payload: dict,
        meta: dict | None,
        backers: list[str] | None,
        deliveries: list[tuple[str | None, dict]],
    ) -> None:
        assert self._journal is not None
        sender = payload.get("backer_id")
        if sender is None and backers is not None and len(backers) == 1:
            sender = backers[0]
        common = {
            "timestamp": utc_timestamp(),
            "event": event,
            "payload": payload,
            "sender": sender,
            "engagement_id": _engagement_of(payload),
        }
        records = [EventRecord(direction="sent", receiver=None, meta=meta, **common)]
        records.extend(
            EventRecord(
                direction="received",
                receiver=receiver,
                meta={**(meta or {}), **outcome},
                **common,
            )
            for receiver, outcome in deliveries
        )
        try:
            for record in records:
                self._journal.append(record)
        except (OSError, TypeError, ValueError):
            logger.exception("Could not journal event %s", event)


__all__ = ["EventDispatcher", "EventSink"]
