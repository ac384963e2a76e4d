"""JSON Lines journal of dispatched arena events."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator

from loguru import logger

MAX_QUERY_RESULTS = 1024

EntryFilter = Callable[[dict[str, Any]], bool]


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return str(value)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class EventRecord:
    """One line of the journal.

    ``direction`` is ``"sent"`` for the dispatch itself and ``"received"`` for
    each sink it was delivered to.
    """

    timestamp: str
    direction: str
    event: str
    payload: dict[str, Any]
    sender: str | None
    receiver: str | None
    engagement_id: int | None
    meta: dict[str, Any] | None

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(",", ":"), default=_encode)


def _entry_filter(
    engagement_id: int | None,
    backer_id: str | None,
    event: str | None,
) -> EntryFilter:
    def matches(entry: dict[str, Any]) -> bool:
        if engagement_id is not None and entry.get("engagement_id") != engagement_id:
            return False
        if backer_id is not None and backer_id not in (entry.get("sender"), entry.get("receiver")):
            return False
        return event is None or entry.get("event") == event

    return matches


class EventLogger:
    """Append-only event journal backed by a single file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, record: EventRecord) -> None:
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(record.to_json() + "\n")

    def _read(self) -> Iterator[dict[str, Any]]:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("{}:{} is not valid JSON, skipped", self._path.name, line_no)

    def query(
        self,
        *,
        engagement_id: int | None = None,
        backer_id: str | None = None,
        event: str | None = None,
        limit: int | None = None,
        sort_direction: str = "forward",
    ) -> tuple[list[dict[str, Any]], bool]:
        """Return matching entries and whether the result was cut at ``limit``.

        ``sort_direction="reverse"`` returns the newest ``limit`` matches,
        newest first.
        """
        cap = MAX_QUERY_RESULTS if not limit or limit <= 0 else min(limit, MAX_QUERY_RESULTS)
        matches = _entry_filter(engagement_id, backer_id, event)
        entries = (entry for entry in self._read() if matches(entry))

        if (sort_direction or "forward").lower() == "reverse":
            newest: deque[dict[str, Any]] = deque(maxlen=cap)
            seen = 0
            for entry in entries:
                newest.append(entry)
                seen += 1
            return list(reversed(newest)), seen > cap

        found: list[dict[str, Any]] = []
        for entry in entries:
            if len(found) == cap:
                return found, True
            found.append(entry)
        return found, False
