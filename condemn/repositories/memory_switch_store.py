from __future__ import annotations

import bisect
import logging
import threading
from collections.abc import Iterable, Iterator
from datetime import datetime

from condemn.domain.models import SwitchRecord, to_epoch


class MemorySwitchStore:
    """Process-local store honouring the same atomicity contract as Redis."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("condemn.store.memory")
        self._records: dict[str, SwitchRecord] = {}
        self._index: list[tuple[float, str]] = []
        self._lock = threading.RLock()

    def _unindex(self, record: SwitchRecord) -> None:
        entry = (record.score, record.name)
        position = bisect.bisect_left(self._index, entry)
        if position < len(self._index) and self._index[position] == entry:
            del self._index[position]

    def _remove(self, name: str) -> SwitchRecord | None:
        record = self._records.pop(name, None)
        if record is not None:
            self._unindex(record)
        return record

    def _load_records(self, records: Iterable[SwitchRecord]) -> None:
        with self._lock:
            self._records = {}
            self._index = []
            for record in records:
                self._put(record)

    def _put(self, record: SwitchRecord) -> None:
        self._remove(record.name)
        self._records[record.name] = record
        bisect.insort(self._index, (record.score, record.name))

    def upsert(self, record: SwitchRecord) -> None:
        with self._lock:
            self._put(record)

    def due_before(self, timestamp: datetime) -> Iterator[str]:
        cutoff = to_epoch(timestamp)
        with self._lock:
            end = bisect.bisect_right(self._index, cutoff, key=lambda entry: entry[0])
            names = [name for _, name in self._index[:end]]
        yield from names

    def metadata_of(self, names: Iterable[str]) -> dict[str, SwitchRecord]:
        with self._lock:
            return {name: self._records[name] for name in names if name in self._records}

    def claim(self, names: Iterable[str], *, cutoff: datetime) -> set[str]:
        limit = to_epoch(cutoff)
        claimed: set[str] = set()
        with self._lock:
            for name in names:
                record = self._records.get(name)
                if record is None or record.score > limit:
                    continue
                self._remove(name)
                claimed.add(name)
        return claimed

    def take(self, name: str) -> SwitchRecord | None:
        with self._lock:
            return self._remove(name)

    def all(self) -> list[SwitchRecord]:
        with self._lock:
            return [self._records[name] for _, name in self._index]

    def ping(self) -> None:
        return None

    def close(self) -> None:
        return None
