from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Protocol

from condemn.domain.models import SwitchRecord


class StoreError(RuntimeError):
    """Raised when the backing store rejects an operation."""


class StoreUnavailable(StoreError):
    """Raised when the backing store cannot be reached."""


class SwitchStore(Protocol):
    """Deadline-ordered index of switch names plus a name -> record map.

    ``claim`` and ``take`` are the only operations that destroy a switch and
    each must run as a single indivisible step against the backing store.
    """

    def upsert(self, record: SwitchRecord) -> None:
        ...

    def due_before(self, timestamp: datetime) -> Iterator[str]:
        ...

    def metadata_of(self, names: Iterable[str]) -> dict[str, SwitchRecord]:
        ...

    def claim(self, names: Iterable[str], *, cutoff: datetime) -> set[str]:
        ...

    def take(self, name: str) -> SwitchRecord | None:
        ...

    def all(self) -> list[SwitchRecord]:
        ...

    def ping(self) -> None:
        ...

    def close(self) -> None:
        ...
