from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

OutcomeStatus = Literal["created", "renewed", "checked_in", "not_found"]


def to_epoch(value: datetime) -> float:
    return value.timestamp()


def from_epoch(value: float) -> datetime:
    return datetime.fromtimestamp(float(value), tz=UTC)


def isoformat_utc(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SwitchRecord:
    name: str
    deadline: datetime
    window_start: datetime | None = None

    @property
    def score(self) -> float:
        return to_epoch(self.deadline)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "deadline": to_epoch(self.deadline),
            "window_start": (
                to_epoch(self.window_start) if self.window_start is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, raw: Any) -> SwitchRecord:
        if not isinstance(raw, dict):
            raise ValueError("switch record must be an object")
        name = raw.get("name")
        if not isinstance(name, str) or not name:
            raise ValueError("switch record is missing 'name'")
        deadline = raw.get("deadline")
        if not isinstance(deadline, (int, float)) or isinstance(deadline, bool):
            raise ValueError(f"switch record {name!r} has invalid 'deadline'")
        window_start = raw.get("window_start")
        if window_start is not None and (
            not isinstance(window_start, (int, float)) or isinstance(window_start, bool)
        ):
            raise ValueError(f"switch record {name!r} has invalid 'window_start'")
        return cls(
            name=name,
            deadline=from_epoch(deadline),
            window_start=from_epoch(window_start) if window_start is not None else None,
        )

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "deadline": isoformat_utc(self.deadline),
            "window_start": isoformat_utc(self.window_start),
        }


@dataclass(frozen=True)
class RenewOutcome:
    name: str
    status: OutcomeStatus
    early_seconds: int | None = None
    late: bool = False
    deadline: datetime | None = None
    window_start: datetime | None = None

    @property
    def early(self) -> bool:
        return self.early_seconds is not None

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "early": self.early,
            "early_seconds": self.early_seconds,
            "late": self.late,
            "deadline": isoformat_utc(self.deadline),
            "window_start": isoformat_utc(self.window_start),
        }
