from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

from .matrix import SyncResponse


@dataclass(slots=True)
class Reminder:
    id: str
    due: datetime
    destination: str
    text: str
    sent: bool = False

    @property
    def due_ts(self) -> int:
        return int(self.due.timestamp())

    @classmethod
    def from_row(cls, row: dict) -> Reminder:
        return cls(
            id=row["id"],
            due=datetime.fromtimestamp(int(row["due_ts"]), tz=UTC),
            destination=row["destination"],
            text=row["text"],
            sent=bool(row["sent"]),
        )


@dataclass(slots=True)
class SyncState:
    """Long-poll bookkeeping owned by the sync loop."""

    next_batch: str | None = None
    is_live: bool = False
    errored: bool = False


@dataclass(slots=True)
class SyncSnapshot:
    response: SyncResponse
    is_live: bool


@dataclass(slots=True)
class SyncOutcome:
    """One iteration of the sync stream: either a snapshot or an error."""

    snapshot: SyncSnapshot | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class SmsResult:
    sid: str | None = None
    status: str | None = None
    error_message: str | None = None
    raw: dict = field(default_factory=dict)
