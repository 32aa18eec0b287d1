"""Work session domain model.

A work session is an append-only list of intervals. The lifecycle state is
never stored; it is derived from the last interval and ``ended_at``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

BREAK_DESCRIPTION = "break"


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Lifecycle state of a user's workday."""

    NOT_STARTED = "not_started"
    WORKING = "working"
    ON_BREAK = "on_break"
    ENDED = "ended"


@dataclass
class Interval:
    """One labeled segment of work or break.

    Attributes:
        begin: When the segment started.
        end: When it finished, None while it is still open.
        description: What the user worked on, or "break".
    """

    begin: datetime
    description: str = ""
    end: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    @property
    def is_break(self) -> bool:
        return self.description == BREAK_DESCRIPTION

    def to_dict(self) -> dict[str, Any]:
        return {
            "begin": self.begin.isoformat(),
            "end": self.end.isoformat() if self.end else None,
            "description": self.description,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Interval:
        end = data.get("end")
        return cls(
            begin=datetime.fromisoformat(data["begin"]),
            end=datetime.fromisoformat(end) if end else None,
            description=data.get("description", ""),
        )


@dataclass
class WorkSession:
    """A user's workday.

    Attributes:
        owner_id: User the session belongs to.
        begin_date: When the session was started.
        intervals: Intervals ordered by begin, never overlapping.
        ended_at: When the workday was ended, None while open.
        session_id: Unique identifier of the record.
    """

    owner_id: str
    begin_date: datetime
    intervals: list[Interval] = field(default_factory=list)
    ended_at: datetime | None = None
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def is_ended(self) -> bool:
        return self.ended_at is not None

    @property
    def current_interval(self) -> Interval | None:
        """The open interval at the tail, if any."""
        if self.intervals and self.intervals[-1].is_open:
            return self.intervals[-1]
        return None

    @property
    def state(self) -> SessionState:
        """Derive the lifecycle state from the interval tail."""
        if self.is_ended:
            return SessionState.ENDED
        current = self.current_interval
        if current is None:
            # Open session without an open interval should not happen;
            # report it as ended so no operation appends to it.
            return SessionState.ENDED
        return SessionState.ON_BREAK if current.is_break else SessionState.WORKING

    def close_current(self, at: datetime) -> Interval:
        """Close the open interval at ``at`` and return it."""
        current = self.current_interval
        if current is None:
            raise ValueError(f"Session {self.session_id} has no open interval")
        current.end = at
        return current

    def open_interval(self, at: datetime, description: str) -> Interval:
        """Append a new open interval starting at ``at``."""
        if self.current_interval is not None:
            raise ValueError(f"Session {self.session_id} already has an open interval")
        interval = Interval(begin=at, description=description)
        self.intervals.append(interval)
        return interval

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "owner_id": self.owner_id,
            "begin_date": self.begin_date.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "intervals": [interval.to_dict() for interval in self.intervals],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkSession:
        ended_at = data.get("ended_at")
        return cls(
            session_id=data["session_id"],
            owner_id=data["owner_id"],
            begin_date=datetime.fromisoformat(data["begin_date"]),
            ended_at=datetime.fromisoformat(ended_at) if ended_at else None,
            intervals=[Interval.from_dict(item) for item in data.get("intervals", [])],
        )


def state_of(session: WorkSession | None) -> SessionState:
    """Lifecycle state for an optional session (None means NotStarted)."""
    if session is None:
        return SessionState.NOT_STARTED
    return session.state
