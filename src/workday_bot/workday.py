"""Workday state machine.

WorkdayManager is the only writer of work sessions. Every operation runs
under a per-owner lock, loads the owner's session from the store, checks
its preconditions, mutates the loaded copy and saves it in a single call.

States: NotStarted -> Working <-> OnBreak -> Ended. An ended session is
history; the next ``start`` creates a new session.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from workday_bot.exceptions import (
    AlreadyOnBreakError,
    NoOpenSessionError,
    SessionAlreadyOpenError,
)
from workday_bot.locks import KeyedLocks
from workday_bot.models import (
    BREAK_DESCRIPTION,
    Interval,
    SessionState,
    WorkSession,
    utc_now,
)
from workday_bot.store import SessionStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class WorkdayManager:
    """Manages the workday lifecycle of every user.

    Attributes:
        store: Persistence collaborator.
    """

    def __init__(self, store: SessionStore, clock: Clock = utc_now) -> None:
        """Initialize the manager.

        Args:
            store: Session store to read and write sessions.
            clock: Returns the current aware datetime.
        """
        self.store = store
        self._clock = clock
        self._locks = KeyedLocks()

    def now(self) -> datetime:
        """Current time according to the manager's clock."""
        return self._clock()

    def _now(self, session: WorkSession | None = None) -> datetime:
        """Current time, never earlier than the session's open interval."""
        now = self._clock()
        if session is not None and session.intervals:
            last = session.intervals[-1]
            floor = last.end or last.begin
            if now < floor:
                logger.warning(
                    "Clock went backwards, clamping",
                    extra={"session_id": session.session_id, "now": now.isoformat()},
                )
                now = floor
        return now

    async def _load_open(self, owner_id: str) -> WorkSession:
        session = await self.store.find_open_session_by_owner(owner_id)
        if session is None:
            raise NoOpenSessionError(owner_id)
        return session

    async def start(self, owner_id: str, description: str = "") -> WorkSession:
        """Start a new workday.

        Args:
            owner_id: User starting the day.
            description: What the user starts working on.

        Returns:
            The persisted session.

        Raises:
            SessionAlreadyOpenError: If the user's last session is not ended.
        """
        async with self._locks.hold(owner_id):
            if not await self.store.is_last_session_ended(owner_id):
                raise SessionAlreadyOpenError(owner_id)

            now = self._now()
            session = WorkSession(
                owner_id=owner_id,
                begin_date=now,
                intervals=[Interval(begin=now, description=description)],
            )
            await self.store.save(session)

        logger.info(
            "Workday started",
            extra={"owner_id": owner_id, "session_id": session.session_id},
        )
        return session

    async def give_break(self, owner_id: str) -> WorkSession:
        """Close the current work interval and open a break.

        Raises:
            NoOpenSessionError: If the user has no open workday.
            AlreadyOnBreakError: If the user is already on break.
        """
        async with self._locks.hold(owner_id):
            session = await self._load_open(owner_id)
            state = session.state
            if state is SessionState.ON_BREAK:
                raise AlreadyOnBreakError(owner_id)
            if state is not SessionState.WORKING:
                raise NoOpenSessionError(owner_id)

            now = self._now(session)
            session.close_current(now)
            session.open_interval(now, BREAK_DESCRIPTION)
            await self.store.save(session)

        logger.info(
            "Break started",
            extra={"owner_id": owner_id, "session_id": session.session_id},
        )
        return session

    async def continue_day(self, owner_id: str, description: str = "") -> WorkSession:
        """Close the current break and resume work.

        An ended workday is not reopened; the user has to start a new one.

        Raises:
            NoOpenSessionError: If the user has no open workday or is not on break.
        """
        async with self._locks.hold(owner_id):
            session = await self._load_open(owner_id)
            if session.state is not SessionState.ON_BREAK:
                raise NoOpenSessionError(
                    owner_id,
                    "you are not on a break, use 'break' first.",
                )

            now = self._now(session)
            session.close_current(now)
            session.open_interval(now, description)
            await self.store.save(session)

        logger.info(
            "Workday continued",
            extra={"owner_id": owner_id, "session_id": session.session_id},
        )
        return session

    async def end_day(self, owner_id: str) -> WorkSession:
        """Close the current interval and end the workday.

        Raises:
            NoOpenSessionError: If the user has no open workday.
        """
        async with self._locks.hold(owner_id):
            session = await self._load_open(owner_id)
            if session.state not in (SessionState.WORKING, SessionState.ON_BREAK):
                raise NoOpenSessionError(owner_id)

            now = self._now(session)
            session.close_current(now)
            session.ended_at = now
            await self.store.save(session)

        logger.info(
            "Workday ended",
            extra={"owner_id": owner_id, "session_id": session.session_id},
        )
        return session

    async def get_session(self, owner_id: str) -> WorkSession | None:
        """Return the user's most recent session, ended or not."""
        async with self._locks.hold(owner_id):
            return await self.store.find_last_session_by_owner(owner_id)
