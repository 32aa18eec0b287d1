"""Session persistence.

Stores hand out copies of their records, so a session mutated by a caller
changes nothing until it is passed back to ``save``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol

from workday_bot.exceptions import StoreError
from workday_bot.models import WorkSession

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    """Persistence surface used by the workday state machine."""

    async def find_last_session_by_owner(self, owner_id: str) -> WorkSession | None: ...

    async def find_open_session_by_owner(self, owner_id: str) -> WorkSession | None: ...

    async def is_last_session_ended(self, owner_id: str) -> bool: ...

    async def save(self, session: WorkSession) -> None: ...


class InMemorySessionStore:
    """Session store keeping serialized records in a list.

    Records are kept in insertion order; the last record of an owner is
    that owner's current session.
    """

    def __init__(self, records: list[dict[str, Any]] | None = None) -> None:
        self._records: list[dict[str, Any]] = list(records or [])

    @property
    def records(self) -> list[dict[str, Any]]:
        return self._records

    def _last_record(self, owner_id: str) -> dict[str, Any] | None:
        for record in reversed(self._records):
            if record["owner_id"] == owner_id:
                return record
        return None

    async def find_last_session_by_owner(self, owner_id: str) -> WorkSession | None:
        record = self._last_record(owner_id)
        return WorkSession.from_dict(record) if record else None

    async def find_open_session_by_owner(self, owner_id: str) -> WorkSession | None:
        session = await self.find_last_session_by_owner(owner_id)
        if session is None or session.is_ended:
            return None
        return session

    async def is_last_session_ended(self, owner_id: str) -> bool:
        """True when the owner has no session or the last one is ended."""
        record = self._last_record(owner_id)
        return record is None or record["ended_at"] is not None

    async def save(self, session: WorkSession) -> None:
        """Insert or replace the record with the session's id."""
        upsert_record(self._records, session.to_dict())

    def sessions_for(self, owner_id: str) -> list[WorkSession]:
        return [
            WorkSession.from_dict(record)
            for record in self._records
            if record["owner_id"] == owner_id
        ]


def upsert_record(records: list[dict[str, Any]], record: dict[str, Any]) -> None:
    """Replace the record with the same session id in place, or append it."""
    for index, existing in enumerate(records):
        if existing["session_id"] == record["session_id"]:
            records[index] = record
            return
    records.append(record)


class JsonFileSessionStore(InMemorySessionStore):
    """Session store persisted to a JSON file.

    The whole file is rewritten on every save. Records are loaded lazily
    on first access. File access runs in a worker thread, and one lock
    orders loading and saving, so saves for different owners reach the
    file one after another and each write contains every earlier save.
    In-memory records change only after the file was written.
    """

    def __init__(self, path: Path | str) -> None:
        super().__init__()
        self._path = Path(path)
        self._loaded = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return list(raw.get("sessions", []))

    def _write(self, records: list[dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(
            json.dumps({"sessions": records}, indent=2) + "\n",
            encoding="utf-8",
        )
        tmp_path.replace(self._path)

    async def _load_locked(self) -> None:
        # Caller holds self._lock
        if self._loaded:
            return
        try:
            records = await asyncio.to_thread(self._read)
        except (json.JSONDecodeError, OSError) as exc:
            raise StoreError(exc, f"Failed to load sessions from {self._path}") from exc
        self._records = records
        self._loaded = True
        logger.info(
            "Loaded work sessions",
            extra={"path": str(self._path), "count": len(records)},
        )

    async def _load(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            await self._load_locked()

    async def find_last_session_by_owner(self, owner_id: str) -> WorkSession | None:
        await self._load()
        return await super().find_last_session_by_owner(owner_id)

    async def is_last_session_ended(self, owner_id: str) -> bool:
        await self._load()
        return await super().is_last_session_ended(owner_id)

    async def save(self, session: WorkSession) -> None:
        """Persist the session, leaving memory untouched if the write fails."""
        async with self._lock:
            await self._load_locked()
            records = list(self._records)
            upsert_record(records, session.to_dict())
            try:
                await asyncio.to_thread(self._write, records)
            except OSError as exc:
                raise StoreError(exc, f"Failed to write sessions to {self._path}") from exc
            self._records = records
