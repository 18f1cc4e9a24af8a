"""
Durable storage for workflow sessions.

This module provides the SessionStore class which persists WorkflowSession
records as JSON files and keeps a branch index so sessions can be found by
the branch they work on. The store ensures data integrity through:

- Atomic file writes using temporary files and rename operations
- Per-session locking so one record is never written twice at once
- An index that is rebuilt from the record files when missing or corrupt

Storage Layout:
    Each session gets its own file named ``{session_id}.json`` (see
    :class:`linear_flow.engine.types.SessionRecord`), and ``index.json``
    maps branch names to session ids, oldest first::

        {
            "version": 1,
            "branches": {
                "feature/add-login": ["3f0c...", "9a12..."]
            }
        }

Concurrency Model:
    Operations are atomic per record; there are no cross-record
    transactions. Concurrent writers to the same id end last-writer-wins,
    which is acceptable because a single pipeline invocation mutates a
    checkout at a time.

Example:
    >>> store = SessionStore(".linear-flow/sessions")
    >>> session = WorkflowSession.create("feature/add-login")
    >>> await store.create(session)
    >>> same = await store.get_by_branch("feature/add-login")
    >>> same == session
    True
"""

import asyncio
import json
from pathlib import Path
from typing import cast

import aiofiles
import structlog

from linear_flow.engine.types import SessionIndex, SessionRecord
from linear_flow.exceptions import DuplicateActiveSessionError, SessionNotFoundError
from linear_flow.models.session import WorkflowSession

log = structlog.get_logger(__name__)

INDEX_FILENAME = "index.json"
INDEX_VERSION = 1


class SessionStore:
    """Persist workflow sessions with atomic file operations.

    Attributes:
        state_dir: Directory where session files are stored.

    Thread Safety:
        This class is designed for single-threaded asyncio usage. Each
        session has its own lock; the index has a lock of its own.
    """

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the store with a storage directory.

        Args:
            state_dir: Directory for session files. Created, with parents,
                on the first write.
        """
        self.state_dir = Path(state_dir)
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()
        self._index_lock = asyncio.Lock()

    async def _get_lock(self, session_id: str) -> asyncio.Lock:
        """Get or create the lock guarding one session record."""
        async with self._locks_lock:
            if session_id not in self._locks:
                self._locks[session_id] = asyncio.Lock()
            return self._locks[session_id]

    def _session_path(self, session_id: str) -> Path:
        return self.state_dir / f"{session_id}.json"

    @property
    def _index_path(self) -> Path:
        return self.state_dir / INDEX_FILENAME

    async def _write_json(self, path: Path, data: object) -> None:
        """Write JSON to ``path`` atomically via a sibling temporary file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")

        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(data, indent=2))

        # Atomic rename - safe on POSIX when same filesystem
        tmp_path.replace(path)

    async def _read_record(self, session_id: str) -> WorkflowSession | None:
        path = self._session_path(session_id)
        if not path.exists():
            return None

        async with aiofiles.open(path) as f:
            content = await f.read()
        return WorkflowSession.from_dict(cast(SessionRecord, json.loads(content)))

    async def _write_record(self, session: WorkflowSession) -> None:
        await self._write_json(self._session_path(session.id), session.to_dict())

    # -------------------------------------------------------------------------
    # Index
    # -------------------------------------------------------------------------

    async def _load_index(self) -> SessionIndex:
        """Load the branch index, rebuilding it when missing or unreadable.

        Caller must hold ``_index_lock``.
        """
        if self._index_path.exists():
            try:
                async with aiofiles.open(self._index_path) as f:
                    index = json.loads(await f.read())
                if isinstance(index, dict) and isinstance(index.get("branches"), dict):
                    return cast(SessionIndex, index)
            except json.JSONDecodeError:
                log.warning("session_index_corrupt", path=str(self._index_path))

        return await self._rebuild_index()

    async def _rebuild_index(self) -> SessionIndex:
        if not self.state_dir.is_dir():
            return {"version": INDEX_VERSION, "branches": {}}

        sessions = []
        for path in self.state_dir.glob("*.json"):
            if path.name == INDEX_FILENAME:
                continue
            session = await self._read_record(path.stem)
            if session is not None:
                sessions.append(session)

        branches: dict[str, list[str]] = {}
        for session in sorted(sessions, key=lambda s: s.created_at):
            branches.setdefault(session.branch_name, []).append(session.id)

        index: SessionIndex = {"version": INDEX_VERSION, "branches": branches}
        await self._write_json(self._index_path, index)
        log.info("session_index_rebuilt", sessions=len(sessions))
        return index

    async def _index_add(self, branch_name: str, session_id: str) -> None:
        async with self._index_lock:
            index = await self._load_index()
            ids = index["branches"].setdefault(branch_name, [])
            if session_id not in ids:
                ids.append(session_id)
            await self._write_json(self._index_path, index)

    async def _index_remove(self, branch_name: str, session_id: str) -> None:
        async with self._index_lock:
            index = await self._load_index()
            ids = index["branches"].get(branch_name, [])
            if session_id in ids:
                ids.remove(session_id)
            if not ids:
                index["branches"].pop(branch_name, None)
            await self._write_json(self._index_path, index)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def create(self, session: WorkflowSession) -> WorkflowSession:
        """Persist a new session.

        Args:
            session: Session to store

        Returns:
            The stored session

        Raises:
            DuplicateActiveSessionError: If another active session already
                works on the same branch.
        """
        if session.is_active:
            existing = await self.get_by_branch(session.branch_name)
            if existing is not None and existing.is_active and existing.id != session.id:
                raise DuplicateActiveSessionError(session.branch_name, existing.id)

        lock = await self._get_lock(session.id)
        async with lock:
            await self._write_record(session)
        await self._index_add(session.branch_name, session.id)

        log.info("session_created", session_id=session.id, branch=session.branch_name, kind=str(session.kind))
        return session

    async def get(self, session_id: str) -> WorkflowSession | None:
        """Load a session by id, or None if it does not exist."""
        lock = await self._get_lock(session_id)
        async with lock:
            return await self._read_record(session_id)

    async def get_by_branch(self, branch_name: str) -> WorkflowSession | None:
        """Find the session for a branch.

        When several sessions have used the same branch name, the most
        recent active one wins; with none active, the most recently
        created one is returned.

        Args:
            branch_name: Branch to look up

        Returns:
            Matching session, or None
        """
        async with self._index_lock:
            index = await self._load_index()
        ids = index["branches"].get(branch_name, [])

        sessions = []
        for session_id in ids:
            session = await self.get(session_id)
            if session is not None:
                sessions.append(session)
        if not sessions:
            return None

        sessions.sort(key=lambda s: s.created_at, reverse=True)
        active = [s for s in sessions if s.is_active]
        return active[0] if active else sessions[0]

    async def update(self, session_id: str, session: WorkflowSession) -> WorkflowSession:
        """Overwrite an existing session record.

        Args:
            session_id: Id of the record to replace
            session: New contents; its ``updated_at`` is refreshed in place

        Returns:
            The stored session

        Raises:
            SessionNotFoundError: If no record exists for ``session_id``.
        """
        if session.id != session_id:
            raise ValueError(f"Session id mismatch: {session_id} != {session.id}")

        lock = await self._get_lock(session_id)
        async with lock:
            if not self._session_path(session_id).exists():
                raise SessionNotFoundError(session_id)
            session.touch()
            await self._write_record(session)

        log.debug("session_updated", session_id=session_id, state=str(session.state))
        return session

    async def list(self, include_terminal: bool = False) -> list[WorkflowSession]:
        """List sessions, most recently updated first.

        Args:
            include_terminal: Include ``COMPLETE`` and ``ABORTED`` sessions

        Returns:
            Matching sessions sorted by ``updated_at`` descending
        """
        sessions = []
        for path in self.state_dir.glob("*.json"):
            if path.name == INDEX_FILENAME:
                continue
            session = await self.get(path.stem)
            if session is None:
                continue
            if include_terminal or session.is_active:
                sessions.append(session)

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    async def delete(self, session_id: str) -> bool:
        """Physically remove a session record.

        Only the maintenance sweep (``cleanup``) calls this; normal
        operations leave terminal sessions in place.

        Returns:
            True if a record was removed
        """
        lock = await self._get_lock(session_id)
        async with lock:
            session = await self._read_record(session_id)
            if session is None:
                return False
            self._session_path(session_id).unlink()

        await self._index_remove(session.branch_name, session_id)
        log.info("session_deleted", session_id=session_id, branch=session.branch_name)
        return True
