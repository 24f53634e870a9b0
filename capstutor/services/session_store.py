"""
Session store with background idle-expiry sweep.

The Brain and the agents depend on the SessionStore interface only, so a
shared external store can replace the in-memory one without touching them.
"""
import abc
import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, Optional

from capstutor import config
from capstutor.models.session_state import Session

logger = logging.getLogger(__name__)


class SessionStore(abc.ABC):
    """get / merge-update contract over per-user sessions."""

    @abc.abstractmethod
    async def get(self, user_id: str) -> Session:
        """Return a detached snapshot, creating the session on first contact."""

    @abc.abstractmethod
    async def update(self, user_id: str, patch: dict) -> Session:
        """Merge patch into the current state and return the new snapshot."""

    @abc.abstractmethod
    async def append_history(self, user_id: str, role: str, content: str) -> None:
        """Record one conversation turn (bounded history)."""

    @abc.abstractmethod
    def turn_lock(self, user_id: str) -> asyncio.Lock:
        """Lock that serializes whole turns for one user id."""


class InMemorySessionStore(SessionStore):
    """
    Process-local store. Reads and merges do not await, so each get/update
    is atomic on the event loop; turn_lock keeps two turns for the same user
    from interleaving.
    """

    def __init__(self, idle_seconds: int = config.SESSION_IDLE_SECONDS):
        self.idle_seconds = idle_seconds
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def _live(self, user_id: str) -> Session:
        session = self._sessions.get(user_id)
        if session is not None and session.is_expired(self.idle_seconds):
            logger.info(f"Session {user_id} idle-expired, starting fresh")
            session = None
        if session is None:
            session = Session(user_id=user_id)
            self._sessions[user_id] = session
        return session

    async def get(self, user_id: str) -> Session:
        return self._live(user_id).snapshot()

    async def update(self, user_id: str, patch: dict) -> Session:
        session = self._live(user_id)
        session.apply_patch(patch)
        return session.snapshot()

    async def append_history(self, user_id: str, role: str, content: str) -> None:
        self._live(user_id).append_history(role, content)

    def turn_lock(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop every session idle for longer than the window. Returns how many."""
        now = now or datetime.now(timezone.utc)
        expired = [
            user_id for user_id, session in self._sessions.items()
            if session.is_expired(self.idle_seconds, now=now)
        ]
        for user_id in expired:
            self._sessions.pop(user_id, None)
            lock = self._locks.get(user_id)
            if lock is not None and not lock.locked():
                self._locks.pop(user_id, None)
        if expired:
            logger.info(f"Evicted {len(expired)} idle sessions")
        return len(expired)

    async def sweep_forever(self, interval_seconds: int = config.SESSION_SWEEP_INTERVAL_SECONDS) -> None:
        """Periodically evict idle sessions to prevent memory growth."""
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                self.evict_expired()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Session sweep error: {e}")

    def start_sweeper(self) -> asyncio.Task:
        """Start background sweep. Call from FastAPI startup."""
        self._sweeper = asyncio.create_task(self.sweep_forever(), name="session-sweeper")
        return self._sweeper

    def stop_sweeper(self) -> None:
        """Stop background sweep. Call from FastAPI shutdown."""
        if self._sweeper:
            self._sweeper.cancel()
            self._sweeper = None
