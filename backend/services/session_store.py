"""
Per-chat session storage with exclusive access leases.

Every transition (new round, join, leave, begin) runs while holding the chat's
lease, including the whole private-message fan-out of a Begin. Leases for
different chats never wait on each other.

Backends:
  LocalSessionStore      — in-process keyed locks, single instance only
  FirestoreSessionStore  — durable, lease record in Firestore (services/firestore_service.py)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict

from config import Settings
from models.game import ChatSession

logger = logging.getLogger(__name__)


class SessionStoreUnavailable(RuntimeError):
    """The exclusive-access mechanism itself failed (backend down, lease lost)."""


class LeaseError(RuntimeError):
    """A lease was released more than once."""


class SessionLease:
    """Exclusive access to one chat's session. release() must be awaited exactly once."""

    def __init__(
        self,
        chat_id: int,
        session: ChatSession,
        release: Callable[[ChatSession], Awaitable[None]],
    ):
        self.chat_id = chat_id
        self.session = session
        self._release = release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self) -> None:
        if self._released:
            raise LeaseError(f"Lease for chat {self.chat_id} already released")
        self._released = True
        await self._release(self.session)


class SessionStore(ABC):

    @abstractmethod
    async def acquire(self, chat_id: int) -> SessionLease:
        """
        Wait for exclusive access to the chat's session, creating an empty
        session on first use. Raises SessionStoreUnavailable if the backend
        cannot grant the lease.
        """

    @asynccontextmanager
    async def session(self, chat_id: int) -> AsyncIterator[ChatSession]:
        lease = await self.acquire(chat_id)
        try:
            yield lease.session
        finally:
            await lease.release()


class LocalSessionStore(SessionStore):
    """
    Keyed lock map. Locks and sessions are created lazily and live for the
    process lifetime.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._sessions: Dict[int, ChatSession] = {}

    async def acquire(self, chat_id: int) -> SessionLease:
        # Safe without a guard lock: no await between lookup and insert.
        lock = self._locks.get(chat_id)
        if lock is None:
            lock = self._locks[chat_id] = asyncio.Lock()
        await lock.acquire()
        session = self._sessions.get(chat_id)
        if session is None:
            session = self._sessions[chat_id] = ChatSession()

        async def _release(_: ChatSession) -> None:
            lock.release()

        return SessionLease(chat_id, session, _release)


def build_session_store(s: Settings) -> SessionStore:
    if s.session_backend == "firestore":
        from services.firestore_service import FirestoreSessionStore
        logger.info("Using Firestore session store (collection=%s)", s.firestore_collection)
        return FirestoreSessionStore(s)
    logger.info("Using in-process session store")
    return LocalSessionStore()
