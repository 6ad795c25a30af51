"""
Durable session store backed by Firestore.

One document per chat in the configured collection:

    {
        "session": {...ChatSession...},
        "lease":   {"holder": "<uuid>", "expires_at": "<iso8601>"} | None
    }

The lease record is taken, renewed and released inside Firestore transactions,
so two bot instances never hold the same chat at once. While held, the lease
is extended every lease_ttl_seconds / 3. A crashed holder's lease
expires after lease_ttl_seconds. Documents are never reaped.
"""
import asyncio
import logging
import os
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

from google.api_core import exceptions as gcp_exceptions

from config import Settings
from models.game import ChatSession
from services.session_store import SessionLease, SessionStore, SessionStoreUnavailable

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Lease record helpers (pure, run inside transactions) ──────────────────────

def claim_lease(
    doc: Optional[Dict[str, Any]],
    holder: str,
    now: datetime,
    ttl: timedelta,
) -> Optional[Tuple[ChatSession, Dict[str, str]]]:
    """
    Return (session, lease record) if the lease is free or expired,
    None if someone else still holds it.
    """
    doc = doc or {}
    lease = doc.get("lease")
    if lease and datetime.fromisoformat(lease["expires_at"]) > now:
        return None
    session = ChatSession.model_validate(doc.get("session") or {})
    record = {"holder": holder, "expires_at": (now + ttl).isoformat()}
    return session, record


def owns_lease(doc: Optional[Dict[str, Any]], holder: str) -> bool:
    lease = (doc or {}).get("lease")
    return bool(lease) and lease.get("holder") == holder


def extend_lease(
    doc: Optional[Dict[str, Any]],
    holder: str,
    now: datetime,
    ttl: timedelta,
) -> Optional[Dict[str, str]]:
    """Fresh lease record for holder, or None if holder no longer owns it."""
    if not owns_lease(doc, holder):
        return None
    return {"holder": holder, "expires_at": (now + ttl).isoformat()}


class LeaseLost(SessionStoreUnavailable):
    """Our lease expired and was taken over before we released it."""


class FirestoreSessionStore(SessionStore):
    """
    Async-friendly Firestore wrapper using run_in_executor to avoid
    blocking the event loop.
    """

    def __init__(self, s: Settings, client=None):
        if s.firestore_emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = s.firestore_emulator_host
        if client is None:
            # Lazy import so the store can be built before GCP creds exist
            from google.cloud import firestore
            client = firestore.Client(project=s.google_cloud_project or None)
        self.db = client
        self.collection = s.firestore_collection
        self.ttl = timedelta(seconds=s.lease_ttl_seconds)
        self.renew_seconds = s.lease_ttl_seconds / 3
        self.poll_seconds = s.lease_poll_seconds
        self.acquire_timeout = s.lease_acquire_timeout_seconds

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    def _chat_ref(self, chat_id: int):
        return self.db.collection(self.collection).document(str(chat_id))

    # ── Transactions ──────────────────────────────────────────────────────────

    def _take_lease(self, chat_id: int, holder: str) -> Optional[ChatSession]:
        from google.cloud import firestore

        ref = self._chat_ref(chat_id)

        @firestore.transactional
        def take(transaction) -> Optional[ChatSession]:
            snapshot = ref.get(transaction=transaction)
            doc = snapshot.to_dict() if snapshot.exists else None
            claimed = claim_lease(doc, holder, _utcnow(), self.ttl)
            if claimed is None:
                return None
            session, record = claimed
            transaction.set(ref, {"lease": record}, merge=True)
            return session

        return take(self.db.transaction())

    def _renew_lease(self, chat_id: int, holder: str) -> None:
        from google.cloud import firestore

        ref = self._chat_ref(chat_id)

        @firestore.transactional
        def renew(transaction) -> None:
            snapshot = ref.get(transaction=transaction)
            doc = snapshot.to_dict() if snapshot.exists else None
            record = extend_lease(doc, holder, _utcnow(), self.ttl)
            if record is None:
                raise LeaseLost(f"Lease on chat {chat_id} was lost while held")
            transaction.set(ref, {"lease": record}, merge=True)

        renew(self.db.transaction())

    def _write_and_release(self, chat_id: int, holder: str, session: ChatSession) -> None:
        from google.cloud import firestore

        ref = self._chat_ref(chat_id)

        @firestore.transactional
        def put(transaction) -> None:
            snapshot = ref.get(transaction=transaction)
            doc = snapshot.to_dict() if snapshot.exists else None
            if not owns_lease(doc, holder):
                raise LeaseLost(f"Lease on chat {chat_id} was lost before release")
            transaction.set(ref, {
                "session": session.model_dump(mode="json"),
                "lease": None,
            })

        put(self.db.transaction())

    async def _keep_alive(self, chat_id: int, holder: str, done: asyncio.Event) -> None:
        """Extend the lease until done is set or the lease is lost."""
        while True:
            try:
                await asyncio.wait_for(done.wait(), timeout=self.renew_seconds)
                return
            except asyncio.TimeoutError:
                pass
            try:
                await self._run(lambda: self._renew_lease(chat_id, holder))
            except LeaseLost:
                logger.error("[%s] Lease %s lost while held", chat_id, holder)
                return
            except gcp_exceptions.GoogleAPICallError as exc:
                logger.warning("[%s] Lease %s renewal failed: %s", chat_id, holder, exc)

    # ── SessionStore ──────────────────────────────────────────────────────────

    async def acquire(self, chat_id: int) -> SessionLease:
        holder = uuid.uuid4().hex
        deadline = time.monotonic() + self.acquire_timeout
        while True:
            try:
                session = await self._run(lambda: self._take_lease(chat_id, holder))
            except gcp_exceptions.GoogleAPICallError as exc:
                raise SessionStoreUnavailable(f"Firestore unavailable for chat {chat_id}: {exc}") from exc
            if session is not None:
                break
            if time.monotonic() >= deadline:
                raise SessionStoreUnavailable(
                    f"Timed out after {self.acquire_timeout:.0f}s waiting for chat {chat_id}"
                )
            await asyncio.sleep(self.poll_seconds)

        done = asyncio.Event()
        keep_alive = asyncio.create_task(self._keep_alive(chat_id, holder, done))

        async def _release(s: ChatSession) -> None:
            # Let an in-flight renewal finish so it cannot re-set the lease.
            done.set()
            await keep_alive
            try:
                await self._run(lambda: self._write_and_release(chat_id, holder, s))
            except gcp_exceptions.GoogleAPICallError as exc:
                raise SessionStoreUnavailable(
                    f"Firestore unavailable releasing chat {chat_id}: {exc}"
                ) from exc

        logger.debug("[%s] Lease %s taken", chat_id, holder)
        return SessionLease(chat_id, session, _release)
