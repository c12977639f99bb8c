from __future__ import annotations

import copy
import json
import uuid
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from core.settings import QUEUE
from datetime_utils import HOUR_MS, now_ms
from models.queued_request import QueuedRequest, new_request_id
from services.log import get_logger
from storage.db import get_session


STORAGE_ERRORS = (SQLAlchemyError, OSError)
DEFAULT_RETENTION_MS = QUEUE.retention_hours * HOUR_MS

logger = get_logger("queue")


@dataclass
class PendingRequest:
    request_id: str
    payload: Dict[str, Any]
    enqueued_at: int
    synced: bool = False
    synced_at: Optional[int] = None
    attempts: int = 0
    last_error: Optional[str] = None
    dead_lettered: bool = False
    in_memory: bool = False


def _encode(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, default=str)


def _decode(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _detached(entry: PendingRequest) -> PendingRequest:
    return replace(entry, payload=copy.deepcopy(entry.payload))


def _to_entry(row: QueuedRequest) -> PendingRequest:
    return PendingRequest(
        request_id=row.request_id,
        payload=_decode(row.payload),
        enqueued_at=row.enqueued_at,
        synced=row.synced,
        synced_at=row.synced_at,
        attempts=row.attempts,
        last_error=row.last_error,
        dead_lettered=row.dead_lettered,
    )


class OfflineRequestQueue:
    """Durable FIFO of emergency requests that could not be delivered.

    Rows live in SQLite. When the database cannot be written the queue keeps
    the entry in memory for the lifetime of this object and retries the write
    on later calls; ``degraded`` is True while such entries exist.
    """

    def __init__(
        self,
        queue_name: str = QUEUE.name,
        session_factory: Callable[[], Session] = get_session,
        *,
        max_attempts: Optional[int] = QUEUE.max_attempts,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.queue_name = queue_name
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self._clock = clock
        self._memory: List[PendingRequest] = []

    @property
    def degraded(self) -> bool:
        return bool(self._memory)

    # ------------------------------------------------------------------
    # Core operations
    def enqueue(self, payload: Dict[str, Any], *, request_id: Optional[str] = None) -> PendingRequest:
        self._flush_memory()
        return self._insert(dict(payload), self._clock(), synced=False, request_id=request_id)

    def restore(
        self,
        payload: Dict[str, Any],
        enqueued_at: int,
        *,
        synced: bool = False,
        request_id: Optional[str] = None,
    ) -> PendingRequest:
        """Insert an entry with a known timestamp (used by legacy imports)."""

        return self._insert(dict(payload), enqueued_at, synced=synced, request_id=request_id)

    def list_pending(self) -> List[PendingRequest]:
        self._flush_memory()
        rows: List[PendingRequest] = []
        try:
            with self._session_factory() as session:
                stmt = (
                    select(QueuedRequest)
                    .where(QueuedRequest.queue_name == self.queue_name)
                    .where(QueuedRequest.synced == False)  # noqa: E712
                    .where(QueuedRequest.dead_lettered == False)  # noqa: E712
                    .order_by(QueuedRequest.enqueued_at.asc(), QueuedRequest.id.asc())
                )
                rows = [_to_entry(row) for row in session.exec(stmt)]
        except STORAGE_ERRORS as exc:
            logger.error("Queue %s unreadable, serving in-memory entries only: %s", self.queue_name, exc)

        memory = [
            _detached(entry)
            for entry in self._memory
            if not entry.synced and not entry.dead_lettered
        ]
        return sorted(rows + memory, key=lambda entry: entry.enqueued_at)

    def mark_synced(self, request_id: str) -> None:
        stamp = self._clock()
        for entry in self._memory:
            if entry.request_id == request_id and not entry.synced:
                entry.synced = True
                entry.synced_at = stamp

        try:
            with self._session_factory() as session:
                record = self._get(session, request_id)
                if record is None or record.synced:
                    return
                record.synced = True
                record.synced_at = stamp
                record.claim_token = None
                record.claimed_until = None
                session.add(record)
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.error("Could not mark %s as synced: %s", request_id, exc)

    def purge_old(self, retention_ms: int = DEFAULT_RETENTION_MS) -> int:
        cutoff = self._clock() - retention_ms
        before = len(self._memory)
        self._memory = [
            entry
            for entry in self._memory
            if not (entry.synced and entry.enqueued_at < cutoff)
        ]
        removed = before - len(self._memory)

        try:
            with self._session_factory() as session:
                stmt = (
                    select(QueuedRequest)
                    .where(QueuedRequest.queue_name == self.queue_name)
                    .where(QueuedRequest.synced == True)  # noqa: E712
                    .where(QueuedRequest.enqueued_at < cutoff)
                )
                for record in list(session.exec(stmt)):
                    session.delete(record)
                    removed += 1
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.error("Purge of %s failed: %s", self.queue_name, exc)

        if removed:
            logger.info("Purged %s synced request(s) from %s", removed, self.queue_name)
        return removed

    # ------------------------------------------------------------------
    # Delivery bookkeeping
    def record_failure(self, request_id: str, error: str) -> None:
        for entry in self._memory:
            if entry.request_id == request_id:
                entry.attempts += 1
                entry.last_error = error[:1000]
                if self._exhausted(entry.attempts):
                    entry.dead_lettered = True
                return

        try:
            with self._session_factory() as session:
                record = self._get(session, request_id)
                if record is None or record.synced:
                    return
                record.attempts += 1
                record.last_error = error[:1000]
                record.claim_token = None
                record.claimed_until = None
                if self._exhausted(record.attempts):
                    record.dead_lettered = True
                    logger.warning(
                        "Request %s moved to dead letters after %s attempts",
                        request_id,
                        record.attempts,
                    )
                session.add(record)
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.error("Could not record failure for %s: %s", request_id, exc)

    def list_dead_letters(self) -> List[PendingRequest]:
        rows: List[PendingRequest] = []
        try:
            with self._session_factory() as session:
                stmt = (
                    select(QueuedRequest)
                    .where(QueuedRequest.queue_name == self.queue_name)
                    .where(QueuedRequest.dead_lettered == True)  # noqa: E712
                    .order_by(QueuedRequest.enqueued_at.asc(), QueuedRequest.id.asc())
                )
                rows = [_to_entry(row) for row in session.exec(stmt)]
        except STORAGE_ERRORS as exc:
            logger.error("Dead letters of %s unreadable, serving in-memory entries only: %s", self.queue_name, exc)
        memory = [_detached(entry) for entry in self._memory if entry.dead_lettered]
        return sorted(rows + memory, key=lambda entry: entry.enqueued_at)

    def requeue(self, request_id: str) -> bool:
        for entry in self._memory:
            if entry.request_id == request_id and entry.dead_lettered:
                entry.dead_lettered = False
                entry.attempts = 0
                return True

        try:
            with self._session_factory() as session:
                record = self._get(session, request_id)
                if record is None or not record.dead_lettered:
                    return False
                record.dead_lettered = False
                record.attempts = 0
                session.add(record)
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.error("Could not requeue %s: %s", request_id, exc)
            return False
        logger.info("Request %s returned to the pending queue", request_id)
        return True

    # ------------------------------------------------------------------
    # Leases for multi-context processing
    def claim(self, request_id: str, ttl_ms: int) -> Optional[str]:
        token = uuid.uuid4().hex
        if any(entry.request_id == request_id for entry in self._memory):
            return token

        now = self._clock()
        stmt = (
            update(QueuedRequest)
            .where(QueuedRequest.request_id == request_id)
            .where(QueuedRequest.synced == False)  # noqa: E712
            .where(
                or_(
                    QueuedRequest.claimed_until.is_(None),
                    QueuedRequest.claimed_until < now,
                )
            )
            .values(claim_token=token, claimed_until=now + ttl_ms)
        )
        try:
            with self._session_factory() as session:
                result = session.exec(stmt)
                session.commit()
                claimed = result.rowcount == 1
        except STORAGE_ERRORS as exc:
            logger.error("Could not claim %s: %s", request_id, exc)
            return None
        return token if claimed else None

    def release(self, request_id: str, token: str) -> None:
        stmt = (
            update(QueuedRequest)
            .where(QueuedRequest.request_id == request_id)
            .where(QueuedRequest.claim_token == token)
            .values(claim_token=None, claimed_until=None)
        )
        try:
            with self._session_factory() as session:
                session.exec(stmt)
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.error("Could not release lease on %s: %s", request_id, exc)

    # ------------------------------------------------------------------
    # Introspection
    def count(self) -> int:
        return len(self.list_pending())

    def stats(self) -> Dict[str, int]:
        result = {"pending": 0, "synced": 0, "dead_lettered": 0, "in_memory": len(self._memory)}
        try:
            with self._session_factory() as session:
                stmt = (
                    select(QueuedRequest.synced, QueuedRequest.dead_lettered, func.count())
                    .where(QueuedRequest.queue_name == self.queue_name)
                    .group_by(QueuedRequest.synced, QueuedRequest.dead_lettered)
                )
                for synced, dead, total in session.exec(stmt):
                    if synced:
                        result["synced"] += total
                    elif dead:
                        result["dead_lettered"] += total
                    else:
                        result["pending"] += total
        except STORAGE_ERRORS as exc:
            logger.error("Could not read stats for %s: %s", self.queue_name, exc)
        for entry in self._memory:
            if entry.synced:
                result["synced"] += 1
            elif entry.dead_lettered:
                result["dead_lettered"] += 1
            else:
                result["pending"] += 1
        return result

    # ------------------------------------------------------------------
    def _exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts

    def _get(self, session: Session, request_id: str) -> Optional[QueuedRequest]:
        stmt = (
            select(QueuedRequest)
            .where(QueuedRequest.queue_name == self.queue_name)
            .where(QueuedRequest.request_id == request_id)
        )
        return session.exec(stmt).first()

    def _insert(
        self,
        payload: Dict[str, Any],
        enqueued_at: int,
        *,
        synced: bool,
        request_id: Optional[str] = None,
    ) -> PendingRequest:
        request_id = request_id or new_request_id()
        record = QueuedRequest(
            request_id=request_id,
            queue_name=self.queue_name,
            payload=_encode(payload),
            enqueued_at=enqueued_at,
            synced=synced,
            synced_at=self._clock() if synced else None,
        )
        try:
            with self._session_factory() as session:
                session.add(record)
                try:
                    session.commit()
                except IntegrityError:
                    # same request_id queued before, keep the original entry
                    session.rollback()
                    existing = self._get(session, request_id)
                    if existing is None:
                        raise
                    logger.info("Request %s is already queued", request_id)
                    return _to_entry(existing)
                session.refresh(record)
                return _to_entry(record)
        except STORAGE_ERRORS as exc:
            logger.error(
                "Durable storage unavailable, holding request %s in memory only: %s",
                request_id,
                exc,
            )
            for held in self._memory:
                if held.request_id == request_id:
                    return _detached(held)
            entry = PendingRequest(
                request_id=request_id,
                payload=copy.deepcopy(payload),
                enqueued_at=enqueued_at,
                synced=synced,
                synced_at=record.synced_at,
                in_memory=True,
            )
            self._memory.append(entry)
            return _detached(entry)

    def _flush_memory(self) -> None:
        if not self._memory:
            return
        try:
            with self._session_factory() as session:
                for entry in self._memory:
                    if self._get(session, entry.request_id) is not None:
                        continue
                    session.add(
                        QueuedRequest(
                            request_id=entry.request_id,
                            queue_name=self.queue_name,
                            payload=_encode(entry.payload),
                            enqueued_at=entry.enqueued_at,
                            synced=entry.synced,
                            synced_at=entry.synced_at,
                            attempts=entry.attempts,
                            last_error=entry.last_error,
                            dead_lettered=entry.dead_lettered,
                        )
                    )
                session.commit()
        except STORAGE_ERRORS as exc:
            logger.debug("Storage still unavailable, %s entries kept in memory: %s", len(self._memory), exc)
            return
        logger.info("Persisted %s in-memory request(s) to %s", len(self._memory), self.queue_name)
        self._memory = []


__all__ = ["OfflineRequestQueue", "PendingRequest", "DEFAULT_RETENTION_MS", "STORAGE_ERRORS"]
