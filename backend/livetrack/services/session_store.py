"""
Tracking Session Store - owns the live state of every tracked delivery.

Sessions are kept in memory as immutable snapshots. Each mutation builds a
new snapshot under a per-session lock, so updates to one delivery never
wait on another.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Iterator, Optional

from livetrack.api.schemas import TrackingSnapshot
from livetrack.config import TrackingConfig, check_ring_thresholds
from livetrack.errors import (
    DuplicateSession,
    InvalidCoordinates,
    InvalidTransition,
    SessionNotActive,
    SessionNotFound,
)
from livetrack.models.sample import ReferencePoint
from livetrack.models.tracking import ProximityResult, TrackingSession, TrackingStatus
from livetrack.utils.geo import is_valid_latitude, is_valid_longitude
from livetrack.utils.timeutils import Clock, ensure_utc, utc_now


logger = logging.getLogger(__name__)


class TrackingSessionStore:
    """
    In-memory store of tracking sessions keyed by session (order) id.

    State machine per session:
        ACTIVE --complete--> COMPLETED
        ACTIVE --cancel-->   CANCELLED
    Terminal states are final.
    """

    def __init__(self, config: Optional[TrackingConfig] = None, clock: Optional[Clock] = None):
        """
        Initialize the store.

        Args:
            config: Engine configuration (retention window, ring colors)
            clock: Callable returning the current UTC datetime
        """
        self._config = config if config is not None else TrackingConfig()
        self._clock = clock if clock is not None else utc_now
        self._sessions: dict[str, TrackingSession] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @property
    def config(self) -> TrackingConfig:
        return self._config

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(self, session_id: str, reference: ReferencePoint) -> TrackingSession:
        """
        Start tracking a delivery.

        A terminal session with the same id is replaced by a fresh one.

        Raises:
            DuplicateSession: If an ACTIVE session already uses this id
            InvalidCoordinates: If the reference point is out of range
            ValueError: If the reference point has a malformed ring table
        """
        if not session_id:
            raise ValueError("session_id must be a non-empty string")
        if not (is_valid_latitude(reference.latitude) and is_valid_longitude(reference.longitude)):
            raise InvalidCoordinates(
                f"Invalid reference point: ({reference.latitude}, {reference.longitude})",
                session_id,
            )
        if reference.ring_thresholds is not None:
            reference = replace(
                reference, ring_thresholds=check_ring_thresholds(reference.ring_thresholds)
            )

        with self._locked(session_id):
            existing = self._sessions.get(session_id)
            if existing is not None and existing.is_active:
                raise DuplicateSession(f"Session already active: {session_id}", session_id)

            now = self._clock()
            session = TrackingSession(
                session_id=session_id,
                reference=reference,
                status=TrackingStatus.ACTIVE,
                created_at=now,
                updated_at=now,
            )
            self._put(session)

        if existing is not None:
            logger.info(f"Replaced {existing.status.value} session: {session_id}")
        else:
            logger.info(f"Created tracking session: {session_id}")
        return session

    def apply_update(
        self,
        session_id: str,
        result: ProximityResult,
        received_at: Optional[datetime] = None,
    ) -> TrackingSession:
        """
        Overwrite the latest sample and derived fields of an active session.

        Raises:
            SessionNotFound: If the session does not exist
            SessionNotActive: If the session is COMPLETED or CANCELLED, or the
                result was measured against another reference point (the
                session was re-created after the result was computed)
        """
        with self._locked(session_id):
            session = self._require(session_id)
            if not session.is_active:
                raise SessionNotActive(
                    f"Session is {session.status.value}: {session_id}", session_id
                )
            if result.reference is not None and result.reference != session.reference:
                raise SessionNotActive(
                    f"Result does not match the reference of session {session_id}", session_id
                )

            now = self._clock()
            updated = replace(
                session,
                latest_sample=result.sample,
                latest_distance_meters=result.distance_meters,
                latest_ring=result.ring,
                latest_eta_seconds=result.eta_seconds,
                estimated_arrival=result.estimated_arrival,
                last_accepted_at=received_at if received_at is not None else now,
                updated_at=now,
                update_count=session.update_count + 1,
            )
            self._put(updated)

        logger.debug(
            f"Session {session_id}: {result.distance_meters:.1f} m, "
            f"{result.ring.value}, eta {result.eta_seconds:.1f} s"
        )
        return updated

    def complete(self, session_id: str) -> TrackingSession:
        """Mark a delivery as delivered. Idempotent."""
        return self._close(session_id, TrackingStatus.COMPLETED)

    def cancel(self, session_id: str) -> TrackingSession:
        """Mark a delivery as cancelled. Idempotent."""
        return self._close(session_id, TrackingStatus.CANCELLED)

    def _close(self, session_id: str, status: TrackingStatus) -> TrackingSession:
        with self._locked(session_id):
            session = self._require(session_id)
            if session.status is status:
                return session
            if session.status.is_terminal:
                raise InvalidTransition(
                    f"Cannot move session {session_id} from "
                    f"{session.status.value} to {status.value}",
                    session_id,
                )

            now = self._clock()
            closed = replace(session, status=status, closed_at=now, updated_at=now)
            self._put(closed)

        logger.info(f"Session {session_id} {status.value}")
        return closed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> Optional[TrackingSession]:
        """
        Get a session snapshot by ID.

        Returns:
            TrackingSession if found, None otherwise
        """
        return self._sessions.get(session_id)

    def require(self, session_id: str) -> TrackingSession:
        """Like get(), but raises SessionNotFound."""
        return self._require(session_id)

    def snapshot(self, session_id: str) -> TrackingSnapshot:
        """Display-ready view of a session for polling clients."""
        session = self._require(session_id)
        return TrackingSnapshot.from_session(session, self._config.ring_thresholds)

    def list_active(self, reference_id: Optional[str] = None) -> list[TrackingSession]:
        """
        List active sessions, optionally only those tracked against one reference.

        Nearest first; sessions with no position yet come last.
        """
        with self._registry_lock:
            sessions = list(self._sessions.values())

        active = [
            s for s in sessions
            if s.is_active and (reference_id is None or s.reference.reference_id == reference_id)
        ]
        active.sort(
            key=lambda s: (
                s.latest_distance_meters is None,
                s.latest_distance_meters or 0.0,
                s.session_id,
            )
        )
        return active

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def purge(self, older_than: datetime) -> int:
        """
        Remove terminal sessions closed before a cutoff.

        Args:
            older_than: Sessions closed strictly before this time are removed

        Returns:
            Number of sessions removed
        """
        cutoff = ensure_utc(older_than)
        with self._registry_lock:
            candidates = [
                s.session_id for s in self._sessions.values()
                if s.status.is_terminal and s.closed_at is not None and s.closed_at < cutoff
            ]

        removed = 0
        for session_id in candidates:
            with self._locked(session_id):
                session = self._sessions.get(session_id)
                # May have been replaced by a new ACTIVE session meanwhile
                if session is None or not session.status.is_terminal:
                    continue
                if session.closed_at is None or session.closed_at >= cutoff:
                    continue
                self._remove(session_id)
                removed += 1

        if removed:
            logger.info(f"Purged {removed} closed sessions")
        return removed

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Purge terminal sessions older than the configured retention window."""
        now = self._clock() if now is None else ensure_utc(now)
        return self.purge(now - self._config.retention_window)

    def clear(self) -> None:
        """Drop every session."""
        with self._registry_lock:
            self._sessions.clear()
            self._locks.clear()
        logger.info("Session store cleared")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, session_id: str) -> TrackingSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(f"Session not found: {session_id}", session_id)
        return session

    def _put(self, session: TrackingSession) -> None:
        with self._registry_lock:
            self._sessions[session.session_id] = session

    def _remove(self, session_id: str) -> None:
        with self._registry_lock:
            self._sessions.pop(session_id, None)
            self._locks.pop(session_id, None)

    @contextmanager
    def _locked(self, session_id: str) -> Iterator[None]:
        """
        Hold the per-session lock, retrying if the lock was retired meanwhile.

        The lock entry is retired on exit when no session exists under the
        id, so lookups of unknown ids leave nothing behind.
        """
        while True:
            with self._registry_lock:
                lock = self._locks.get(session_id)
                if lock is None:
                    lock = threading.Lock()
                    self._locks[session_id] = lock
            lock.acquire()
            if self._locks.get(session_id) is lock:
                break
            lock.release()
        try:
            yield
        finally:
            with self._registry_lock:
                if session_id not in self._sessions and self._locks.get(session_id) is lock:
                    del self._locks[session_id]
            lock.release()


# Global store instance (set up by application initialization)
_store: Optional[TrackingSessionStore] = None


def get_store() -> TrackingSessionStore:
    """Get the global store instance."""
    global _store
    if _store is None:
        _store = TrackingSessionStore()
    return _store


def init_store(
    config: Optional[TrackingConfig] = None,
    clock: Optional[Clock] = None,
) -> TrackingSessionStore:
    """Initialize the global store with a configuration."""
    global _store
    _store = TrackingSessionStore(config, clock)
    return _store
