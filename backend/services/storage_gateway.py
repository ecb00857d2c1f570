"""Storage gateway over a ranked list of session stores."""
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from models.session import Session
from services.session_store import SessionStore

logger = logging.getLogger(__name__)


class StorageUnavailableError(RuntimeError):
    """Raised when the primary store is mandatory but missing or unreachable."""


@dataclass
class SaveResult:
    """Per-backend outcome of a save; never raised, always reported."""
    results: Dict[str, bool] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return any(self.results.values())

    @property
    def degraded(self) -> bool:
        """True when at least one attempted backend failed."""
        return not all(self.results.values())


class StorageGateway:
    """
    Durable read/write of sessions across ranked backends.

    Saves try each backend in rank order and stop at the first success
    (or write to all of them in write-through mode). Loads try each
    backend in order and fall through on absence or error. Backend
    failures are logged, never raised to the caller.
    """

    def __init__(self, stores: Sequence[SessionStore], write_through: bool = False):
        if not stores:
            raise ValueError("At least one session store is required")
        self.stores: List[SessionStore] = list(stores)
        self.write_through = write_through
        self._inflight = 0
        self._inflight_cond = threading.Condition()
        logger.info(
            f"StorageGateway initialized with stores: {[s.name for s in self.stores]} "
            f"(write_through={write_through})"
        )

    @property
    def primary(self) -> SessionStore:
        return self.stores[0]

    def save(self, session: Session) -> SaveResult:
        """
        Persist a session.

        Args:
            session: Session aggregate to store

        Returns:
            SaveResult with one flag per attempted backend
        """
        result = SaveResult()
        with self._inflight_cond:
            self._inflight += 1
        try:
            for store in self.stores:
                try:
                    store.save(session)
                    result.results[store.name] = True
                    if not self.write_through:
                        break
                except Exception as e:
                    result.results[store.name] = False
                    logger.warning(
                        f"Store '{store.name}' failed to save session {session.id}, falling through: {e}",
                        extra={"session_id": session.id}
                    )
        finally:
            with self._inflight_cond:
                self._inflight -= 1
                self._inflight_cond.notify_all()

        if not result.ok:
            logger.error(
                f"All stores failed to save session {session.id}",
                extra={"session_id": session.id, "error_details": result.results}
            )
        return result

    def load(self, session_id: str) -> Optional[Session]:
        """Return the session from the highest-ranked backend that has it."""
        for store in self.stores:
            try:
                session = store.load(session_id)
            except Exception as e:
                logger.warning(f"Store '{store.name}' failed to load session {session_id}, falling through: {e}")
                continue
            if session is not None:
                return session
        logger.info(f"Session {session_id} not found in any store")
        return None

    def latest_completed(self) -> Optional[Session]:
        for store in self.stores:
            try:
                session = store.latest_completed()
            except Exception as e:
                logger.warning(f"Store '{store.name}' failed latest-session query, falling through: {e}")
                continue
            if session is not None:
                return session
        return None

    def stats(self) -> Dict[str, Dict[str, object]]:
        """Availability and session count for every backend."""
        stats: Dict[str, Dict[str, object]] = {}
        for store in self.stores:
            available = store.is_available()
            count = None
            if available:
                try:
                    count = store.count()
                except Exception as e:
                    logger.warning(f"Store '{store.name}' failed to count sessions: {e}")
            stats[store.name] = {"available": available, "sessions": count}
        return stats

    def clear_all(self) -> Dict[str, bool]:
        """Bulk-delete every session in every backend."""
        results: Dict[str, bool] = {}
        for store in self.stores:
            try:
                store.clear()
                results[store.name] = True
            except Exception as e:
                logger.error(f"Store '{store.name}' failed to clear sessions: {e}", exc_info=True)
                results[store.name] = False
        return results

    def verify_primary(self, required: bool) -> bool:
        """
        Check that the primary backend is reachable.

        Args:
            required: Raise instead of degrading when it is not

        Raises:
            StorageUnavailableError: If required and the primary is unreachable
        """
        available = self.primary.is_available()
        if not available:
            if required:
                raise StorageUnavailableError(
                    f"Primary store '{self.primary.name}' is required but unreachable"
                )
            logger.warning(f"Primary store '{self.primary.name}' unavailable - using fallback storage")
        return available

    def drain(self, timeout: float) -> bool:
        """Wait for in-flight saves to finish; returns False if the timeout expired first."""
        with self._inflight_cond:
            drained = self._inflight_cond.wait_for(lambda: self._inflight == 0, timeout=timeout)
        if not drained:
            logger.warning(f"Storage drain timed out with {self._inflight} saves still in flight")
        return drained

    def close(self) -> None:
        for store in self.stores:
            try:
                store.close()
            except Exception as e:
                logger.error(f"Error closing store '{store.name}': {e}")
