"""In-memory registry of open conversations."""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from models.session import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ConversationStateEntry:
    """Process-local state for one open session."""
    participant_id: str
    started_at: datetime
    last_activity: datetime
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class ConversationStateTracker:
    """
    Admission control for open sessions.

    Only sessions registered here accept turns or an explicit end, whatever
    the stores hold. Entries are lost when the process exits.
    """

    def __init__(self, max_duration_seconds: float, clock: Callable[[], datetime] = utc_now):
        self.max_duration_seconds = max_duration_seconds
        self.clock = clock
        self._entries: Dict[str, ConversationStateEntry] = {}
        self._lock = threading.Lock()

    def open(self, session_id: str, participant_id: str, started_at: datetime) -> ConversationStateEntry:
        entry = ConversationStateEntry(
            participant_id=participant_id,
            started_at=started_at,
            last_activity=started_at
        )
        with self._lock:
            self._entries[session_id] = entry
        logger.debug(f"Opened conversation {session_id} for participant {participant_id}")
        return entry

    def get(self, session_id: str) -> Optional[ConversationStateEntry]:
        with self._lock:
            return self._entries.get(session_id)

    def is_open(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._entries

    def touch(self, session_id: str) -> None:
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is not None:
                entry.last_activity = self.clock()

    def close(self, session_id: str) -> bool:
        """Evict a session; returns False if it was not open."""
        with self._lock:
            removed = self._entries.pop(session_id, None)
        if removed is not None:
            logger.debug(f"Closed conversation {session_id}")
        return removed is not None

    def elapsed_seconds(self, session_id: str, now: Optional[datetime] = None) -> Optional[float]:
        entry = self.get(session_id)
        if entry is None:
            return None
        return ((now or self.clock()) - entry.started_at).total_seconds()

    def is_expired(self, session_id: str, now: Optional[datetime] = None) -> bool:
        """True when the session has been open for at least the configured duration."""
        elapsed = self.elapsed_seconds(session_id, now)
        return elapsed is not None and elapsed >= self.max_duration_seconds

    def active_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count
