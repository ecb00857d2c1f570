"""Session storage backends: Supabase PostgreSQL (primary) and JSON files (fallback)."""
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional
from supabase import create_client, Client

from models.session import Message, Session, parse_timestamp, utc_now
from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised by a backend when a store operation fails."""


class SessionStore(ABC):
    """Common capability every ranked storage backend implements."""

    name: str = "store"

    @abstractmethod
    def save(self, session: Session) -> None:
        """Persist the whole session aggregate, replacing any previous copy."""

    @abstractmethod
    def load(self, session_id: str) -> Optional[Session]:
        """Return the stored session or None when this backend does not have it."""

    @abstractmethod
    def latest_completed(self) -> Optional[Session]:
        """Return the most recently ended session, if any."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored sessions."""

    @abstractmethod
    def clear(self) -> int:
        """Delete every stored session; returns the number removed when known."""

    def is_available(self) -> bool:
        return True

    def close(self) -> None:
        pass


class SupabaseSessionStore(SessionStore):
    """Store sessions and their messages in Supabase PostgreSQL tables."""

    name = "supabase"

    def __init__(
        self,
        supabase_url: Optional[str] = SUPABASE_URL,
        supabase_key: Optional[str] = SUPABASE_KEY,
        sessions_table: str = "sessions",
        messages_table: str = "messages"
    ):
        """
        Initialize the store with a Supabase client.

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase API key
            sessions_table: Table holding one row per session
            messages_table: Table holding one row per message

        Raises:
            ValueError: If Supabase credentials are missing
        """
        if not supabase_url or not supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

        self.sessions_table = sessions_table
        self.messages_table = messages_table
        self.client: Optional[Client] = create_client(supabase_url, supabase_key)

        logger.info(f"Initialized SupabaseSessionStore with tables: {sessions_table}, {messages_table}")

    def _require_client(self) -> Client:
        if self.client is None:
            raise StorageError("Supabase session store is closed")
        return self.client

    def save(self, session: Session) -> None:
        """
        Upsert the session row and replace its message rows.

        Raises:
            StorageError: If any database operation fails
        """
        client = self._require_client()
        try:
            client.table(self.sessions_table).upsert({
                "id": session.id,
                "participant_id": session.participant_id,
                "started_at": session.started_at.isoformat(),
                "ended_at": session.ended_at.isoformat() if session.ended_at else None,
                "duration_seconds": session.duration_seconds,
                "system_prompt": session.system_prompt,
                "raw": session.to_dict(),
                "updated_at": utc_now().isoformat()
            }).execute()

            # Delete existing messages for this session to handle updates
            client.table(self.messages_table).delete().eq("session_id", session.id).execute()

            if session.messages:
                rows = [
                    {
                        "id": f"{session.id}-msg-{index}",
                        "session_id": session.id,
                        "turn": index,
                        "role": message.role,
                        "content": message.content,
                        "timestamp": message.timestamp.isoformat(),
                        "generated_summary": message.generated_summary
                    }
                    for index, message in enumerate(session.messages)
                ]
                client.table(self.messages_table).insert(rows).execute()

            logger.debug(f"Saved session {session.id} with {len(session.messages)} messages to Supabase")
        except Exception as e:
            error_msg = f"Failed to save session {session.id} to Supabase: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def load(self, session_id: str) -> Optional[Session]:
        client = self._require_client()
        try:
            result = client.table(self.sessions_table).select("*").eq("id", session_id).execute()
            if not result.data:
                return None
            return self._row_to_session(result.data[0])
        except Exception as e:
            error_msg = f"Failed to load session {session_id} from Supabase: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def latest_completed(self) -> Optional[Session]:
        client = self._require_client()
        try:
            result = (
                client.table(self.sessions_table)
                .select("*")
                .not_.is_("ended_at", "null")
                .order("ended_at", desc=True)
                .limit(1)
                .execute()
            )
            if not result.data:
                return None
            return self._row_to_session(result.data[0])
        except Exception as e:
            error_msg = f"Failed to query latest completed session from Supabase: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def count(self) -> int:
        client = self._require_client()
        try:
            response = client.table(self.sessions_table).select("id", count="exact").execute()
            return response.count if response.count is not None else 0
        except Exception as e:
            error_msg = f"Failed to count sessions in Supabase: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def clear(self) -> int:
        """
        Delete every session and message row.

        Raises:
            StorageError: If database operation fails
        """
        client = self._require_client()
        try:
            removed = self.count()
            client.table(self.messages_table).delete().neq("session_id", "").execute()
            client.table(self.sessions_table).delete().neq("id", "").execute()
            logger.info(f"Cleared {removed} sessions from Supabase")
            return removed
        except Exception as e:
            error_msg = f"Failed to clear Supabase session tables: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def is_available(self) -> bool:
        if self.client is None:
            return False
        try:
            self.client.table(self.sessions_table).select("id").limit(1).execute()
            return True
        except Exception as e:
            logger.warning(f"Supabase availability check failed: {e}")
            return False

    def close(self) -> None:
        self.client = None
        logger.info("Released Supabase session store client")

    def _row_to_session(self, row: dict) -> Session:
        messages_result = (
            self._require_client().table(self.messages_table)
            .select("*")
            .eq("session_id", row["id"])
            .order("turn", desc=False)
            .execute()
        )
        messages = [
            Message(
                role=m["role"],
                content=m.get("content") or "",
                timestamp=parse_timestamp(m["timestamp"]) if m.get("timestamp") else utc_now(),
                generated_summary=bool(m.get("generated_summary"))
            )
            for m in (messages_result.data or [])
        ]

        ended_at = row.get("ended_at")
        duration = row.get("duration_seconds")
        if not ended_at or duration is None:
            ended_at, duration = None, None

        return Session(
            id=row["id"],
            participant_id=row.get("participant_id") or "",
            started_at=parse_timestamp(row["started_at"]),
            messages=messages,
            system_prompt=row.get("system_prompt"),
            ended_at=parse_timestamp(ended_at) if ended_at else None,
            duration_seconds=int(duration) if duration is not None else None
        )


class FileSessionStore(SessionStore):
    """Store each session as one JSON document keyed by session id."""

    name = "file"

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, session_id: str) -> Path:
        # Session ids are generated uuids; reject anything that could escape the directory
        if not session_id or os.sep in session_id or "/" in session_id or session_id.startswith("."):
            raise StorageError(f"Invalid session id: {session_id!r}")
        return self.directory / f"{session_id}.json"

    def save(self, session: Session) -> None:
        path = self._path(session.id)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(session.to_dict(), f, indent=2)
            os.replace(tmp_path, path)
            logger.debug(f"Saved session {session.id} to {path}")
        except OSError as e:
            error_msg = f"Failed to write session file {path}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def load(self, session_id: str) -> Optional[Session]:
        path = self._path(session_id)
        if not path.exists():
            return None
        return self._read(path)

    def _read(self, path: Path) -> Session:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return Session.from_dict(json.load(f))
        except (OSError, ValueError, KeyError) as e:
            error_msg = f"Failed to read session file {path}: {str(e)}"
            logger.error(error_msg)
            raise StorageError(error_msg) from e

    def _all(self) -> List[Session]:
        if not self.directory.exists():
            return []
        sessions = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                sessions.append(self._read(path))
            except StorageError:
                continue
        return sessions

    def latest_completed(self) -> Optional[Session]:
        completed = [s for s in self._all() if s.ended_at is not None]
        if not completed:
            return None
        return max(completed, key=lambda s: s.ended_at)

    def count(self) -> int:
        if not self.directory.exists():
            return 0
        return len(list(self.directory.glob("*.json")))

    def clear(self) -> int:
        removed = 0
        for path in list(self.directory.glob("*.json")) if self.directory.exists() else []:
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                raise StorageError(f"Failed to delete session file {path}: {str(e)}") from e
        logger.info(f"Cleared {removed} session files from {self.directory}")
        return removed

    def is_available(self) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            return os.access(self.directory, os.W_OK)
        except OSError:
            return False
