"""Conversation manager: lifecycle entry point for study conversations."""
import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from models.session import Session, utc_now
from services import errors
from services.llm_client import LLMClient
from services.participant_directory import ParticipantDirectory
from services.session_store import FileSessionStore, SessionStore, SupabaseSessionStore
from services.state_tracker import ConversationStateTracker
from services.storage_gateway import StorageGateway, StorageUnavailableError
from services.summary_safety_net import SummarySafetyNet
from services.turn_processor import EndResult, TurnProcessor, TurnResult
import config

logger = logging.getLogger(__name__)


class ConversationManager:
    """
    Starts, advances, and ends study conversations.

    One instance owns the open-session tracker and the storage gateway for
    the life of the process; request handlers receive it by reference.
    """

    def __init__(
        self,
        storage: StorageGateway,
        participants: ParticipantDirectory,
        reply_generator: Optional[LLMClient] = None,
        max_duration_seconds: float = config.MAX_SESSION_SECONDS,
        system_prompt: Optional[str] = config.SYSTEM_PROMPT,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.participants = participants
        self.reply_generator = reply_generator
        self.system_prompt = system_prompt
        self.clock = clock
        self.tracker = ConversationStateTracker(max_duration_seconds, clock=clock)
        self.safety_net = SummarySafetyNet(storage, participants, clock=clock)
        self.turns = TurnProcessor(
            tracker=self.tracker,
            storage=storage,
            safety_net=self.safety_net,
            reply_generator=reply_generator,
            clock=clock
        )
        self._accepting = True
        self._state_lock = threading.Lock()
        logger.info("ConversationManager initialized")

    @classmethod
    def from_config(cls) -> "ConversationManager":
        """
        Build a manager from environment configuration.

        Raises:
            StorageUnavailableError: In production when Supabase is not configured
                or not reachable
        """
        data_dir = Path(config.DATA_DIR)
        stores: List[SessionStore] = []
        supabase_client = None

        if config.SUPABASE_URL and config.SUPABASE_KEY:
            primary = SupabaseSessionStore(config.SUPABASE_URL, config.SUPABASE_KEY)
            stores.append(primary)
            supabase_client = primary.client
        elif config.IS_PRODUCTION:
            raise StorageUnavailableError("SUPABASE_URL and SUPABASE_KEY are required in production")
        else:
            logger.warning("Supabase not configured, using file storage only (development only)")

        stores.append(FileSessionStore(str(data_dir / "conversations")))
        storage = StorageGateway(stores, write_through=config.STORAGE_WRITE_THROUGH)
        if supabase_client is not None:
            storage.verify_primary(required=config.IS_PRODUCTION)

        participants = ParticipantDirectory(str(data_dir / "participants"), client=supabase_client)

        reply_generator = None
        if config.GROQ_API_KEY:
            reply_generator = LLMClient(config.GROQ_API_KEY)
        else:
            logger.warning("GROQ_API_KEY not configured, replies will use the fallback responder")

        return cls(storage=storage, participants=participants, reply_generator=reply_generator)

    def _admit(self) -> None:
        with self._state_lock:
            if not self._accepting:
                raise errors.service_unavailable()

    def start_conversation(self, participant_id: Optional[str]) -> str:
        """
        Open a new conversation for a participant.

        Args:
            participant_id: Participant reference from the survey

        Returns:
            New conversation id

        Raises:
            ConversationError: validation_error or participant_not_found
        """
        self._admit()
        if not participant_id or not participant_id.strip():
            raise errors.validation_error("participantId is required")
        participant_id = participant_id.strip()

        if not self.participants.exists(participant_id):
            raise errors.participant_not_found(participant_id)

        now = self.clock()
        session = Session(
            id=self._generate_conversation_id(),
            participant_id=participant_id,
            started_at=now,
            system_prompt=self.system_prompt
        )
        save = self.storage.save(session)
        self.tracker.open(session.id, participant_id, now)

        logger.info(
            f"Conversation started: {session.id} for participant: {participant_id}",
            extra={"session_id": session.id, "participant_id": participant_id}
        )
        if not save.ok:
            logger.error(f"Conversation {session.id} started without durable storage")
        return session.id

    def submit_turn(self, conversation_id: str, content: Optional[str]) -> TurnResult:
        self._admit()
        return self.turns.submit_turn(conversation_id, content)

    def end_conversation(self, conversation_id: str) -> EndResult:
        self._admit()
        return self.turns.end_conversation(conversation_id)

    def active_conversations(self) -> int:
        return self.tracker.active_count()

    def latest_completed_session(self) -> Optional[Session]:
        return self.storage.latest_completed()

    def storage_stats(self) -> Dict[str, Dict[str, object]]:
        return self.storage.stats()

    def primary_available(self) -> bool:
        return self.storage.primary.is_available()

    def clear_all_data(self) -> Dict[str, object]:
        """Delete every stored session and forget every open conversation."""
        results = self.storage.clear_all()
        evicted = self.tracker.clear()
        logger.warning(f"All conversation data cleared: {results}, {evicted} open conversations evicted")
        return {"success": all(results.values()), "stores": results, "evicted": evicted}

    def begin_shutdown(self) -> None:
        with self._state_lock:
            self._accepting = False
        logger.info("ConversationManager no longer accepting requests")

    def shutdown(self, drain_timeout: float = config.SHUTDOWN_DRAIN_SECONDS) -> None:
        """Stop accepting work, let in-flight saves finish, then release clients."""
        self.begin_shutdown()
        self.storage.drain(drain_timeout)
        if self.reply_generator is not None:
            self.reply_generator.close()
        self.storage.close()
        logger.info("ConversationManager shut down")

    def _generate_conversation_id(self) -> str:
        """
        Generate a unique conversation ID.

        Returns:
            Unique conversation ID string
        """
        return str(uuid.uuid4())
