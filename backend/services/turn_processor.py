"""
Turn processing for open study conversations.

A session is either open or closed; closing happens exactly once, through
one of three routes that share the same closing sequence:

* the participant types the termination phrase,
* the session outlives the configured duration,
* the client calls the explicit end operation.

Closing sequence: ensure a summary exists, append the fixed closing
message, stamp end time and duration, persist, evict from the tracker.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional, Tuple

from models.session import Message, Session, utc_now
from services import errors
from services.fallback_responder import fallback_reply
from services.llm_client import LLMClient, LLMClientError
from services.state_tracker import ConversationStateTracker
from services.storage_gateway import SaveResult, StorageGateway
from services.summary_safety_net import SummarySafetyNet, TERMINATION_PHRASE

logger = logging.getLogger(__name__)

CLOSING_MESSAGE = "Okay, ending the chat now. Thanks for participating!"

_TERMINATION_PATTERN = re.compile(r"\b" + re.escape(TERMINATION_PHRASE) + r"\b", re.IGNORECASE)


def should_end_now(text: Optional[str]) -> bool:
    """True when the text contains the termination phrase as whole words."""
    if not text:
        return False
    return bool(_TERMINATION_PATTERN.search(text.strip()))


@dataclass
class TurnResult:
    """Outcome of one submitted turn."""
    reply: str
    ended: bool = False
    persisted: bool = True
    fallback_used: bool = False
    save: SaveResult = field(default_factory=SaveResult, repr=False)


@dataclass
class EndResult:
    """Outcome of closing a session."""
    reply: str
    duration_seconds: int
    summary_added: bool
    persisted: bool
    reason: str


class TurnProcessor:
    """Validates, answers, and persists participant turns."""

    def __init__(
        self,
        tracker: ConversationStateTracker,
        storage: StorageGateway,
        safety_net: SummarySafetyNet,
        reply_generator: Optional[LLMClient] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.tracker = tracker
        self.storage = storage
        self.safety_net = safety_net
        self.reply_generator = reply_generator
        self.clock = clock

    def submit_turn(self, session_id: str, text: Optional[str]) -> TurnResult:
        """
        Process one participant message.

        Args:
            session_id: Open session id
            text: Participant message

        Returns:
            TurnResult with the assistant reply and whether the session ended

        Raises:
            ConversationError: validation_error, conversation_not_found,
                timeout, or data_error
        """
        if not text or not text.strip():
            raise errors.validation_error("Message content is required")
        content = text.strip()

        entry = self.tracker.get(session_id)
        if entry is None:
            raise errors.conversation_not_found(session_id)

        # Turns on one session are serialized; the tracker is re-checked
        # because a concurrent turn or end may have closed it meanwhile.
        with entry.lock:
            if self.tracker.get(session_id) is not entry:
                raise errors.conversation_not_found(session_id)

            now = self.clock()
            if self.tracker.is_expired(session_id, now):
                self._expire(session_id, now)
                raise errors.conversation_timeout(session_id)

            session = self.storage.load(session_id)
            if session is None:
                raise errors.data_error(session_id)

            session.add_message(Message.user(content, timestamp=now))

            if should_end_now(content):
                end = self._close(session, now, reason="phrase")
                logger.info(
                    f"Conversation ended by phrase: {session_id} Duration: {end.duration_seconds} seconds",
                    extra={"session_id": session_id}
                )
                return TurnResult(reply=end.reply, ended=True, persisted=end.persisted)

            reply, fallback_used = self._generate(session)
            session.add_message(Message.assistant(reply, timestamp=self.clock()))
            self.tracker.touch(session_id)
            save = self.storage.save(session)

        return TurnResult(
            reply=reply,
            ended=False,
            persisted=save.ok,
            fallback_used=fallback_used,
            save=save
        )

    def end_conversation(self, session_id: str, reason: str = "explicit") -> EndResult:
        """
        Close an open session without a termination phrase.

        Raises:
            ConversationError: conversation_not_found or data_error
        """
        entry = self.tracker.get(session_id)
        if entry is None:
            raise errors.conversation_not_found(session_id)

        with entry.lock:
            if self.tracker.get(session_id) is not entry:
                raise errors.conversation_not_found(session_id)

            session = self.storage.load(session_id)
            if session is None:
                # Nothing left to close; the entry can never accept a turn again
                self.tracker.close(session_id)
                raise errors.data_error(session_id)

            end = self._close(session, self.clock(), reason=reason)

        logger.info(
            f"Conversation ended ({reason}): {session_id} Duration: {end.duration_seconds} seconds",
            extra={"session_id": session_id}
        )
        return end

    def _generate(self, session: Session) -> Tuple[str, bool]:
        """Reply text and whether the fallback responder produced it."""
        if self.reply_generator is None:
            logger.warning(f"No reply generator configured, using fallback for session {session.id}")
            return fallback_reply(session.messages), True
        try:
            return self.reply_generator.generate_reply(session.messages, session.system_prompt), False
        except LLMClientError as e:
            logger.warning(
                f"Reply generation failed ({e.error.code}) for session {session.id}, using fallback",
                extra={"session_id": session.id, "error_code": e.error.code}
            )
            return fallback_reply(session.messages), True

    def _close(self, session: Session, now: datetime, reason: str) -> EndResult:
        summary_added = self.safety_net.ensure_summary(session)
        session.add_message(Message.assistant(CLOSING_MESSAGE, timestamp=self.clock()))
        duration = session.close(now)
        save = self.storage.save(session)
        self.tracker.close(session.id)
        return EndResult(
            reply=CLOSING_MESSAGE,
            duration_seconds=duration,
            summary_added=summary_added,
            persisted=save.ok,
            reason=reason
        )

    def _expire(self, session_id: str, now: datetime) -> None:
        """Close a session that outlived its time limit, best effort."""
        logger.info(f"Conversation {session_id} exceeded its time limit", extra={"session_id": session_id})
        try:
            session = self.storage.load(session_id)
            if session is not None and not session.is_closed:
                self._close(session, now, reason="timeout")
        except Exception as e:
            logger.error(f"Failed to record timeout close for {session_id}: {e}", exc_info=True)
        finally:
            self.tracker.close(session_id)
