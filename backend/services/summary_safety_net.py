"""
Summary safety net for terminated conversations.

Every closed conversation should end with a recap of what the participant
shared. When the live reply stream never produced one, a deterministic
summary is synthesized from the participant's own turns and profile. This
is a keyword heuristic, not a language-model call, so it runs without
network access and gives the same bullets for the same messages.
"""
import logging
import re
from typing import Callable, Dict, List, Optional, Sequence
from datetime import datetime

from models.session import ASSISTANT, USER, Message, ParticipantProfile, Session, utc_now
from services.participant_directory import ParticipantDirectory
from services.storage_gateway import StorageGateway

logger = logging.getLogger(__name__)

# Number of most recent assistant messages inspected for an existing summary
SUMMARY_SCAN_WINDOW = 5

# Bullet markers needed in one message for it to count as a summary
MIN_BULLET_MARKERS = 2

SUMMARY_KEYWORDS = (
    "summary",
    "summarize",
    "key themes",
    "based on our conversation",
)

# "•" counts anywhere; "*" and "-" only at the start of a line
_INLINE_BULLET = re.compile(r"•")
_LINE_BULLET = re.compile(r"^\s*[*\-]\s+", re.MULTILINE)

# User turns shorter than this carry too little signal for theme detection
MIN_THEMED_MESSAGE_LENGTH = 10
TERMINATION_PHRASE = "end the chat"

MAX_SUMMARY_POINTS = 5
MIN_SUMMARY_POINTS = 2

BELIEF_CHANGE_STATEMENTS = {
    "exists_to_not_exists": "From thinking climate change exists, to thinking it does not exist",
    "not_exists_to_exists": "From thinking climate change does not exist, to thinking it exists",
    "not_urgent_to_urgent": "From thinking climate change is not urgent, to thinking it is urgent",
    "urgent_to_not_urgent": "From thinking climate change is urgent, to thinking it is not urgent",
    "human_to_natural": "From thinking climate change is human-caused, to thinking it is natural",
    "natural_to_human": "From thinking climate change is natural, to thinking it is human-caused",
}
OTHER_DIRECTION = "other"
OTHER_DIRECTION_FALLBACK = "Other belief change described by participant"
BELIEF_CHANGE_PREFIX = "You described your belief change: "

# Ordered: the summary lists triggered themes in this order
THEME_KEYWORDS: Dict[str, Sequence[str]] = {
    "evidence": ("evidence", "research", "study", "data"),
    "personal": ("experience", "personal", "saw", "noticed", "felt"),
    "social": ("people", "family", "friend", "others"),
    "media": ("media", "news", "article", "tv"),
    "change_process": ("change", "shift", "different", "realized"),
}

THEME_POINTS = {
    "evidence": "You discussed the role of evidence and research in shaping your views",
    "personal": "You shared personal experiences that influenced your thinking",
    "social": "You talked about how other people influenced your perspective",
    "media": "You mentioned media sources that affected your views",
    "change_process": "You described the process of how your beliefs evolved",
}

FILLER_POINTS = (
    "You engaged in a conversation about your climate change belief journey",
    "You shared your perspective on what influences belief change",
)

SUMMARY_PREAMBLE = (
    "Thank you for sharing your story with me. "
    "Let me summarize the key themes from our conversation:"
)
SUMMARY_CLOSING = "This covers the main points we discussed about your belief change journey."


def count_bullet_markers(text: str) -> int:
    return len(_INLINE_BULLET.findall(text)) + len(_LINE_BULLET.findall(text))


def looks_like_summary(text: str) -> bool:
    """True when a single assistant message reads like a recap."""
    if count_bullet_markers(text) >= MIN_BULLET_MARKERS:
        return True
    lowered = text.lower()
    return any(keyword in lowered for keyword in SUMMARY_KEYWORDS)


def has_existing_summary(messages: Sequence[Message], window: int = SUMMARY_SCAN_WINDOW) -> bool:
    """
    Check the most recent assistant messages for a summary.

    Args:
        messages: Conversation messages in order
        window: How many trailing assistant messages to inspect

    Returns:
        True if one of them is flagged as generated or looks like a summary
    """
    assistant_messages = [m for m in messages if m.role == ASSISTANT]
    if window <= 0:
        return False
    for message in assistant_messages[-window:]:
        if message.generated_summary or looks_like_summary(message.content or ""):
            return True
    return False


def belief_change_statement(profile: Optional[ParticipantProfile]) -> Optional[str]:
    """Fixed sentence for the profile's change direction, if it has a recognized one."""
    if profile is None or not profile.mind_change_direction:
        return None
    direction = profile.mind_change_direction
    if direction == OTHER_DIRECTION:
        description = (profile.mind_change_other_text or "").strip() or OTHER_DIRECTION_FALLBACK
    else:
        description = BELIEF_CHANGE_STATEMENTS.get(direction)
        if description is None:
            return None
    return f"{BELIEF_CHANGE_PREFIX}{description}"


def themed_user_messages(messages: Sequence[Message]) -> List[str]:
    """Lowercased user turns eligible for theme detection."""
    texts = []
    for message in messages:
        if message.role != USER:
            continue
        content = (message.content or "").strip()
        if len(content) <= MIN_THEMED_MESSAGE_LENGTH:
            continue
        lowered = content.lower()
        if TERMINATION_PHRASE in lowered:
            continue
        texts.append(lowered)
    return texts


def detect_themes(messages: Sequence[Message]) -> Dict[str, bool]:
    """Which theme signals appear in the participant's messages."""
    texts = themed_user_messages(messages)
    return {
        theme: any(keyword in text for text in texts for keyword in keywords)
        for theme, keywords in THEME_KEYWORDS.items()
    }


def build_summary_points(
    messages: Sequence[Message],
    profile: Optional[ParticipantProfile] = None
) -> List[str]:
    """
    Assemble the bullet points for a synthesized summary.

    Order is the profile statement followed by triggered themes; the list is
    truncated to MAX_SUMMARY_POINTS and padded with filler to
    MIN_SUMMARY_POINTS.
    """
    points: List[str] = []

    statement = belief_change_statement(profile)
    if statement:
        points.append(statement)

    themes = detect_themes(messages)
    for theme in THEME_KEYWORDS:
        if themes[theme]:
            points.append(THEME_POINTS[theme])

    for filler in FILLER_POINTS:
        if len(points) >= MIN_SUMMARY_POINTS:
            break
        points.append(filler)

    return points[:MAX_SUMMARY_POINTS]


def format_summary(points: Sequence[str]) -> str:
    bullets = "\n\n".join(f"• {point}" for point in points)
    return f"{SUMMARY_PREAMBLE}\n\n{bullets}\n\n{SUMMARY_CLOSING}"


class SummarySafetyNet:
    """Guarantees a terminated conversation carries a closing summary."""

    def __init__(
        self,
        storage: StorageGateway,
        participants: Optional[ParticipantDirectory] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.storage = storage
        self.participants = participants
        self.clock = clock

    def ensure_summary(self, session: Session) -> bool:
        """
        Append and persist a generated summary unless one already exists.

        Idempotent: a second call finds the summary it appended and does
        nothing.

        Args:
            session: Open session about to be closed

        Returns:
            True if a summary message was appended
        """
        if has_existing_summary(session.messages):
            logger.info(f"Session {session.id} already has a summary, no action needed")
            return False

        profile = self._profile_for(session)
        points = build_summary_points(session.messages, profile)
        session.add_message(Message.assistant(
            format_summary(points),
            timestamp=self.clock(),
            generated_summary=True
        ))

        result = self.storage.save(session)
        logger.info(
            f"Generated fallback summary with {len(points)} points for session {session.id}",
            extra={"session_id": session.id}
        )
        if not result.ok:
            logger.error(f"Summary for session {session.id} could not be persisted")
        return True

    def _profile_for(self, session: Session) -> Optional[ParticipantProfile]:
        if self.participants is None or not session.participant_id:
            return None
        try:
            return self.participants.get_profile(session.participant_id)
        except Exception as e:
            logger.error(f"Profile lookup failed for participant {session.participant_id}: {e}")
            return None
