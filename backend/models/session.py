"""Session data models for study conversations."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

USER = "user"
ASSISTANT = "assistant"
ROLES = (USER, ASSISTANT)


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse an ISO-8601 timestamp, tolerating Supabase's formats.

    Supabase can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This function
    normalizes the timestamp format.

    Args:
        timestamp_str: Timestamp string from a store

    Returns:
        datetime object (naive inputs are assumed to be UTC)
    """
    # Replace 'Z' with '+00:00' for timezone
    timestamp_str = timestamp_str.replace("Z", "+00:00")

    # Handle microseconds with more or fewer than 6 digits
    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        head, tail = timestamp_str.split(".", 1)
        digits = ""
        for char in tail:
            if not char.isdigit():
                break
            digits += char
        tz = tail[len(digits):]
        timestamp_str = f"{head}.{digits[:6].ljust(6, '0')}{tz}"

    parsed = datetime.fromisoformat(timestamp_str)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SessionClosedError(Exception):
    """Raised when a closed session is mutated."""


@dataclass
class Message:
    """A single turn in a session."""
    role: str
    content: str
    timestamp: datetime
    generated_summary: bool = False

    def __post_init__(self):
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role}")

    @classmethod
    def user(cls, content: str, timestamp: Optional[datetime] = None) -> "Message":
        return cls(role=USER, content=content, timestamp=timestamp or utc_now())

    @classmethod
    def assistant(
        cls,
        content: str,
        timestamp: Optional[datetime] = None,
        generated_summary: bool = False
    ) -> "Message":
        return cls(
            role=ASSISTANT,
            content=content,
            timestamp=timestamp or utc_now(),
            generated_summary=generated_summary
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "role": self.role,
            "content": self.content,
            "timestamp": _format_timestamp(self.timestamp),
        }
        if self.generated_summary:
            data["generated_summary"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data.get("content") or "",
            timestamp=parse_timestamp(timestamp) if timestamp else utc_now(),
            generated_summary=bool(data.get("generated_summary", False))
        )


@dataclass
class Session:
    """
    One bounded chat conversation tied to a participant.

    ``ended_at`` and ``duration_seconds`` are only ever set together by
    :meth:`close`; once closed, no further messages may be appended.
    """
    id: str
    participant_id: str
    started_at: datetime
    messages: List[Message] = field(default_factory=list)
    system_prompt: Optional[str] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    @property
    def is_closed(self) -> bool:
        return self.ended_at is not None

    def add_message(self, message: Message) -> None:
        """Append a message; raises SessionClosedError once the session is closed."""
        if self.is_closed:
            raise SessionClosedError(f"Session {self.id} is closed")
        self.messages.append(message)

    def close(self, ended_at: datetime) -> int:
        """
        Close the session and record its duration.

        Args:
            ended_at: Termination time

        Returns:
            Duration in whole seconds

        Raises:
            SessionClosedError: If the session was already closed
        """
        if self.is_closed:
            raise SessionClosedError(f"Session {self.id} is already closed")
        duration = int((ended_at - self.started_at).total_seconds())
        self.ended_at = ended_at
        self.duration_seconds = max(0, duration)
        return self.duration_seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "participantId": self.participant_id,
            "startedAt": _format_timestamp(self.started_at),
            "endedAt": _format_timestamp(self.ended_at),
            "durationSeconds": self.duration_seconds,
            "systemPrompt": self.system_prompt,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        ended_at = data.get("endedAt")
        duration = data.get("durationSeconds")
        # Both or neither; a half-written record is treated as still open
        if not ended_at or duration is None:
            ended_at, duration = None, None
        return cls(
            id=data["id"],
            participant_id=data.get("participantId") or "",
            started_at=parse_timestamp(data["startedAt"]),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            system_prompt=data.get("systemPrompt"),
            ended_at=parse_timestamp(ended_at) if ended_at else None,
            duration_seconds=int(duration) if duration is not None else None
        )


@dataclass
class ParticipantProfile:
    """Read-only view of a participant record relevant to the conversation."""
    participant_id: str
    mind_change_direction: Optional[str] = None
    mind_change_other_text: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, participant_id: str, record: Dict[str, Any]) -> "ParticipantProfile":
        """Build a profile from either the nested survey shape or a flat record."""
        belief_change = record.get("belief_change") or {}
        direction = belief_change.get("mind_change_direction") or record.get("mind_change_direction")
        other_text = belief_change.get("mind_change_other_text") or record.get("mind_change_other_text")
        return cls(
            participant_id=participant_id,
            mind_change_direction=direction,
            mind_change_other_text=other_text,
            raw=record
        )
