"""Data models for the Reflect chat study API."""
from .session import Message, Session, ParticipantProfile, SessionClosedError
from .api import (
    StartConversationRequest,
    StartConversationResponse,
    MessageRequest,
    MessageResponse,
    EndConversationResponse,
    ErrorResponse,
)

__all__ = [
    "Message",
    "Session",
    "ParticipantProfile",
    "SessionClosedError",
    "StartConversationRequest",
    "StartConversationResponse",
    "MessageRequest",
    "MessageResponse",
    "EndConversationResponse",
    "ErrorResponse",
]
