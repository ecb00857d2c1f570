"""Error taxonomy for the conversation lifecycle."""
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

# Category tags returned to clients
VALIDATION_ERROR = "validation_error"
PARTICIPANT_NOT_FOUND = "participant_not_found"
CONVERSATION_NOT_FOUND = "conversation_not_found"
TIMEOUT = "timeout"
DATA_ERROR = "data_error"
SERVER_ERROR = "server_error"
CONNECTION_TIMEOUT = "connection_timeout"
NETWORK_ERROR = "network_error"
RATE_LIMIT = "rate_limit"
SERVICE_UNAVAILABLE = "service_unavailable"

GENERIC_MESSAGE = "We encountered a technical issue. Please try sending your message again."

FAILURE_MESSAGES = {
    CONNECTION_TIMEOUT: "The connection timed out. Please try sending your message again.",
    NETWORK_ERROR: "Unable to connect to our services. Please check your connection and try again.",
    RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    SERVER_ERROR: GENERIC_MESSAGE,
}


@dataclass
class ChatError:
    """Structured error information returned to clients."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class ConversationError(Exception):
    """Exception carrying a ChatError and the HTTP status it maps to."""

    def __init__(self, error: ChatError, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)

    @property
    def code(self) -> str:
        return self.error.code


def validation_error(message: str) -> ConversationError:
    return ConversationError(ChatError(VALIDATION_ERROR, message), status_code=400)


def participant_not_found(participant_id: str) -> ConversationError:
    return ConversationError(
        ChatError(PARTICIPANT_NOT_FOUND, "Participant not found", {"participant_id": participant_id}),
        status_code=404
    )


def conversation_not_found(session_id: str) -> ConversationError:
    return ConversationError(
        ChatError(CONVERSATION_NOT_FOUND, "Conversation not found or ended", {"session_id": session_id}),
        status_code=404
    )


def conversation_timeout(session_id: str) -> ConversationError:
    return ConversationError(
        ChatError(TIMEOUT, "Conversation time limit exceeded", {"session_id": session_id}),
        status_code=410
    )


def data_error(session_id: str) -> ConversationError:
    return ConversationError(
        ChatError(DATA_ERROR, "Conversation data not found", {"session_id": session_id}),
        status_code=404
    )


def service_unavailable() -> ConversationError:
    return ConversationError(
        ChatError(SERVICE_UNAVAILABLE, "The service is shutting down. Please try again shortly."),
        status_code=503
    )


def classify_exception(exc: BaseException) -> Tuple[str, str]:
    """
    Map an unexpected exception to a user-facing failure category.

    Provider errors carry their own code; anything else is classified by
    inspecting its text the same way for every caller.

    Args:
        exc: The exception that escaped request handling

    Returns:
        Tuple of (category, user-facing message)
    """
    code = getattr(getattr(exc, "error", None), "code", None)
    if code in FAILURE_MESSAGES:
        return code, FAILURE_MESSAGES[code]

    text = str(exc).lower()
    if isinstance(exc, TimeoutError) or "timeout" in text or "timed out" in text or "econnreset" in text:
        category = CONNECTION_TIMEOUT
    elif isinstance(exc, ConnectionError) or "enotfound" in text or "network" in text:
        category = NETWORK_ERROR
    elif "rate limit" in text:
        category = RATE_LIMIT
    else:
        category = SERVER_ERROR
    return category, FAILURE_MESSAGES[category]
