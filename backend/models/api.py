"""Request and response models for the conversation API."""
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class StartConversationRequest(BaseModel):
    """Body of POST /api/conversations/start."""
    model_config = ConfigDict(populate_by_name=True)

    participant_id: Optional[str] = Field(default=None, alias="participantId")


class StartConversationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")


class MessageRequest(BaseModel):
    """Body of POST /api/conversations/{id}/message."""
    content: Optional[str] = None


class MessageResponse(BaseModel):
    reply: str
    ended: bool = False
    persisted: bool = True


class EndConversationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = True
    reply: str
    duration_seconds: Optional[int] = Field(default=None, alias="durationSeconds")


class ErrorResponse(BaseModel):
    error: str
    type: str
    technical_error: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
