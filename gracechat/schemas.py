"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses

JSON keys are camelCase (sessionId, createdAt, ...); Python attributes are
snake_case. Models accept either form on input.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from gracechat.enums import Category, Sender
from gracechat.utils import parse_timestamp


# =============================================================================
# Pydantic Request Models
# =============================================================================

class ExchangeRequest(BaseModel):
    """
    Body of POST /api/chat/message.

    Blank content is rejected by the exchange itself, not here, so that the
    error surfaces as an InvalidInputError with a consistent message.
    """
    content: str = Field(
        ...,
        max_length=4096,
        description="User message text"
    )
    session_id: Optional[str] = Field(
        None,
        alias="sessionId",
        description="Session handle from a previous exchange; omit to start a new conversation"
    )

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {"content": "prayer for anxiety"},
                {"content": "how to grow in faith", "sessionId": "0b6f3c1e-9d1e-4a55-8a3e-7b0f1f2a9c11"},
            ]
        }
    }


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for error responses."""
    detail: str = Field(..., description="Error description")


class MessageResponse(BaseModel):
    """A stored message as returned to clients."""
    id: str = Field(..., description="Message identifier")
    session_id: str = Field(
        ...,
        alias="sessionId",
        serialization_alias="sessionId",
        description="Owning session"
    )
    content: str = Field(..., description="Message text")
    sender: Sender = Field(..., description="USER or BOT")
    category: Category = Field(..., description="Message category")
    created_at: str = Field(
        ...,
        alias="createdAt",
        serialization_alias="createdAt",
        description="Creation time, ISO-8601 UTC"
    )

    model_config = {
        "populate_by_name": True,
        "from_attributes": True,
    }

    @field_validator("created_at")
    @classmethod
    def validate_iso8601_utc(cls, v: str) -> str:
        """Validate ISO-8601 timestamp."""
        try:
            parse_timestamp(v)
        except ValueError:
            raise ValueError("createdAt must be a valid ISO-8601 UTC timestamp")
        return v


class ClassificationPayload(BaseModel):
    """Category and content chosen by the classifier."""
    category: Category = Field(..., description="Reply category")
    content: str = Field(..., description="Reply content")
    explanation: Optional[str] = Field(None, description="Optional note on the reply")


class ExchangeResponse(BaseModel):
    """Response model for POST /api/chat/message."""
    session_id: str = Field(
        ...,
        alias="sessionId",
        serialization_alias="sessionId",
        description="Session to use for the next exchange"
    )
    user_message: MessageResponse = Field(
        ...,
        alias="userMessage",
        serialization_alias="userMessage",
    )
    bot_message: MessageResponse = Field(
        ...,
        alias="botMessage",
        serialization_alias="botMessage",
    )
    response: ClassificationPayload

    model_config = {"populate_by_name": True}


class SessionSummary(BaseModel):
    """A session in the session list, with its first message as preview."""
    id: str = Field(..., description="Session identifier")
    user_id: Optional[str] = Field(None, alias="userId", serialization_alias="userId")
    created_at: str = Field(..., alias="createdAt", serialization_alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt", serialization_alias="updatedAt")
    messages: list[MessageResponse] = Field(
        default_factory=list,
        description="At most one message (the first of the session)"
    )

    model_config = {"populate_by_name": True}


class SessionListResponse(BaseModel):
    """Response model for GET /api/chat/sessions."""
    data: list[SessionSummary] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Number of sessions returned")


class SessionDetail(BaseModel):
    """Response model for GET /api/chat/sessions/{id}."""
    id: str = Field(..., description="Session identifier")
    user_id: Optional[str] = Field(None, alias="userId", serialization_alias="userId")
    created_at: str = Field(..., alias="createdAt", serialization_alias="createdAt")
    updated_at: str = Field(..., alias="updatedAt", serialization_alias="updatedAt")
    messages: list[MessageResponse] = Field(
        default_factory=list,
        description="All messages, oldest first"
    )

    model_config = {"populate_by_name": True}


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
