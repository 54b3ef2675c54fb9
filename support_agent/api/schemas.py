"""Pydantic schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from support_agent.db.models import TicketStatus
from support_agent.tools.knowledge_base import CATEGORIES
from support_agent.tools.schemas import EmailAddress, KnowledgeCategory


class MessagePart(BaseModel):
    type: str
    text: str | None = None


class ChatMessage(BaseModel):
    """One message of the client-held history."""

    role: Literal["user", "assistant", "system"]
    content: str | None = Field(None, max_length=8000)
    parts: list[MessagePart] | None = None


class ChatRequest(BaseModel):
    """Incoming chat turn from the frontend."""

    messages: list[ChatMessage] = Field(..., min_length=1, max_length=100)
    conversation_id: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique conversation identifier for persistence and locking",
    )
    customer_email: EmailAddress | None = None


class BootstrapResponse(BaseModel):
    """Greeting and starter questions shown before the first message."""

    initial_messages: list[dict[str, str]]
    suggested_questions: list[str]


class TicketCreateRequest(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=4000)
    category: Literal["technical", "billing", "account", "product", "other"]
    priority: Literal["low", "medium", "high", "urgent"]
    customer_email: EmailAddress
    conversation_id: str | None = None


class TicketUpdateRequest(BaseModel):
    status: TicketStatus
    resolution: str | None = Field(None, max_length=4000)


class FeedbackRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1, max_length=100)
    message_id: int | None = None
    rating: int | None = Field(None, ge=1, le=5)
    helpful: bool | None = None
    comment: str | None = Field(None, max_length=2000)


class AnalyticsRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1, max_length=100)
    metric: str = Field(..., min_length=1, max_length=100)
    value: str | int | float
    metadata: dict[str, Any] | None = None


class KnowledgeEntryRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=8000)
    category: KnowledgeCategory = Field(..., description=f"One of: {', '.join(CATEGORIES)}")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    service: str = "techcorp-support-agent"
