"""FastAPI route definitions for the TechCorp support API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Literal

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError

from support_agent.api.schemas import (
    AnalyticsRequest,
    BootstrapResponse,
    ChatRequest,
    FeedbackRequest,
    HealthResponse,
    KnowledgeEntryRequest,
    TicketCreateRequest,
    TicketUpdateRequest,
)
from support_agent.events import ErrorEvent, FinishEvent
from support_agent.prompts import INITIAL_MESSAGES, SUGGESTED_QUESTIONS
from support_agent.services.metrics import metrics
from support_agent.tools.registry import ToolContext
from support_agent.tools.schemas import is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter()

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
_INTERNAL_ERROR = "An internal error occurred. Please try again."


def _get_agent(request: Request):
    """Retrieve the support agent from app state.

    The agent is built once during the FastAPI lifespan (see ``server.py``).
    """
    agent = getattr(request.app.state, "agent", None)
    if agent is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return agent


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def _call_store(request: Request, func, *args, **kwargs):
    """Run a synchronous store call in a worker thread; hide DB errors."""
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    except SQLAlchemyError as e:
        request_id = getattr(request.state, "request_id", "?")
        logger.exception("[%s] Database error in %s", request_id, func.__name__)
        raise HTTPException(status_code=500, detail=_INTERNAL_ERROR) from e


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.get("/chat/bootstrap", response_model=BootstrapResponse)
async def chat_bootstrap():
    """Greeting and suggested questions for an empty chat window."""
    return BootstrapResponse(
        initial_messages=INITIAL_MESSAGES,
        suggested_questions=SUGGESTED_QUESTIONS,
    )


@router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    """Run one chat turn and stream its events as Server-Sent Events.

    Requests are rate limited per customer email, or per client IP for
    anonymous visitors.  The stream stops as soon as the client goes away,
    which cancels the model call and any pending tool.
    """
    agent = _get_agent(request)
    request_id = getattr(request.state, "request_id", "?")
    headers = dict(_SSE_HEADERS)

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is not None:
        result = limiter.check(body.customer_email or _client_ip(request))
        if not result.allowed:
            metrics.record_event("RateLimit/Denied")
            logger.warning("[%s] Rate limit exceeded", request_id)
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please wait a moment before sending another message.",
                headers={"X-RateLimit-Remaining": "0"},
            )
        headers["X-RateLimit-Remaining"] = str(result.remaining)

    async def event_stream():
        turn = agent.stream_turn(body.messages, body.conversation_id, body.customer_email)
        try:
            async with aclosing(turn) as events:
                async for event in events:
                    if await request.is_disconnected():
                        logger.info("[%s] Client disconnected, stopping turn", request_id)
                        break
                    yield event.to_sse()
        except Exception:
            logger.exception("[%s] Error while streaming chat turn", request_id)
            yield ErrorEvent(message=_INTERNAL_ERROR).to_sse()
            yield FinishEvent(finish_reason="error").to_sse()

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream; charset=utf-8",
        headers=headers,
    )


# ── Tickets ──────────────────────────────────────────────────────────


@router.get("/tickets")
async def list_tickets(request: Request, email: str = Query(..., min_length=3)):
    """Latest tickets for a customer, newest first."""
    agent = _get_agent(request)
    if not is_valid_email(email):
        raise HTTPException(status_code=422, detail=f'"{email}" is not a valid email address.')
    tickets = await _call_store(request, agent.store.get_tickets_by_email, email)
    return {"tickets": [ticket.to_dict() for ticket in tickets]}


@router.post("/tickets", status_code=201)
async def create_ticket(body: TicketCreateRequest, request: Request):
    """Open a ticket through the same handler the model uses."""
    agent = _get_agent(request)
    context = ToolContext(
        store=agent.store,
        knowledge_base=agent.knowledge_base,
        handoff=agent.handoff,
        conversation_id=body.conversation_id,
        customer_email=body.customer_email,
    )
    invocation = await agent.registry.dispatch(
        "create_ticket", body.model_dump(exclude={"conversation_id"}), context,
    )
    if invocation.status == "invalid_input":
        raise HTTPException(status_code=422, detail=invocation.output.get("details"))
    if not invocation.ok:
        raise HTTPException(status_code=500, detail=_INTERNAL_ERROR)
    return invocation.output


@router.patch("/tickets/{ticket_id}")
async def update_ticket(ticket_id: int, body: TicketUpdateRequest, request: Request):
    agent = _get_agent(request)
    ticket = await _call_store(
        request, agent.store.update_ticket_status, ticket_id, body.status, body.resolution,
    )
    if ticket is None:
        raise HTTPException(status_code=404, detail=f"Ticket {ticket_id} not found.")
    return ticket.to_dict()


# ── Conversations ────────────────────────────────────────────────────


@router.get("/conversations/{conversation_id}/messages")
async def conversation_messages(conversation_id: str, request: Request):
    agent = _get_agent(request)
    conversation = await _call_store(request, agent.store.get_conversation, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found.")
    messages = await _call_store(request, agent.store.get_conversation_messages, conversation_id)
    return {
        "conversation": conversation.to_dict(),
        "messages": [message.to_dict() for message in messages],
    }


# ── Feedback & analytics ─────────────────────────────────────────────


@router.post("/feedback", status_code=201)
async def submit_feedback(body: FeedbackRequest, request: Request):
    agent = _get_agent(request)
    feedback = await _call_store(
        request,
        agent.store.save_feedback,
        body.conversation_id,
        message_id=body.message_id,
        rating=body.rating,
        helpful=body.helpful,
        comment=body.comment,
    )
    if body.rating is not None:
        metrics.record_event("Feedback/Rating", value=body.rating)
    return feedback.to_dict()


@router.get("/analytics")
async def dashboard_stats(
    request: Request,
    time_range: Literal["day", "week", "month"] = Query("week", alias="range"),
):
    """Dashboard counters for the last day, week or month."""
    agent = _get_agent(request)
    return await _call_store(request, agent.store.get_dashboard_stats, time_range)


@router.post("/analytics", status_code=201)
async def record_analytics(body: AnalyticsRequest, request: Request):
    agent = _get_agent(request)
    record = await _call_store(
        request,
        agent.store.save_analytics,
        body.conversation_id,
        body.metric,
        str(body.value),
        body.metadata,
    )
    return record.to_dict()


# ── Knowledge base ───────────────────────────────────────────────────


@router.post("/knowledge", status_code=201)
async def add_knowledge_entry(body: KnowledgeEntryRequest, request: Request):
    """Add an entry to the live knowledge base (not written back to disk)."""
    agent = _get_agent(request)
    entry = await agent.knowledge_base.add_entry(body.title, body.content, body.category)
    logger.info("Added knowledge entry %s: %r", entry.id, entry.title)
    return {
        "id": entry.id,
        "title": entry.title,
        "category": entry.category,
        "embedded": entry.embedding is not None,
    }
