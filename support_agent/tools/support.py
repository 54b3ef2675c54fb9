"""Ticketing, order lookup and human handoff tools.

Handlers receive an already-validated input model and return a JSON-ready
dict for the model to read.  Store calls are synchronous SQLAlchemy, so they
run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from support_agent.db.models import ConversationStatus
from support_agent.services.handoff_client import HandoffError
from support_agent.tools.schemas import (
    CreateTicketInput,
    GetOrderStatusInput,
    TransferToAgentInput,
)

if TYPE_CHECKING:
    from support_agent.tools.registry import ToolContext

logger = logging.getLogger(__name__)

_RESPONSE_TIMES = {"urgent": "1 hour", "high": "4 hours"}
_DEFAULT_RESPONSE_TIME = "24 hours"

_WAIT_TIMES = {"high": "2 minutes"}
_DEFAULT_WAIT_TIME = "5 minutes"


def estimated_response_time(priority: str) -> str:
    return _RESPONSE_TIMES.get(priority, _DEFAULT_RESPONSE_TIME)


def estimated_wait_time(urgency: str) -> str:
    return _WAIT_TIMES.get(urgency, _DEFAULT_WAIT_TIME)


def format_currency(cents: int) -> str:
    return f"${cents / 100:,.2f}"


async def create_ticket(payload: CreateTicketInput, context: ToolContext) -> dict[str, Any]:
    # Shielded: once started, the insert commits even if the turn is cancelled
    ticket = await asyncio.shield(
        asyncio.to_thread(
            context.store.create_ticket,
            subject=payload.subject,
            description=payload.description,
            category=payload.category,
            priority=payload.priority,
            customer_email=payload.customer_email,
            conversation_id=context.conversation_id,
        )
    )
    return {
        "ticket_id": ticket.id,
        "estimated_response_time": estimated_response_time(payload.priority),
        "message": "Ticket created successfully. A human agent will reach out soon.",
    }


async def get_order_status(payload: GetOrderStatusInput, context: ToolContext) -> dict[str, Any]:
    order = await asyncio.to_thread(context.store.get_order, payload.order_id, payload.email)
    if order is None:
        return {
            "found": False,
            "message": "Order not found. Please verify the order ID and email address.",
        }
    return {
        "found": True,
        "order_id": order.id,
        "status": order.status,
        "items": order.items,
        "total": order.total,
        "total_display": format_currency(order.total),
        "estimated_delivery": (
            order.estimated_delivery.isoformat() if order.estimated_delivery else None
        ),
        "tracking_number": order.tracking_number,
    }


async def transfer_to_agent(payload: TransferToAgentInput, context: ToolContext) -> dict[str, Any]:
    if context.conversation_id:
        await asyncio.to_thread(
            context.store.update_conversation_status,
            context.conversation_id,
            ConversationStatus.escalated,
        )

    if context.handoff is not None:
        try:
            await context.handoff.notify(
                reason=payload.reason,
                urgency=payload.urgency,
                conversation_id=context.conversation_id,
                customer_email=context.customer_email,
            )
        except HandoffError as exc:
            # Acknowledgement does not depend on the webhook
            logger.warning("Handoff notification failed for %s: %s", context.conversation_id, exc)

    return {
        "transferred": True,
        "message": "Connecting you with a human agent...",
        "estimated_wait_time": estimated_wait_time(payload.urgency),
    }
