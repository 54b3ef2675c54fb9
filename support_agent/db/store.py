"""Synchronous persistence gateway for conversations, tickets and orders.

Every public method opens its own session and commits before returning, so
each write is a single transaction: a ticket either exists in full or not
at all.  Async callers go through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Literal

from sqlalchemy import Engine, create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from support_agent.config import DATABASE_URL
from support_agent.db.models import (
    AnalyticsRecord,
    Base,
    Conversation,
    ConversationStatus,
    Feedback,
    Message,
    Order,
    Ticket,
    TicketStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

TimeRange = Literal["day", "week", "month"]
_RANGE_DAYS: dict[str, int] = {"day": 1, "week": 7, "month": 30}
_IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def create_store_engine(database_url: str) -> Engine:
    """Create an engine; SQLite connections are shared across worker threads."""
    kwargs: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in _IN_MEMORY_URLS:
            # One connection, otherwise each thread sees its own empty database
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


class SupportStore:
    """CRUD operations over the support schema."""

    def __init__(self, database_url: str | None = None, *, engine: Engine | None = None):
        self._engine = engine or create_store_engine(database_url or DATABASE_URL)
        self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)

    def create_schema(self) -> None:
        Base.metadata.create_all(self._engine)

    def dispose(self) -> None:
        self._engine.dispose()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Conversations & messages ─────────────────────────────────────

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        with self._session() as session:
            return session.get(Conversation, conversation_id)

    def ensure_conversation(
        self, conversation_id: str, customer_email: str | None = None,
    ) -> Conversation:
        """Return the conversation, creating it on first sight.

        A customer email supplied later fills in a previously anonymous
        conversation but never replaces an existing one.
        """
        with self._session() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is None:
                conversation = Conversation(
                    id=conversation_id,
                    customer_email=customer_email,
                    status=ConversationStatus.active.value,
                )
                session.add(conversation)
                logger.info("Created conversation %s", conversation_id)
            elif customer_email and not conversation.customer_email:
                conversation.customer_email = customer_email
            return conversation

    def update_conversation_sentiment(
        self, conversation_id: str, sentiment: str,
    ) -> Conversation | None:
        with self._session() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.sentiment = sentiment
                conversation.updated_at = utc_now()
            return conversation

    def update_conversation_status(
        self, conversation_id: str, status: ConversationStatus | str,
    ) -> Conversation | None:
        status = ConversationStatus(status).value
        with self._session() as session:
            conversation = session.get(Conversation, conversation_id)
            if conversation is not None:
                conversation.status = status
                conversation.updated_at = utc_now()
            return conversation

    def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        *,
        tool_calls: list[dict[str, Any]] | None = None,
        tokens: int | None = None,
    ) -> Message:
        with self._session() as session:
            message = Message(
                conversation_id=conversation_id,
                role=role,
                content=content,
                tool_calls=tool_calls,
                tokens=tokens,
            )
            session.add(message)
            session.flush()
            return message

    def get_conversation_messages(self, conversation_id: str) -> list[Message]:
        with self._session() as session:
            stmt = (
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.id)
            )
            return list(session.scalars(stmt))

    # ── Tickets ──────────────────────────────────────────────────────

    def create_ticket(
        self,
        *,
        subject: str,
        description: str,
        category: str,
        priority: str,
        customer_email: str,
        conversation_id: str | None = None,
    ) -> Ticket:
        with self._session() as session:
            ticket = Ticket(
                subject=subject,
                description=description,
                category=category,
                priority=priority,
                customer_email=customer_email,
                conversation_id=conversation_id,
                status=TicketStatus.open.value,
            )
            session.add(ticket)
            session.flush()
            logger.info("Created ticket %d (%s) for %s", ticket.id, priority, customer_email)
            return ticket

    def get_tickets_by_email(self, email: str, limit: int = 10) -> list[Ticket]:
        with self._session() as session:
            stmt = (
                select(Ticket)
                .where(func.lower(Ticket.customer_email) == email.lower())
                .order_by(Ticket.created_at.desc(), Ticket.id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))

    def update_ticket_status(
        self,
        ticket_id: int,
        status: TicketStatus | str,
        resolution: str | None = None,
    ) -> Ticket | None:
        """Move a ticket to *status*; closing states stamp ``resolved_at``."""
        status = TicketStatus(status)
        with self._session() as session:
            ticket = session.get(Ticket, ticket_id)
            if ticket is None:
                return None
            now = utc_now()
            ticket.status = status.value
            ticket.updated_at = now
            if status in (TicketStatus.resolved, TicketStatus.closed):
                ticket.resolved_at = now
                if resolution:
                    ticket.resolution = resolution
            return ticket

    # ── Orders ───────────────────────────────────────────────────────

    def get_order(self, order_id: str, email: str) -> Order | None:
        """Point lookup on (order id AND owner email).

        An order owned by another email is indistinguishable from a
        missing one.
        """
        with self._session() as session:
            stmt = (
                select(Order)
                .where(
                    Order.id == order_id,
                    func.lower(Order.customer_email) == email.strip().lower(),
                )
                .limit(1)
            )
            return session.scalars(stmt).first()

    def get_orders_by_email(self, email: str, limit: int = 10) -> list[Order]:
        with self._session() as session:
            stmt = (
                select(Order)
                .where(func.lower(Order.customer_email) == email.lower())
                .order_by(Order.created_at.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))

    def add_order(
        self,
        *,
        order_id: str,
        customer_email: str,
        status: str,
        items: list[dict[str, Any]],
        total: int,
        tracking_number: str | None = None,
        estimated_delivery: datetime | None = None,
    ) -> Order:
        with self._session() as session:
            order = Order(
                id=order_id,
                customer_email=customer_email,
                status=status,
                items=items,
                total=total,
                tracking_number=tracking_number,
                estimated_delivery=estimated_delivery,
            )
            return session.merge(order)

    # ── Feedback & analytics ─────────────────────────────────────────

    def save_feedback(
        self,
        conversation_id: str,
        *,
        message_id: int | None = None,
        rating: int | None = None,
        helpful: bool | None = None,
        comment: str | None = None,
    ) -> Feedback:
        with self._session() as session:
            feedback = Feedback(
                conversation_id=conversation_id,
                message_id=message_id,
                rating=rating,
                helpful=helpful,
                comment=comment,
            )
            session.add(feedback)
            session.flush()
            return feedback

    def save_analytics(
        self,
        conversation_id: str,
        metric: str,
        value: str,
        metadata: dict[str, Any] | None = None,
    ) -> AnalyticsRecord:
        with self._session() as session:
            record = AnalyticsRecord(
                conversation_id=conversation_id,
                metric=metric,
                value=value,
                metadata_=metadata,
            )
            session.add(record)
            session.flush()
            return record

    def get_analytics_by_metric(self, metric: str, limit: int = 100) -> list[AnalyticsRecord]:
        with self._session() as session:
            stmt = (
                select(AnalyticsRecord)
                .where(AnalyticsRecord.metric == metric)
                .order_by(AnalyticsRecord.created_at.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt))

    def get_dashboard_stats(self, time_range: TimeRange = "week") -> dict[str, Any]:
        since = utc_now() - timedelta(days=_RANGE_DAYS.get(time_range, 7))
        with self._session() as session:
            total_conversations = session.scalar(
                select(func.count()).select_from(Conversation)
                .where(Conversation.created_at >= since)
            ) or 0
            total_tickets = session.scalar(
                select(func.count()).select_from(Ticket).where(Ticket.created_at >= since)
            ) or 0
            resolved_tickets = session.scalar(
                select(func.count()).select_from(Ticket).where(
                    Ticket.created_at >= since,
                    Ticket.status == TicketStatus.resolved.value,
                )
            ) or 0
            average_rating = session.scalar(
                select(func.avg(Feedback.rating)).where(Feedback.created_at >= since)
            )

        return {
            "total_conversations": total_conversations,
            "total_tickets": total_tickets,
            "resolved_tickets": resolved_tickets,
            "resolution_rate": (
                resolved_tickets / total_tickets * 100 if total_tickets else 0.0
            ),
            "average_rating": float(average_rating) if average_rating is not None else 0.0,
        }
