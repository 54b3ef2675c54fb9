"""Tests for the SQLAlchemy support store."""

from __future__ import annotations

import pytest

from support_agent.db.models import ConversationStatus, TicketStatus


def _ticket(store, email="alex@example.com", **overrides):
    data = {
        "subject": "Charger stopped working",
        "description": "No LED after a week",
        "category": "product",
        "priority": "medium",
        "customer_email": email,
    }
    data.update(overrides)
    return store.create_ticket(**data)


class TestConversations:
    def test_ensure_creates_once(self, store):
        first = store.ensure_conversation("conv-1")
        again = store.ensure_conversation("conv-1")
        assert first.id == again.id == "conv-1"
        assert first.status == "active"
        assert again.customer_email is None

    def test_email_fills_anonymous_conversation(self, store):
        store.ensure_conversation("conv-1")
        store.ensure_conversation("conv-1", "alex@example.com")
        store.ensure_conversation("conv-1", "sam@example.com")
        assert store.get_conversation("conv-1").customer_email == "alex@example.com"

    def test_status_and_sentiment_updates(self, store):
        store.ensure_conversation("conv-1")
        store.update_conversation_sentiment("conv-1", "frustrated")
        store.update_conversation_status("conv-1", ConversationStatus.escalated)
        conversation = store.get_conversation("conv-1")
        assert conversation.sentiment == "frustrated"
        assert conversation.status == "escalated"

    def test_updates_on_missing_conversation_return_none(self, store):
        assert store.update_conversation_status("missing", "resolved") is None
        assert store.update_conversation_sentiment("missing", "neutral") is None

    def test_invalid_status_rejected(self, store):
        store.ensure_conversation("conv-1")
        with pytest.raises(ValueError):
            store.update_conversation_status("conv-1", "archived")

    def test_messages_keep_insertion_order(self, store):
        store.ensure_conversation("conv-1")
        store.save_message("conv-1", "user", "Hi")
        store.save_message(
            "conv-1", "assistant", "Hello!",
            tool_calls=[{"tool_name": "search_knowledge_base"}], tokens=12,
        )
        store.save_message("conv-1", "user", "Thanks")
        messages = store.get_conversation_messages("conv-1")
        assert [m.content for m in messages] == ["Hi", "Hello!", "Thanks"]
        assert messages[1].tool_calls == [{"tool_name": "search_knowledge_base"}]
        assert messages[1].tokens == 12


class TestTickets:
    def test_created_open(self, store):
        ticket = _ticket(store)
        assert ticket.id is not None
        assert ticket.status == "open"
        assert ticket.resolved_at is None

    def test_lookup_by_email_is_case_insensitive(self, store):
        _ticket(store)
        _ticket(store, email="sam@example.com")
        tickets = store.get_tickets_by_email("ALEX@example.com")
        assert len(tickets) == 1

    def test_resolving_stamps_resolution(self, store):
        ticket = _ticket(store)
        updated = store.update_ticket_status(ticket.id, TicketStatus.resolved, "Replaced charger")
        assert updated.status == "resolved"
        assert updated.resolved_at is not None
        assert updated.resolution == "Replaced charger"

    def test_in_progress_does_not_resolve(self, store):
        ticket = _ticket(store)
        updated = store.update_ticket_status(ticket.id, "in_progress")
        assert updated.status == "in_progress"
        assert updated.resolved_at is None

    def test_missing_ticket_returns_none(self, store):
        assert store.update_ticket_status(999, "closed") is None


class TestOrders:
    def test_requires_matching_email(self, seeded_store):
        assert seeded_store.get_order("10001234", "alex@example.com").total == 19999
        assert seeded_store.get_order("10001234", "sam@example.com") is None
        assert seeded_store.get_order("99999999", "alex@example.com") is None

    def test_orders_by_email(self, seeded_store):
        orders = seeded_store.get_orders_by_email("alex@example.com")
        assert {o.id for o in orders} == {"10001234", "10005678"}

    def test_seeding_is_idempotent(self, seeded_store):
        from support_agent.db.seed import seed_sample_orders

        seed_sample_orders(seeded_store)
        assert len(seeded_store.get_orders_by_email("alex@example.com")) == 2


class TestFeedbackAndAnalytics:
    def test_feedback_is_saved(self, store):
        store.ensure_conversation("conv-1")
        feedback = store.save_feedback("conv-1", rating=4, helpful=True, comment="Quick answer")
        assert feedback.to_dict()["rating"] == 4

    def test_analytics_by_metric(self, store):
        store.save_analytics("conv-1", "resolution_time", "42.5")
        store.save_analytics("conv-2", "csat", "5", {"source": "widget"})
        records = store.get_analytics_by_metric("resolution_time")
        assert [r.value for r in records] == ["42.5"]

    def test_dashboard_stats(self, store):
        store.ensure_conversation("conv-1")
        store.ensure_conversation("conv-2")
        resolved = _ticket(store)
        _ticket(store)
        store.update_ticket_status(resolved.id, "resolved")
        store.save_feedback("conv-1", rating=5)
        store.save_feedback("conv-2", rating=3)

        stats = store.get_dashboard_stats("week")

        assert stats == {
            "total_conversations": 2,
            "total_tickets": 2,
            "resolved_tickets": 1,
            "resolution_rate": 50.0,
            "average_rating": 4.0,
        }

    def test_dashboard_stats_empty(self, store):
        stats = store.get_dashboard_stats("day")
        assert stats["resolution_rate"] == 0.0
        assert stats["average_rating"] == 0.0
