"""Tests for tool dispatch, ticketing, order lookup and handoff."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from support_agent.services.handoff_client import HandoffError
from support_agent.tools.registry import (
    ToolRegistry,
    ToolSpec,
    default_registry,
)
from support_agent.tools.schemas import CreateTicketInput
from support_agent.tools.support import estimated_response_time, estimated_wait_time, format_currency


def _dispatch(registry, name, raw_input, context):
    return asyncio.run(registry.dispatch(name, raw_input, context, tool_call_id="call_1"))


def _ticket_input(**overrides) -> dict:
    data = {
        "subject": "Laptop will not boot",
        "description": "Black screen after the latest update",
        "category": "technical",
        "priority": "urgent",
        "customer_email": "alex@example.com",
    }
    data.update(overrides)
    return data


class TestRegistry:
    def test_declarations_cover_all_tools(self):
        declarations = default_registry().declarations()
        names = [d["name"] for d in declarations]
        assert names == [
            "search_knowledge_base",
            "create_ticket",
            "get_order_status",
            "transfer_to_agent",
        ]
        for declaration in declarations:
            assert declaration["description"]
            assert declaration["input_schema"]["properties"]

    def test_duplicate_names_rejected(self):
        spec = default_registry().get("create_ticket")
        with pytest.raises(ValueError, match="Duplicate"):
            ToolRegistry([spec, spec])

    def test_unknown_tool_is_an_error_result(self, tool_context):
        result = _dispatch(default_registry(), "delete_account", {}, tool_context)
        assert result.status == "error"
        assert result.output["error"] == "unknown_tool"
        assert result.tool_call_id == "call_1"

    def test_invalid_input_never_reaches_handler(self, tool_context):
        handler = AsyncMock(return_value={})
        registry = ToolRegistry([ToolSpec("create_ticket", "desc", CreateTicketInput, handler)])

        result = _dispatch(
            registry, "create_ticket", _ticket_input(customer_email="not-an-email"), tool_context,
        )

        assert result.status == "invalid_input"
        assert not result.ok
        fields = [d["field"] for d in result.output["details"]]
        assert "customer_email" in fields
        handler.assert_not_awaited()

    def test_handler_exception_becomes_generic_error(self, tool_context):
        handler = AsyncMock(side_effect=RuntimeError("database exploded"))
        registry = ToolRegistry([ToolSpec("create_ticket", "desc", CreateTicketInput, handler)])

        result = _dispatch(registry, "create_ticket", _ticket_input(), tool_context)

        assert result.status == "error"
        assert result.output["error"] == "tool_failed"
        assert "database exploded" not in result.output["message"]


class TestCreateTicket:
    def test_creates_ticket_linked_to_conversation(self, tool_context):
        result = _dispatch(default_registry(), "create_ticket", _ticket_input(), tool_context)

        assert result.ok
        assert result.output["estimated_response_time"] == "1 hour"
        tickets = tool_context.store.get_tickets_by_email("alex@example.com")
        assert len(tickets) == 1
        assert tickets[0].id == result.output["ticket_id"]
        assert tickets[0].conversation_id == "conv-1"
        assert tickets[0].status == "open"

    def test_invalid_priority_is_rejected(self, tool_context):
        result = _dispatch(
            default_registry(), "create_ticket", _ticket_input(priority="critical"), tool_context,
        )
        assert result.status == "invalid_input"
        assert tool_context.store.get_tickets_by_email("alex@example.com") == []


class TestGetOrderStatus:
    def test_found_for_owner(self, tool_context):
        result = _dispatch(
            default_registry(),
            "get_order_status",
            {"order_id": "10001234", "email": "alex@example.com"},
            tool_context,
        )
        assert result.output["found"] is True
        assert result.output["status"] == "shipped"
        assert result.output["total"] == 19999
        assert result.output["total_display"] == "$199.99"

    def test_email_match_is_case_insensitive(self, tool_context):
        result = _dispatch(
            default_registry(),
            "get_order_status",
            {"order_id": "10001234", "email": "ALEX@example.com"},
            tool_context,
        )
        assert result.output["found"] is True

    def test_other_customers_order_is_not_found(self, tool_context):
        result = _dispatch(
            default_registry(),
            "get_order_status",
            {"order_id": "10001234", "email": "sam@example.com"},
            tool_context,
        )
        assert result.ok
        assert result.output["found"] is False
        assert "status" not in result.output


class TestTransferToAgent:
    def test_escalates_conversation(self, tool_context):
        result = _dispatch(
            default_registry(),
            "transfer_to_agent",
            {"reason": "Customer asked for a human", "urgency": "high"},
            tool_context,
        )
        assert result.output["transferred"] is True
        assert result.output["estimated_wait_time"] == "2 minutes"
        assert tool_context.store.get_conversation("conv-1").status == "escalated"

    def test_notifies_handoff_webhook(self, tool_context):
        tool_context.handoff = AsyncMock()
        _dispatch(
            default_registry(),
            "transfer_to_agent",
            {"reason": "Billing dispute", "urgency": "normal"},
            tool_context,
        )
        tool_context.handoff.notify.assert_awaited_once_with(
            reason="Billing dispute",
            urgency="normal",
            conversation_id="conv-1",
            customer_email="alex@example.com",
        )

    def test_webhook_failure_still_transfers(self, tool_context):
        tool_context.handoff = AsyncMock()
        tool_context.handoff.notify.side_effect = HandoffError("queue down", status_code=503)

        result = _dispatch(
            default_registry(),
            "transfer_to_agent",
            {"reason": "Billing dispute", "urgency": "normal"},
            tool_context,
        )

        assert result.ok
        assert result.output["transferred"] is True
        assert result.output["estimated_wait_time"] == "5 minutes"


@pytest.mark.parametrize(
    "priority, expected",
    [("urgent", "1 hour"), ("high", "4 hours"), ("medium", "24 hours"), ("low", "24 hours")],
)
def test_estimated_response_time(priority, expected):
    assert estimated_response_time(priority) == expected


@pytest.mark.parametrize("urgency, expected", [("high", "2 minutes"), ("normal", "5 minutes")])
def test_estimated_wait_time(urgency, expected):
    assert estimated_wait_time(urgency) == expected


def test_format_currency():
    assert format_currency(123456) == "$1,234.56"


def test_get_returns_registered_spec():
    registry = default_registry()
    assert registry.get("get_order_status").input_model.__name__ == "GetOrderStatusInput"
    assert registry.get("delete_account") is None
