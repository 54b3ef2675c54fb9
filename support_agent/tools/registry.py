"""Tool declarations and validated dispatch.

Each tool is a :class:`ToolSpec`: a unique name, a description shown to the
model, a pydantic input model and an async handler.  ``dispatch`` is the
only way handlers are called, and it never raises: unknown tools, invalid
input and handler failures all come back as a :class:`ToolInvocation` with a
non-success status that is fed back to the model.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from support_agent.db.store import SupportStore
from support_agent.services.handoff_client import HandoffClient
from support_agent.services.metrics import metrics
from support_agent.tools.knowledge_base import KnowledgeBase, search_knowledge_base
from support_agent.tools.schemas import (
    CreateTicketInput,
    GetOrderStatusInput,
    SearchKnowledgeBaseInput,
    TransferToAgentInput,
)
from support_agent.tools.support import create_ticket, get_order_status, transfer_to_agent

logger = logging.getLogger(__name__)

ToolStatus = Literal["success", "invalid_input", "error"]


class ToolInvocation(BaseModel):
    """One model-requested tool call and what came of it."""

    tool_call_id: str | None = None
    tool_name: str
    input: dict[str, Any]
    output: dict[str, Any]
    status: ToolStatus

    @property
    def ok(self) -> bool:
        return self.status == "success"


@dataclass
class ToolContext:
    """Per-turn collaborators handed to every handler."""

    store: SupportStore
    knowledge_base: KnowledgeBase
    handoff: HandoffClient | None = None
    conversation_id: str | None = None
    customer_email: str | None = None


Handler = Callable[[Any, ToolContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Handler

    def declaration(self) -> dict[str, Any]:
        """Anthropic-format tool declaration for ``bind_tools``."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }


def _validation_details(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in error["loc"]) or "input", "message": error["msg"]}
        for error in exc.errors()
    ]


class ToolRegistry:
    """Name → :class:`ToolSpec` lookup with validated dispatch."""

    def __init__(self, specs: Iterable[ToolSpec]) -> None:
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Duplicate tool name: {spec.name}")
            self._specs[spec.name] = spec

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def declarations(self) -> list[dict[str, Any]]:
        return [spec.declaration() for spec in self._specs.values()]

    async def dispatch(
        self,
        name: str,
        raw_input: Any,
        context: ToolContext,
        *,
        tool_call_id: str | None = None,
    ) -> ToolInvocation:
        """Validate *raw_input* against the tool's schema, then run its handler."""
        recorded_input = dict(raw_input) if isinstance(raw_input, Mapping) else {"value": raw_input}

        def _result(status: ToolStatus, output: dict[str, Any]) -> ToolInvocation:
            return ToolInvocation(
                tool_call_id=tool_call_id,
                tool_name=name,
                input=recorded_input,
                output=output,
                status=status,
            )

        spec = self.get(name)
        if spec is None:
            logger.warning("Model requested unknown tool %r", name)
            metrics.record_failure("tool", name, error_type="unknown_tool")
            return _result(
                "error",
                {"error": "unknown_tool", "message": f"No tool named {name!r} is available."},
            )

        try:
            payload = spec.input_model.model_validate(raw_input)
        except ValidationError as exc:
            logger.info("Rejected %s call with invalid input: %s", name, exc.error_count())
            metrics.record_failure("tool", name, error_type="invalid_input")
            return _result(
                "invalid_input",
                {
                    "error": "invalid_input",
                    "message": "The tool input did not match its schema. Correct it and try again.",
                    "details": _validation_details(exc),
                },
            )

        t0 = time.perf_counter()
        try:
            output = await spec.handler(payload, context)
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            logger.exception("Tool %s failed", name)
            metrics.record_failure(
                "tool", name, error_type=type(exc).__name__, latency_ms=elapsed,
            )
            return _result(
                "error",
                {
                    "error": "tool_failed",
                    "message": f"{name} could not be completed right now. Please try again later.",
                },
            )

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("tool", name, latency_ms=elapsed)
        logger.debug("Tool %s succeeded in %.0fms", name, elapsed)
        recorded_input = payload.model_dump()
        return _result("success", output)


# ── Declared tools ───────────────────────────────────────────────────

SEARCH_KNOWLEDGE_BASE = ToolSpec(
    name="search_knowledge_base",
    description=(
        "Search the company knowledge base for information about products, "
        "policies, and procedures"
    ),
    input_model=SearchKnowledgeBaseInput,
    handler=search_knowledge_base,
)

CREATE_TICKET = ToolSpec(
    name="create_ticket",
    description=(
        "Create a support ticket when the issue requires human assistance or "
        "cannot be resolved by the AI"
    ),
    input_model=CreateTicketInput,
    handler=create_ticket,
)

GET_ORDER_STATUS = ToolSpec(
    name="get_order_status",
    description="Retrieve the status and details of a customer order",
    input_model=GetOrderStatusInput,
    handler=get_order_status,
)

TRANSFER_TO_AGENT = ToolSpec(
    name="transfer_to_agent",
    description=(
        "Transfer the conversation to a human agent immediately for complex "
        "issues or when requested by customer"
    ),
    input_model=TransferToAgentInput,
    handler=transfer_to_agent,
)

ALL_TOOLS = [SEARCH_KNOWLEDGE_BASE, CREATE_TICKET, GET_ORDER_STATUS, TRANSFER_TO_AGENT]


def default_registry() -> ToolRegistry:
    return ToolRegistry(ALL_TOOLS)
