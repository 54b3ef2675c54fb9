"""LangGraph-based support agent for TechCorp.

Architecture:
  Each chat turn runs a small LangGraph StateGraph with two nodes:

    1. **chatbot** — streams Claude (with the tool declarations bound) and
                     forwards text deltas as they arrive
    2. **tools**   — dispatches every tool call of the last model message
                     through the :class:`ToolRegistry`, in model order

  Routing:
    chatbot → (tool calls and under the round-trip cap?) → tools → chatbot
            → (no tool calls, or cap reached)             → END

  Streaming:
    Nodes push typed events (see ``support_agent.events``) through the
    LangGraph stream writer; the graph is run with
    ``stream_mode=["custom", "values"]`` so one async iterator yields both
    client events and state snapshots.

  Memory:
    There is no checkpointer.  The client sends the full history on every
    request; the store keeps a copy for analytics and ticket context.
"""

from __future__ import annotations

import asyncio
import json
import logging
import operator
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing, asynccontextmanager
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import (
    AIMessage,
    AnyMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
    message_chunk_to_message,
)
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from langgraph.types import StreamWriter
from sqlalchemy.exc import SQLAlchemyError
from typing_extensions import TypedDict

from support_agent.config import (
    ANTHROPIC_API_KEY,
    LLM_MAX_RETRIES,
    MAX_OUTPUT_TOKENS,
    MAX_TOOL_ROUNDTRIPS,
    MODEL_NAME,
    TEMPERATURE,
)
from support_agent.db.store import SupportStore
from support_agent.events import (
    ErrorEvent,
    FinishEvent,
    FinishReason,
    StreamEvent,
    TextDelta,
    ToolCallEvent,
    ToolResultEvent,
    Usage,
)
from support_agent.prompts import compose_system_prompt
from support_agent.sentiment import Sentiment, analyze_sentiment
from support_agent.services.handoff_client import HandoffClient
from support_agent.services.metrics import metrics
from support_agent.tools.knowledge_base import KnowledgeBase
from support_agent.tools.registry import ToolContext, ToolRegistry, default_registry

logger = logging.getLogger(__name__)

MODEL_ERROR_MESSAGE = "I'm having trouble responding right now. Please try again in a moment."

# Anthropic stop_reason → client finish reason
_STOP_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool-calls",
}


# ── State schema ─────────────────────────────────────────────────────


class TurnState(TypedDict):
    """The state that flows through the graph for one turn.

    ``messages`` uses the ``add_messages`` reducer so nodes append to the
    history; ``usage`` and ``invocations`` accumulate across model and tool
    steps.  ``system_prompt`` is composed once per turn before the run.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    system_prompt: str
    tool_roundtrips: int
    tool_roundtrip_limit: int
    finish_reason: str
    usage: Annotated[list[dict[str, Any]], operator.add]
    invocations: Annotated[list[dict[str, Any]], operator.add]


# ── Message helpers ─────────────────────────────────────────────────


def _field(message: Any, name: str) -> Any:
    if isinstance(message, dict):
        return message.get(name)
    return getattr(message, name, None)


def _part_text(part: Any) -> str:
    if _field(part, "type") == "text":
        return _field(part, "text") or ""
    return ""


def normalize_messages(messages: Iterable[Any]) -> list[dict[str, str]]:
    """Flatten client messages to ``{"role", "content"}`` dicts.

    A message carrying ``parts`` is reduced to the concatenation of its text
    parts; otherwise its ``content`` string is used.
    """
    normalized = []
    for message in messages:
        parts = _field(message, "parts")
        if parts:
            content = "".join(_part_text(part) for part in parts)
        else:
            content = _field(message, "content") or ""
        normalized.append({"role": _field(message, "role"), "content": content})
    return normalized


def to_langchain_messages(messages: Iterable[dict[str, str]]) -> list[BaseMessage]:
    """Map normalized history onto LangChain messages.

    Client-sent system messages are dropped (the system prompt is always
    composed server-side) and empty messages are skipped.
    """
    converted: list[BaseMessage] = []
    for message in messages:
        content = message["content"]
        if not content.strip():
            continue
        if message["role"] == "user":
            converted.append(HumanMessage(content=content))
        elif message["role"] == "assistant":
            converted.append(AIMessage(content=content))
    return converted


def _chunk_text(chunk: BaseMessage) -> str:
    """Text carried by a streamed chunk (string or Anthropic content blocks)."""
    content = chunk.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "")
        for block in content
        if isinstance(block, dict) and block.get("type") == "text"
    )


def _sum_usage(entries: Iterable[dict[str, Any]]) -> Usage:
    usage = Usage()
    for entry in entries:
        usage.add(entry)
    return usage


# ── LLM builder ─────────────────────────────────────────────────────


def _build_llm(tools: list[dict[str, Any]]):
    """Build the Claude chat model with the tool declarations bound."""
    llm = ChatAnthropic(
        model=MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=TEMPERATURE,
        max_tokens=MAX_OUTPUT_TOKENS,
        max_retries=LLM_MAX_RETRIES,
    )
    return llm.bind_tools(tools)


# ── Node: chatbot ────────────────────────────────────────────────────


def _make_chatbot_node(registry: ToolRegistry):
    """Create the chatbot node.

    The model client is captured in the closure so that every round-trip of
    every turn shares one client.
    """
    llm_with_tools = _build_llm(registry.declarations())

    async def chatbot_node(state: TurnState, writer: StreamWriter) -> dict:
        """Stream one model response, forwarding text as it arrives."""
        system = SystemMessage(content=state["system_prompt"])
        aggregate = None
        t0 = time.perf_counter()
        try:
            async for chunk in llm_with_tools.astream([system] + state["messages"]):
                text = _chunk_text(chunk)
                if text:
                    writer(TextDelta(text=text))
                aggregate = chunk if aggregate is None else aggregate + chunk
        except Exception as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "anthropic", "llm_stream",
                error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("anthropic", "llm_stream", latency_ms=elapsed)

        response = message_chunk_to_message(aggregate) if aggregate is not None else AIMessage(content="")
        stop_reason = response.response_metadata.get("stop_reason")
        logger.info(
            "Model step finished: stop_reason=%s, tool_calls=%d (%.0fms)",
            stop_reason, len(response.tool_calls), elapsed,
        )
        return {
            "messages": [response],
            "finish_reason": _STOP_REASONS.get(stop_reason, "stop"),
            "usage": [response.usage_metadata or {}],
        }

    return chatbot_node


# ── Node: tools ──────────────────────────────────────────────────────


def _make_tools_node(registry: ToolRegistry):
    """Create the tools node.

    The per-turn :class:`ToolContext` arrives through
    ``config["configurable"]["tool_context"]``.
    """

    async def tools_node(state: TurnState, config: RunnableConfig, writer: StreamWriter) -> dict:
        context: ToolContext = config["configurable"]["tool_context"]
        tool_messages = []
        invocations = []
        for call in state["messages"][-1].tool_calls:
            writer(ToolCallEvent(tool_call_id=call["id"], tool_name=call["name"], input=call["args"]))
            invocation = await registry.dispatch(
                call["name"], call["args"], context, tool_call_id=call["id"],
            )
            writer(
                ToolResultEvent(
                    tool_call_id=call["id"],
                    tool_name=call["name"],
                    status=invocation.status,
                    output=invocation.output,
                )
            )
            tool_messages.append(
                ToolMessage(
                    content=json.dumps(invocation.output, default=str),
                    tool_call_id=call["id"],
                    name=call["name"],
                    status="success" if invocation.ok else "error",
                )
            )
            invocations.append(invocation.model_dump())

        return {
            "messages": tool_messages,
            "tool_roundtrips": state["tool_roundtrips"] + 1,
            "invocations": invocations,
        }

    return tools_node


# ── Conditional edges ────────────────────────────────────────────────


def should_use_tools(state: TurnState) -> str:
    """Route to tools while the model asks for them and the cap allows."""
    last_message = state["messages"][-1]
    if not getattr(last_message, "tool_calls", None):
        return END
    limit = state.get("tool_roundtrip_limit", MAX_TOOL_ROUNDTRIPS)
    if state.get("tool_roundtrips", 0) >= limit:
        logger.warning("Tool round-trip cap (%d) reached, ending turn", limit)
        return END
    return "tools"


# ── Graph assembly ───────────────────────────────────────────────────


def create_support_graph(registry: ToolRegistry | None = None):
    """Build and compile the support agent graph.

    Returns a compiled graph that can be streamed with::

        graph.astream(
            {"messages": [...], "system_prompt": "...", "tool_roundtrips": 0, ...},
            config={"configurable": {"tool_context": context}},
            stream_mode=["custom", "values"],
        )
    """
    registry = registry or default_registry()
    graph = StateGraph(TurnState)

    graph.add_node("chatbot", _make_chatbot_node(registry))
    graph.add_node("tools", _make_tools_node(registry))

    graph.set_entry_point("chatbot")
    graph.add_conditional_edges(
        "chatbot", should_use_tools, {"tools": "tools", END: END},
    )
    graph.add_edge("tools", "chatbot")

    compiled = graph.compile()
    logger.debug("Support agent compiled — model: %s, tools: %s", MODEL_NAME, registry.names)
    return compiled


# ── Per-conversation serialisation ───────────────────────────────────


class ConversationLocks:
    """One ``asyncio.Lock`` per active conversation.

    Locks are created on first use and discarded once nobody holds or waits
    on them.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if not self._holders[conversation_id]:
                del self._holders[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


# ── Orchestrator ─────────────────────────────────────────────────────


class SupportAgent:
    """Runs chat turns: sentiment, prompt, persistence and the tool loop."""

    def __init__(
        self,
        store: SupportStore,
        knowledge_base: KnowledgeBase,
        *,
        registry: ToolRegistry | None = None,
        handoff: HandoffClient | None = None,
        max_tool_roundtrips: int = MAX_TOOL_ROUNDTRIPS,
    ):
        self.store = store
        self.knowledge_base = knowledge_base
        self.registry = registry or default_registry()
        self.handoff = handoff
        self.max_tool_roundtrips = max_tool_roundtrips
        self._graph = create_support_graph(self.registry)
        self._locks = ConversationLocks()

    # ── Persistence (runs in worker threads) ─────────────────────────

    def _record_user_turn(
        self,
        conversation_id: str,
        customer_email: str | None,
        sentiment: Sentiment,
        content: str | None,
    ) -> None:
        self.store.ensure_conversation(conversation_id, customer_email)
        self.store.update_conversation_sentiment(conversation_id, sentiment)
        if content:
            self.store.save_message(conversation_id, "user", content)

    async def _persist(self, func, *args, **kwargs) -> None:
        try:
            await asyncio.to_thread(func, *args, **kwargs)
        except SQLAlchemyError:
            logger.exception("Failed to persist conversation data")

    # ── Turn ─────────────────────────────────────────────────────────

    async def stream_turn(
        self,
        messages: Iterable[Any],
        conversation_id: str,
        customer_email: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Run one turn and yield its stream events, ending with ``finish``."""
        history = normalize_messages(messages)
        sentiment = analyze_sentiment(history)
        metrics.record_event("Conversation/Sentiment", Label=sentiment)
        system_prompt = compose_system_prompt(sentiment, customer_email, conversation_id)
        logger.info("[%s] Turn started (sentiment=%s, messages=%d)", conversation_id, sentiment, len(history))

        latest_user = next(
            (m["content"] for m in reversed(history) if m["role"] == "user" and m["content"]),
            None,
        )

        async with self._locks.hold(conversation_id):
            await self._persist(
                self._record_user_turn, conversation_id, customer_email, sentiment, latest_user,
            )

            lc_messages = to_langchain_messages(history)
            if latest_user is None or not lc_messages:
                yield ErrorEvent(message="There is no customer message to respond to.")
                yield FinishEvent(finish_reason="error")
                return

            context = ToolContext(
                store=self.store,
                knowledge_base=self.knowledge_base,
                handoff=self.handoff,
                conversation_id=conversation_id,
                customer_email=customer_email,
            )
            inputs = {
                "messages": lc_messages,
                "system_prompt": system_prompt,
                "tool_roundtrips": 0,
                "tool_roundtrip_limit": self.max_tool_roundtrips,
                "finish_reason": "stop",
                "usage": [],
                "invocations": [],
            }
            config = {
                "configurable": {"tool_context": context},
                "recursion_limit": 2 * self.max_tool_roundtrips + 5,
            }

            state: dict[str, Any] = inputs
            text_parts: list[str] = []
            try:
                async with aclosing(
                    self._graph.astream(inputs, config=config, stream_mode=["custom", "values"])
                ) as stream:
                    async for mode, chunk in stream:
                        if mode == "values":
                            state = chunk
                            continue
                        if isinstance(chunk, TextDelta):
                            text_parts.append(chunk.text)
                        yield chunk
            except Exception:
                logger.exception("[%s] Turn failed", conversation_id)
                yield ErrorEvent(message=MODEL_ERROR_MESSAGE)
                yield FinishEvent(
                    finish_reason="error",
                    usage=_sum_usage(state.get("usage", [])),
                    tool_roundtrips=state.get("tool_roundtrips", 0),
                )
                return

            usage = _sum_usage(state["usage"])
            tool_roundtrips = state["tool_roundtrips"]
            finish_reason = state["finish_reason"]
            if getattr(state["messages"][-1], "tool_calls", None):
                finish_reason = "length"

            await self._persist(
                self.store.save_message,
                conversation_id,
                "assistant",
                "".join(text_parts),
                tool_calls=state["invocations"] or None,
                tokens=usage.output_tokens or None,
            )
            logger.info(
                "[%s] Turn finished: reason=%s, tool_roundtrips=%d, tool_calls=%d, tokens=%d/%d",
                conversation_id, finish_reason, tool_roundtrips, len(state["invocations"]),
                usage.input_tokens, usage.output_tokens,
            )
            yield FinishEvent(
                finish_reason=finish_reason, usage=usage, tool_roundtrips=tool_roundtrips,
            )
