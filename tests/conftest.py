"""Shared test fixtures for the TechCorp support test suite."""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["DATABASE_URL"] = "sqlite://"
    os.environ.pop("OPENAI_API_KEY", None)
    os.environ.pop("HANDOFF_WEBHOOK_URL", None)
    os.environ["METRICS_ENABLED"] = "false"


@pytest.fixture
def store():
    """Fresh in-memory database with the schema created."""
    from support_agent.db.store import SupportStore

    s = SupportStore("sqlite://")
    s.create_schema()
    yield s
    s.dispose()


@pytest.fixture
def seeded_store(store):
    from support_agent.db.seed import seed_sample_orders

    seed_sample_orders(store)
    return store


@pytest.fixture
def knowledge_base():
    """Keyword-only knowledge base loaded from KNOWLEDGE_BASE.md."""
    from support_agent.tools.knowledge_base import KnowledgeBase, load_knowledge_entries

    return KnowledgeBase(load_knowledge_entries())


@pytest.fixture
def tool_context(seeded_store, knowledge_base):
    from support_agent.tools.registry import ToolContext

    seeded_store.ensure_conversation("conv-1", "alex@example.com")
    return ToolContext(
        store=seeded_store,
        knowledge_base=knowledge_base,
        conversation_id="conv-1",
        customer_email="alex@example.com",
    )


# ── Scripted chat model ──────────────────────────────────────────────


class FakeLLM:
    """Stands in for the tool-bound chat model.

    Each ``astream`` call consumes the next script: a list of
    ``AIMessageChunk`` objects to yield, or an exception to raise.
    """

    def __init__(self, scripts):
        self.scripts = list(scripts)
        self.calls = []

    async def astream(self, messages):
        self.calls.append(list(messages))
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for chunk in script:
            yield chunk


def _text_reply(text: str, stop_reason: str = "end_turn", output_tokens: int = 5):
    from langchain_core.messages import AIMessageChunk

    middle = max(1, len(text) // 2)
    return [
        AIMessageChunk(content=text[:middle]),
        AIMessageChunk(
            content=text[middle:],
            response_metadata={"stop_reason": stop_reason},
            usage_metadata={
                "input_tokens": 10,
                "output_tokens": output_tokens,
                "total_tokens": 10 + output_tokens,
            },
        ),
    ]


def _tool_request(name: str, args: dict, call_id: str = "call_1"):
    import json

    from langchain_core.messages import AIMessageChunk

    return [
        AIMessageChunk(
            content="",
            tool_call_chunks=[
                {"name": name, "args": json.dumps(args), "id": call_id, "index": 0},
            ],
            response_metadata={"stop_reason": "tool_use"},
            usage_metadata={"input_tokens": 10, "output_tokens": 3, "total_tokens": 13},
        ),
    ]


@pytest.fixture
def fake_llm_factory():
    return FakeLLM


@pytest.fixture
def text_reply():
    return _text_reply


@pytest.fixture
def tool_request():
    return _tool_request
