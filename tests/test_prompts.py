"""Tests for system prompt composition."""

from __future__ import annotations

import pytest

from support_agent.prompts import (
    BASE_PROMPT,
    INITIAL_MESSAGES,
    SENTIMENT_ADDENDA,
    SUGGESTED_QUESTIONS,
    compose_system_prompt,
)


class TestComposeSystemPrompt:
    def test_neutral_without_email_is_base_prompt(self):
        assert compose_system_prompt("neutral") == BASE_PROMPT

    @pytest.mark.parametrize("sentiment", ["frustrated", "negative", "positive"])
    def test_non_neutral_sentiment_appends_addendum(self, sentiment: str):
        prompt = compose_system_prompt(sentiment)
        assert prompt.startswith(BASE_PROMPT)
        assert SENTIMENT_ADDENDA[sentiment]
        assert prompt.endswith(SENTIMENT_ADDENDA[sentiment])

    def test_addenda_are_distinct(self):
        texts = {SENTIMENT_ADDENDA[s] for s in ("frustrated", "negative", "positive")}
        assert len(texts) == 3

    def test_customer_block_comes_last(self):
        prompt = compose_system_prompt("frustrated", customer_email="alex@example.com")
        base_at = prompt.index(BASE_PROMPT)
        addendum_at = prompt.index(SENTIMENT_ADDENDA["frustrated"])
        customer_at = prompt.index("## Customer Information")
        assert base_at < addendum_at < customer_at
        assert "alex@example.com" in prompt[customer_at:]

    def test_no_customer_block_without_email(self):
        assert "Customer Information" not in compose_system_prompt("positive")

    def test_conversation_id_is_not_injected(self):
        prompt = compose_system_prompt("neutral", conversation_id="conv-xyz")
        assert "conv-xyz" not in prompt

    def test_unknown_sentiment_adds_nothing(self):
        assert compose_system_prompt("confused") == BASE_PROMPT

    def test_base_prompt_mentions_every_tool(self):
        for tool in ("search_knowledge_base", "create_ticket", "get_order_status", "transfer_to_agent"):
            assert tool in BASE_PROMPT


class TestChatBootstrapContent:
    def test_initial_message_is_from_assistant(self):
        assert INITIAL_MESSAGES[0]["role"] == "assistant"
        assert "TechCorp" in INITIAL_MESSAGES[0]["content"]

    def test_suggested_questions_present(self):
        assert len(SUGGESTED_QUESTIONS) >= 3
