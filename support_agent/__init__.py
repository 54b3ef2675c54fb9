"""TechCorp Support Agent — AI customer support for an electronics store.

Architecture Overview
=====================

Each chat turn runs a **LangGraph** state machine with two core nodes:

1. **chatbot** — Streams Claude with the conversation history and a system
   prompt composed for this turn (base policy + sentiment addendum +
   customer identity). The model answers directly or requests tools.

2. **tools** — Validates each requested call against its pydantic schema and
   dispatches it through the tool registry. Results go back to the model.

Routing: chatbot → (tool calls?) → tools → chatbot (loop until no tool calls
or the round-trip cap → END)

Key Design Decisions
--------------------
- **Sentiment**: A deterministic keyword classifier over the last three user
  messages picks the tone addendum; no model call is spent on it.
- **Tools**: search_knowledge_base, create_ticket, get_order_status and
  transfer_to_agent. Invalid input never reaches a handler; every failure is
  returned to the model as a structured result.
- **Streaming**: Typed events (text-delta, tool-call, tool-result, error,
  finish) delivered to the client as Server-Sent Events.
- **Knowledge base**: KNOWLEDGE_BASE.md entries ranked by OpenAI embeddings,
  with keyword scoring when embeddings are unavailable.
- **Persistence**: SQLAlchemy models for conversations, messages, tickets,
  orders, feedback and analytics.
- **Rate limiting**: Fixed-window counter per customer email or client IP.
- **Dual Interface**: FastAPI server (production) + CLI chat loop
  (development/testing).

Package Structure
-----------------
- ``support_agent/agent.py`` — LangGraph graph and turn orchestration
- ``support_agent/config.py`` — Centralized configuration from environment variables
- ``support_agent/sentiment.py`` — Sentiment classifier
- ``support_agent/prompts.py`` — System prompt composition
- ``support_agent/events.py`` — Typed stream events
- ``support_agent/server.py`` — FastAPI application
- ``support_agent/main.py`` — CLI chat interface
- ``support_agent/db/`` — ORM models, store and sample data
- ``support_agent/services/`` — Embeddings, handoff webhook, metrics, rate limiter
- ``support_agent/tools/`` — Tool schemas, handlers and registry
- ``support_agent/api/`` — FastAPI routes and Pydantic schemas
"""
