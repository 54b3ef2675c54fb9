"""CLI entry point for the TechCorp support agent.

This provides a simple terminal-based chat interface for testing and
development. For production, use the FastAPI server (support_agent/server.py).

Usage:
    python -m support_agent.main                          # normal mode (quiet)
    python -m support_agent.main --debug                  # debug mode (shows API calls)
    python -m support_agent.main --email alex@example.com --seed
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from dotenv import load_dotenv

from support_agent.agent import SupportAgent
from support_agent.db.seed import seed_sample_orders
from support_agent.db.store import SupportStore
from support_agent.events import ErrorEvent, FinishEvent, TextDelta, ToolCallEvent, ToolResultEvent
from support_agent.prompts import INITIAL_MESSAGES, SUGGESTED_QUESTIONS
from support_agent.services.embeddings import build_default_embedder
from support_agent.tools.knowledge_base import KnowledgeBase, load_knowledge_entries
from support_agent.tools.schemas import is_valid_email

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("support_agent").setLevel(logging.DEBUG if debug else logging.WARNING)


async def _run_turn(agent: SupportAgent, history: list[dict], conversation_id: str, email: str | None) -> str:
    """Stream one turn to the terminal and return the assistant's text."""
    reply: list[str] = []
    print("\nAssistant: ", end="", flush=True)
    async for event in agent.stream_turn(history, conversation_id, email):
        if isinstance(event, TextDelta):
            reply.append(event.text)
            print(event.text, end="", flush=True)
        elif isinstance(event, ToolCallEvent):
            print(f"\n  [using {event.tool_name}…]", flush=True)
        elif isinstance(event, ToolResultEvent) and event.status != "success":
            print(f"  [{event.tool_name}: {event.status}]", flush=True)
        elif isinstance(event, ErrorEvent):
            print(f"\n{event.message}", flush=True)
        elif isinstance(event, FinishEvent):
            logger.debug("Turn finished: %s", event.model_dump())
    print("\n")
    return "".join(reply)


async def _chat_loop(agent: SupportAgent, email: str | None) -> None:
    conversation_id = str(uuid.uuid4())
    history: list[dict] = []
    logger.info("Started new conversation: %s", conversation_id)

    for message in INITIAL_MESSAGES:
        print(f"Assistant: {message['content']}\n")
    print("  Try: " + " | ".join(SUGGESTED_QUESTIONS) + "\n")

    while True:
        try:
            user_input = input("You: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\nGoodbye!")
            break

        if not user_input:
            continue

        if user_input.lower() in ("exit", "quit", "q"):
            print("\nGoodbye! Thanks for contacting TechCorp.")
            break

        if user_input.lower() == "new":
            conversation_id = str(uuid.uuid4())
            history = []
            print(f"\n>> New conversation started: {conversation_id[:8]}...\n")
            continue

        history.append({"role": "user", "content": user_input})
        try:
            reply = await _run_turn(agent, history, conversation_id, email)
        except KeyboardInterrupt:
            print("\n\nGoodbye!")
            break
        if reply:
            history.append({"role": "assistant", "content": reply})


def main():
    """Run the interactive CLI chat loop."""
    parser = argparse.ArgumentParser(description="TechCorp Support Agent CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument("--email", help="Customer email to attach to the conversation")
    parser.add_argument(
        "--seed", action="store_true",
        help="Load sample orders into the database before chatting",
    )
    args = parser.parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    if args.email and not is_valid_email(args.email):
        parser.error(f'"{args.email}" does not look like a valid email address')

    print("\n" + "=" * 60)
    print("  TechCorp Support Agent - CLI Chat")
    print("=" * 60)
    print("  Type your message and press Enter.")
    print("  Commands: 'quit' to exit, 'new' for a new conversation.")
    print("=" * 60 + "\n")

    store = SupportStore()
    store.create_schema()
    if args.seed:
        count = seed_sample_orders(store)
        print(f"  Loaded {count} sample orders (try alex@example.com / 10001234).\n")

    knowledge_base = KnowledgeBase(load_knowledge_entries(), build_default_embedder())
    agent = SupportAgent(store, knowledge_base)
    try:
        asyncio.run(_chat_loop(agent, args.email))
    finally:
        store.dispose()


if __name__ == "__main__":
    main()
