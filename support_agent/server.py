"""FastAPI server for the TechCorp support agent.

Run with:
    uvicorn support_agent.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from support_agent.agent import SupportAgent
from support_agent.api.routes import router
from support_agent.config import (
    CORS_ORIGINS,
    RATE_LIMIT_MAX_REQUESTS,
    RATE_LIMIT_SWEEP_SECONDS,
    RATE_LIMIT_WINDOW_MS,
    SERVER_HOST,
    SERVER_PORT,
)
from support_agent.db.store import SupportStore
from support_agent.services.embeddings import build_default_embedder
from support_agent.services.handoff_client import build_handoff_client
from support_agent.services.metrics import metrics
from support_agent.services.rate_limiter import FixedWindowRateLimiter, InMemoryWindowStore
from support_agent.tools.knowledge_base import KnowledgeBase, load_knowledge_entries

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: open the store, load the knowledge base, build the agent.

    The rate limiter's expired-window sweeper runs on a daemon thread for
    the lifetime of the app.
    """
    store = SupportStore()
    store.create_schema()

    knowledge_base = KnowledgeBase(load_knowledge_entries(), build_default_embedder())
    if not await knowledge_base.initialize():
        logger.info("Semantic search unavailable; knowledge base uses keyword search.")

    handoff = build_handoff_client()

    logger.info("Compiling LangGraph agent…")
    application.state.agent = SupportAgent(store, knowledge_base, handoff=handoff)

    limiter = FixedWindowRateLimiter(
        InMemoryWindowStore(),
        max_requests=RATE_LIMIT_MAX_REQUESTS,
        window_ms=RATE_LIMIT_WINDOW_MS,
    )
    limiter.start_sweeper(RATE_LIMIT_SWEEP_SECONDS)
    application.state.rate_limiter = limiter
    logger.info("Agent ready.")
    yield

    limiter.stop_sweeper()
    if handoff is not None:
        await handoff.aclose()
    store.dispose()
    metrics.flush()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="TechCorp Support Agent",
    description=(
        "AI customer support for TechCorp — order status, returns, "
        "troubleshooting, tickets and human handoff."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS (needed for the chat widget) ────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-RateLimit-Remaining"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a unique request ID to every request for log correlation.

    The ID is echoed in the ``X-Request-ID`` response header so clients can
    quote it when reporting a problem.
    """
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "TechCorp Support Agent",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


# ── CLI entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    logger.info("Starting TechCorp support API on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "support_agent.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
