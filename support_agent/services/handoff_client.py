"""HTTP client that notifies the human-agent queue about a handoff.

The webhook receives a small JSON payload describing the conversation to
pick up.  Requests are retried with exponential backoff on timeouts,
connection errors and 5xx responses; 4xx responses fail immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from support_agent.config import HANDOFF_WEBHOOK_TOKEN, HANDOFF_WEBHOOK_URL
from support_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 10.0


class HandoffError(Exception):
    """Raised when the handoff webhook fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class HandoffClient:
    """Posts handoff requests to the agent-queue webhook."""

    def __init__(
        self,
        webhook_url: str | None = None,
        token: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = webhook_url or HANDOFF_WEBHOOK_URL
        if not self._url:
            raise ValueError("A handoff webhook URL is required")
        headers = {"Content-Type": "application/json"}
        token = token or HANDOFF_WEBHOOK_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
        self._headers = headers

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        """POST *payload* with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = await self._client.post(self._url, json=payload, headers=self._headers)
                if response.status_code >= 500:
                    raise HandoffError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise HandoffError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                metrics.record_success(
                    "handoff", "POST webhook", latency_ms=(time.perf_counter() - t0) * 1000,
                )
                return response.json() if response.content else {}

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                metrics.record_failure("handoff", "POST webhook", error_type=type(exc).__name__)
                logger.warning(
                    "Handoff webhook attempt %d/%d failed (%s). Retrying…",
                    attempt, MAX_RETRIES, type(exc).__name__,
                )
            except HandoffError as exc:
                metrics.record_failure("handoff", "POST webhook", error_type=str(exc.status_code))
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Handoff webhook server error on attempt %d/%d. Retrying…",
                        attempt, MAX_RETRIES,
                    )
                else:
                    raise

            if attempt < MAX_RETRIES:
                await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise HandoffError(f"Handoff webhook failed after {MAX_RETRIES} retries: {last_error}")

    async def notify(
        self,
        *,
        reason: str,
        urgency: str,
        conversation_id: str | None = None,
        customer_email: str | None = None,
    ) -> dict[str, Any]:
        """Ask the agent queue to pick up a conversation."""
        payload = {
            "event": "handoff_requested",
            "conversation_id": conversation_id,
            "customer_email": customer_email,
            "reason": reason,
            "urgency": urgency,
        }
        result = await self._post(payload)
        logger.info("Handoff requested for conversation %s (%s)", conversation_id, urgency)
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


def build_handoff_client() -> HandoffClient | None:
    """Return a client when ``HANDOFF_WEBHOOK_URL`` is configured, else ``None``."""
    if not HANDOFF_WEBHOOK_URL:
        return None
    return HandoffClient()
