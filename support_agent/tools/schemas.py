"""Typed inputs for the tools the model may call.

The JSON schema of each model is what the LLM sees; the same model
validates the model's arguments before any handler runs.
"""

from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

KnowledgeCategory = Literal["faq", "products", "policies", "billing", "technical"]
TicketPriority = Literal["low", "medium", "high", "urgent"]
TicketCategory = Literal["technical", "billing", "account", "product", "other"]
TransferUrgency = Literal["normal", "high"]

# RFC 5322-ish pattern — covers the vast majority of real-world emails
# without requiring an external dependency.
_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def is_valid_email(email: str | None) -> bool:
    return bool(email) and bool(_EMAIL_RE.match(email.strip()))


def _check_email(value: str) -> str:
    if not is_valid_email(value):
        raise ValueError(f'"{value}" does not look like a valid email address')
    return value


EmailAddress = Annotated[str, AfterValidator(_check_email)]


class _ToolInput(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class SearchKnowledgeBaseInput(_ToolInput):
    query: str = Field(..., min_length=1, description="The search query")
    category: KnowledgeCategory | None = Field(
        None, description="Optional category to restrict the search to",
    )


class CreateTicketInput(_ToolInput):
    subject: str = Field(
        ..., min_length=1, max_length=500, description="Brief subject line for the ticket",
    )
    priority: TicketPriority = Field(..., description="Priority level based on issue severity")
    category: TicketCategory
    description: str = Field(..., min_length=1, description="Detailed description of the issue")
    customer_email: EmailAddress = Field(..., description="Customer email address")


class GetOrderStatusInput(_ToolInput):
    order_id: str = Field(..., min_length=1, description="The order ID or number")
    email: EmailAddress = Field(..., description="Customer email for verification")


class TransferToAgentInput(_ToolInput):
    reason: str = Field(..., min_length=1, description="Reason for transfer")
    urgency: TransferUrgency
