"""Typed events streamed to the client during a chat turn.

A turn produces, in order: any number of ``text-delta``, ``tool-call`` and
``tool-result`` events, at most one ``error`` event, and exactly one
``finish`` event.  Each event serialises to one Server-Sent Events frame
(``event: <type>`` / ``data: <json>``).
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "length", "tool-calls", "error"]


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage_metadata: dict[str, Any] | None) -> None:
        """Accumulate a LangChain ``usage_metadata`` dict."""
        if not usage_metadata:
            return
        self.input_tokens += usage_metadata.get("input_tokens", 0) or 0
        self.output_tokens += usage_metadata.get("output_tokens", 0) or 0
        self.total_tokens = self.input_tokens + self.output_tokens


class _StreamEvent(BaseModel):
    def to_sse(self) -> str:
        data = self.model_dump_json(exclude={"type"})
        return f"event: {self.type}\ndata: {data}\n\n"


class TextDelta(_StreamEvent):
    type: Literal["text-delta"] = "text-delta"
    text: str


class ToolCallEvent(_StreamEvent):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultEvent(_StreamEvent):
    type: Literal["tool-result"] = "tool-result"
    tool_call_id: str
    tool_name: str
    status: Literal["success", "invalid_input", "error"]
    output: dict[str, Any]


class ErrorEvent(_StreamEvent):
    type: Literal["error"] = "error"
    message: str


class FinishEvent(_StreamEvent):
    type: Literal["finish"] = "finish"
    finish_reason: FinishReason
    usage: Usage = Field(default_factory=Usage)
    tool_roundtrips: int = 0


StreamEvent = Union[TextDelta, ToolCallEvent, ToolResultEvent, ErrorEvent, FinishEvent]
