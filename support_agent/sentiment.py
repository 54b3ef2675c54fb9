"""Keyword-based customer sentiment classifier.

The label picks which tone addendum goes into the system prompt (see
``prompts.compose_system_prompt``).  It is deliberately simple: substring
keyword counts over the last few customer messages, plus a boost for
"shouting" (repeated ``!`` or ALL-CAPS words) in the most recent one.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Literal

Sentiment = Literal["positive", "neutral", "negative", "frustrated"]

# Only the last few customer turns are considered
MAX_USER_MESSAGES = 3

POSITIVE_KEYWORDS = (
    "thank",
    "thanks",
    "great",
    "awesome",
    "perfect",
    "excellent",
    "appreciate",
    "helpful",
    "love",
)

NEGATIVE_KEYWORDS = (
    "bad",
    "poor",
    "terrible",
    "horrible",
    "worst",
    "disappointed",
    "frustrating",
    "issue",
    "problem",
)

FRUSTRATED_KEYWORDS = (
    "angry",
    "frustrated",
    "ridiculous",
    "unacceptable",
    "cancel",
    "refund",
    "never",
    "always",
    "manager",
    "complaint",
)

_SHOUTING_BOOST = 2


def _field(message: Any, name: str) -> Any:
    if isinstance(message, Mapping):
        return message.get(name)
    return getattr(message, name, None)


def _recent_user_texts(messages: Iterable[Any]) -> list[str]:
    texts: list[str] = []
    for message in messages:
        if _field(message, "role") != "user":
            continue
        content = _field(message, "content")
        if isinstance(content, str) and content:
            texts.append(content)
    return texts[-MAX_USER_MESSAGES:]


def _count_keywords(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def _is_shouting(text: str) -> bool:
    """Two or more ``!`` or any ALL-CAPS word longer than three characters."""
    if text.count("!") >= 2:
        return True
    return any(len(word) > 3 and word.isupper() for word in text.split())


def analyze_sentiment(messages: Iterable[Any]) -> Sentiment:
    """Classify the customer's mood from the recent message history.

    *messages* may be dicts or objects exposing ``role`` and ``content``.
    Non-user and empty messages are ignored.  Never raises.
    """
    texts = _recent_user_texts(messages)
    if not texts:
        return "neutral"

    positive = negative = frustrated = 0
    for text in texts:
        lowered = text.lower()
        positive += _count_keywords(lowered, POSITIVE_KEYWORDS)
        negative += _count_keywords(lowered, NEGATIVE_KEYWORDS)
        frustrated += _count_keywords(lowered, FRUSTRATED_KEYWORDS)

    if _is_shouting(texts[-1]):
        frustrated += _SHOUTING_BOOST

    if frustrated >= 2:
        return "frustrated"
    if negative > positive:
        return "negative"
    if positive > negative:
        return "positive"
    return "neutral"
