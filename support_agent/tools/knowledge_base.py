"""Knowledge-base search tool.

Entries are loaded from ``KNOWLEDGE_BASE.md``: ``## <category>`` headings
group ``### <title>`` sections.  Search ranks entries by cosine similarity
of embeddings; when embeddings are unavailable (no API key, API failure)
it falls back to keyword overlap with title matches weighted double.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from support_agent.config import KNOWLEDGE_BASE_PATH
from support_agent.services.embeddings import Embedder, EmbeddingError
from support_agent.tools.schemas import SearchKnowledgeBaseInput

if TYPE_CHECKING:
    from support_agent.tools.registry import ToolContext

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 3
CATEGORIES = ("faq", "products", "policies", "billing", "technical")

_DEFAULT_KB_PATH = Path(__file__).resolve().parent.parent.parent / "KNOWLEDGE_BASE.md"


@dataclass
class KnowledgeEntry:
    id: str
    title: str
    content: str
    category: str
    embedding: list[float] | None = field(default=None, repr=False)


@dataclass(frozen=True)
class SearchHit:
    title: str
    content: str
    category: str
    score: float


# ── Loading ──────────────────────────────────────────────────────────


def parse_knowledge_markdown(content: str) -> list[KnowledgeEntry]:
    """Split the markdown into entries, one per ``###`` section."""
    entries: list[KnowledgeEntry] = []
    # parts[0] is the preamble, then alternating category/body pairs
    parts = re.split(r"^##\s+(\w+)\s*$", content, flags=re.MULTILINE)
    for i in range(1, len(parts), 2):
        category = parts[i].strip().lower()
        if category not in CATEGORIES:
            logger.warning("Skipping unknown knowledge category %r", category)
            continue
        sections = re.split(r"^###\s+(.+?)\s*$", parts[i + 1], flags=re.MULTILINE)
        for j in range(1, len(sections), 2):
            body = sections[j + 1] if j + 1 < len(sections) else ""
            body = re.sub(r"\n---\s*$", "", body.strip()).strip()
            entries.append(
                KnowledgeEntry(
                    id=str(len(entries) + 1),
                    title=sections[j].strip(),
                    content=" ".join(body.split()),
                    category=category,
                )
            )
    return entries


def load_knowledge_entries(path: str | Path | None = None) -> list[KnowledgeEntry]:
    kb_path = Path(path or KNOWLEDGE_BASE_PATH or _DEFAULT_KB_PATH)
    try:
        text = kb_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("Knowledge base not found at %s", kb_path)
        return []
    entries = parse_knowledge_markdown(text)
    logger.debug("Loaded %d knowledge entries from %s", len(entries), kb_path)
    return entries


# ── Scoring ──────────────────────────────────────────────────────────


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 0.0
    return dot / (norm_a * norm_b)


def keyword_search(
    query: str, entries: Iterable[KnowledgeEntry], top_k: int = DEFAULT_TOP_K,
) -> list[SearchHit]:
    """Score by keyword containment: +2 per title match, +1 per body match.

    Entries scoring zero are dropped.
    """
    keywords = query.lower().split()
    hits: list[SearchHit] = []
    for entry in entries:
        title = entry.title.lower()
        content = entry.content.lower()
        score = 0
        for keyword in keywords:
            if keyword in title:
                score += 2
            if keyword in content:
                score += 1
        if score > 0:
            hits.append(SearchHit(entry.title, entry.content, entry.category, float(score)))
    hits.sort(key=lambda hit: hit.score, reverse=True)
    return hits[:top_k]


# ── Knowledge base ───────────────────────────────────────────────────


class KnowledgeBase:
    """In-memory knowledge base with lazily computed embeddings."""

    def __init__(
        self,
        entries: Iterable[KnowledgeEntry],
        embedder: Embedder | None = None,
    ) -> None:
        self._entries = list(entries)
        self._embedder = embedder
        self._embedded = False
        self._init_lock = asyncio.Lock()

    @property
    def entries(self) -> list[KnowledgeEntry]:
        return list(self._entries)

    @property
    def semantic_enabled(self) -> bool:
        return self._embedded

    async def initialize(self) -> bool:
        """Embed every entry once.  Returns whether semantic search is available."""
        if self._embedded or self._embedder is None:
            return self._embedded
        async with self._init_lock:
            if self._embedded:
                return True
            try:
                vectors = await self._embedder.embed_documents(
                    [entry.content for entry in self._entries]
                )
            except EmbeddingError as exc:
                logger.warning("Knowledge base embedding failed, using keyword search: %s", exc)
                return False
            for entry, vector in zip(self._entries, vectors):
                entry.embedding = vector
            self._embedded = True
            logger.info("Knowledge base initialized with %d embeddings", len(vectors))
        return True

    async def search(
        self,
        query: str,
        category: str | None = None,
        top_k: int = DEFAULT_TOP_K,
    ) -> list[SearchHit]:
        """Return at most *top_k* entries, best first, restricted to *category*."""
        candidates = [e for e in self._entries if category is None or e.category == category]

        if await self.initialize():
            try:
                query_vector = await self._embedder.embed_query(query)
            except EmbeddingError as exc:
                logger.warning("Query embedding failed, using keyword search: %s", exc)
            else:
                hits = [
                    SearchHit(
                        entry.title,
                        entry.content,
                        entry.category,
                        cosine_similarity(query_vector, entry.embedding) if entry.embedding else 0.0,
                    )
                    for entry in candidates
                ]
                hits.sort(key=lambda hit: hit.score, reverse=True)
                return hits[:top_k]

        return keyword_search(query, candidates, top_k)

    async def add_entry(self, title: str, content: str, category: str) -> KnowledgeEntry:
        """Append a new entry, embedding it when semantic search is active.

        Waits for an in-flight ``initialize`` so the entry is not left out of
        the batch embedding.
        """
        async with self._init_lock:
            entry = KnowledgeEntry(
                id=str(len(self._entries) + 1),
                title=title,
                content=content,
                category=category,
            )
            if self._embedded:
                try:
                    entry.embedding = await self._embedder.embed_query(content)
                except EmbeddingError as exc:
                    logger.warning("Could not embed new entry %r: %s", title, exc)
            self._entries.append(entry)
        return entry


# ── Tool handler ─────────────────────────────────────────────────────


async def search_knowledge_base(
    payload: SearchKnowledgeBaseInput, context: ToolContext,
) -> dict[str, Any]:
    hits = await context.knowledge_base.search(payload.query, payload.category)
    return {
        "results": [
            {"title": hit.title, "content": hit.content, "relevance": round(hit.score, 4)}
            for hit in hits
        ],
    }
