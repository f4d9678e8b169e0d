"""Query-ranked memory recall.

Candidates are selected by plain case-insensitive substring match on the
memory content or context (no tokenization, no embeddings), then ranked by
the composite score::

    score = 0.4 * importance + 0.3 * recency_factor + 0.3 * reference_count

``recency_factor`` is the memory's age in days. It grows with age, so older
memories rank higher; the formula is kept as-is for compatibility with
stored rankings and lives in a single function so it can be changed in one
place.

Retrieval has no side effects. Callers that actually put memories into a
prompt bump their reference counts through ``MemoryStore.mark_referenced``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from loguru import logger

from ..config import RetrievalConfig
from ..core.exceptions import InvalidQuery
from ..core.models import Memory
from .keywords import KeywordExtractor

SECONDS_PER_DAY = 86400.0


def recency_factor(created_at: datetime, now: datetime) -> float:
    """Age of a memory in days (unnormalized, increases with age)."""
    return (now - created_at).total_seconds() / SECONDS_PER_DAY


class MemoryRetriever:
    """Filters and ranks memories for a free-text query."""

    def __init__(
        self,
        memories: Iterable[Memory],
        config: RetrievalConfig | None = None,
        keyword_extractor: KeywordExtractor | None = None,
    ):
        """
        Args:
            memories: Records to search (a list or a MemoryStore)
            config: Score weights and default limit
            keyword_extractor: Topic detection for message-based recall
        """
        self._memories = memories
        self._config = config or RetrievalConfig()
        self._keywords = keyword_extractor or KeywordExtractor()

    def score(self, memory: Memory, now: datetime) -> float:
        """Composite ranking score of one memory at time *now*."""
        return (
            self._config.importance_weight * memory.importance
            + self._config.recency_weight * recency_factor(memory.created_at, now)
            + self._config.reference_weight * memory.reference_count
        )

    @staticmethod
    def matches(memory: Memory, query: str) -> bool:
        needle = query.lower()
        if needle in memory.content.lower():
            return True
        return bool(memory.context) and needle in memory.context.lower()

    def relevant(
        self,
        query: str,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[Memory]:
        """Return up to *limit* memories matching *query*, best first.

        Args:
            query: Substring to look for (case-insensitive)
            limit: Maximum results; ``<= 0`` returns an empty list
            now: Reference time for the recency factor

        Raises:
            InvalidQuery: query is empty or whitespace only
        """
        if query is None or not query.strip():
            raise InvalidQuery()

        limit = self._config.default_limit if limit is None else limit
        if limit <= 0:
            return []

        now = now or datetime.now(timezone.utc)
        candidates = [m for m in self._memories if self.matches(m, query)]
        ranked = self._rank(candidates, now)

        logger.debug(
            f"Retrieved {min(limit, len(ranked))}/{len(candidates)} memories "
            f"for query {query[:50]!r}"
        )
        return ranked[:limit]

    def relevant_for_message(
        self,
        message: str,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[Memory]:
        """Recall memories for a chat message.

        Queries by every common topic the message mentions; a message with no
        known topic is used as the query itself. Results from several queries
        are merged and re-ranked with the same score.
        """
        if message is None or not message.strip():
            return []

        limit = self._config.default_limit if limit is None else limit
        if limit <= 0:
            return []

        now = now or datetime.now(timezone.utc)
        queries = self._keywords.detect_topics(message) or [message.strip()]

        merged: dict[str, Memory] = {}
        for query in queries:
            for memory in self.relevant(query, limit=limit, now=now):
                merged.setdefault(memory.id, memory)

        return self._rank(list(merged.values()), now)[:limit]

    def _rank(self, memories: list[Memory], now: datetime) -> list[Memory]:
        # sorted() is stable: equal scores keep store order
        return sorted(memories, key=lambda m: self.score(m, now), reverse=True)
