"""Keyword heuristics for goals, preferences, challenges and topics.

Runs synchronously with zero LLM dependency. Matching is a plain,
case-insensitive substring test against small fixed keyword lists
(German first, with a few English variants). It is deliberately crude and is
only used where no language-model result is available or as a cheap
per-message signal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Sequence

from ..core.models import MemoryType


@dataclass(frozen=True, slots=True)
class KeywordCategory:
    """A named keyword list and where its matches are filed."""

    name: str
    keywords: tuple[str, ...]
    memory_type: MemoryType
    profile_field: str
    importance: float = 0.5


GOALS = KeywordCategory(
    name="goal",
    keywords=("ziel", "erreichen", "schaffen", "möchte", "will", "goal"),
    memory_type=MemoryType.GOAL,
    profile_field="goals",
)
PREFERENCES = KeywordCategory(
    name="preference",
    keywords=("mag", "liebe", "bevorzuge", "gerne", "am liebsten"),
    memory_type=MemoryType.PREFERENCE,
    profile_field="preferences",
)
CHALLENGES = KeywordCategory(
    name="challenge",
    keywords=("schwierig", "problem", "herausforderung", "schwer", "struggle"),
    memory_type=MemoryType.CONCERN,
    profile_field="challenges",
)

_CATEGORIES: tuple[KeywordCategory, ...] = (GOALS, PREFERENCES, CHALLENGES)

COMMON_TOPICS: tuple[str, ...] = (
    "arbeit",
    "gesundheit",
    "lernen",
    "sport",
    "kochen",
    "reisen",
    "technologie",
    "beziehungen",
    "finanzen",
    "kreativität",
)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


@dataclass(frozen=True, slots=True)
class KeywordHit:
    category: KeywordCategory
    text: str


@dataclass
class KeywordExtractor:
    """Classifies text snippets by keyword category."""

    categories: Sequence[KeywordCategory] = field(
        default_factory=lambda: _CATEGORIES,
        repr=False,
    )
    topics: Sequence[str] = field(default_factory=lambda: COMMON_TOPICS, repr=False)

    @staticmethod
    def split_sentences(text: str) -> list[str]:
        """Split on sentence punctuation and line breaks."""
        if not text:
            return []
        return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s and s.strip()]

    def matches(self, category: KeywordCategory, text: str) -> bool:
        lowered = text.lower()
        return any(keyword in lowered for keyword in category.keywords)

    def classify(self, text: str, max_chars: int = 100) -> list[KeywordHit]:
        """Return one hit per matching category for the whole *text*.

        The hit text is *text* cut to ``max_chars``.
        """
        if not text or not text.strip():
            return []
        snippet = text.strip()[:max_chars]
        return [
            KeywordHit(category=category, text=snippet)
            for category in self.categories
            if self.matches(category, text)
        ]

    def collect(
        self,
        texts: Sequence[str],
        category: KeywordCategory,
        limit: int,
        max_chars: int = 100,
    ) -> list[str]:
        """Sentences from *texts* that match *category*, deduplicated, in order."""
        results: list[str] = []
        seen: set[str] = set()
        for text in texts:
            for sentence in self.split_sentences(text):
                if not self.matches(category, sentence):
                    continue
                snippet = sentence[:max_chars]
                key = " ".join(snippet.split()).lower()
                if key in seen:
                    continue
                seen.add(key)
                results.append(snippet)
                if len(results) >= limit:
                    return results
        return results

    def detect_topics(self, text: str) -> list[str]:
        """Common topics mentioned in *text* (stem match on all but the last letter)."""
        if not text:
            return []
        lowered = text.lower()
        return [
            topic
            for topic in self.topics
            if topic in lowered or topic[:-1] in lowered
        ]
