"""
Per-profile memory: bounded store, ranked recall and keyword heuristics.
"""

from .keywords import (
    CHALLENGES,
    COMMON_TOPICS,
    GOALS,
    PREFERENCES,
    KeywordCategory,
    KeywordExtractor,
    KeywordHit,
)
from .retriever import MemoryRetriever, recency_factor
from .store import MemoryStore

__all__ = [
    "CHALLENGES",
    "COMMON_TOPICS",
    "GOALS",
    "PREFERENCES",
    "KeywordCategory",
    "KeywordExtractor",
    "KeywordHit",
    "MemoryRetriever",
    "MemoryStore",
    "recency_factor",
]
