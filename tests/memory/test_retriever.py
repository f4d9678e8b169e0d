"""Tests for MemoryRetriever filtering and ranking."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from persona_engine.config import RetrievalConfig
from persona_engine.core.exceptions import InvalidInput, InvalidQuery
from persona_engine.core.models import Memory, MemoryType
from persona_engine.memory.retriever import MemoryRetriever, recency_factor

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _memory(content, importance=0.5, days_old=0.0, references=0, context=None):
    created = NOW - timedelta(days=days_old)
    return Memory(
        type=MemoryType.FACT,
        content=content,
        importance=importance,
        context=context,
        created_at=created,
        last_referenced_at=created,
        reference_count=references,
    )


@pytest.fixture
def sport_memories():
    return [
        _memory("sport ist toll", importance=0.9),
        _memory("kochen macht spaß", importance=0.9),
        _memory("sport am wochenende", importance=0.2),
    ]


class TestRelevant:
    """relevant(query, limit)"""

    def test_sport_scenario(self, sport_memories):
        result = MemoryRetriever(sport_memories).relevant("sport", 3, now=NOW)
        assert [m.content for m in result] == ["sport ist toll", "sport am wochenende"]

    def test_case_insensitive_substring(self, sport_memories):
        result = MemoryRetriever(sport_memories).relevant("SPORT", now=NOW)
        assert len(result) == 2

    def test_matches_context(self):
        memories = [_memory("10 km in 50 Minuten", context="Lauftraining Sport")]
        result = MemoryRetriever(memories).relevant("sport", now=NOW)
        assert result == memories

    def test_memory_without_context_only_matches_content(self):
        memories = [_memory("Kochen am Abend")]
        assert MemoryRetriever(memories).relevant("sport", now=NOW) == []

    def test_deterministic(self, sport_memories):
        retriever = MemoryRetriever(sport_memories)
        assert retriever.relevant("s", 5, now=NOW) == retriever.relevant("s", 5, now=NOW)

    @pytest.mark.parametrize("limit", [0, 1, 2, 5, 10])
    def test_cap(self, sport_memories, limit):
        result = MemoryRetriever(sport_memories).relevant("a", limit, now=NOW)
        assert len(result) <= limit

    def test_limit_zero_and_negative_return_empty(self, sport_memories):
        retriever = MemoryRetriever(sport_memories)
        assert retriever.relevant("sport", 0, now=NOW) == []
        assert retriever.relevant("sport", -3, now=NOW) == []

    def test_default_limit_is_five(self):
        memories = [_memory(f"sport {i}") for i in range(8)]
        assert len(MemoryRetriever(memories).relevant("sport", now=NOW)) == 5

    def test_empty_store(self):
        assert MemoryRetriever([]).relevant("sport", now=NOW) == []

    @pytest.mark.parametrize("query", ["", "   ", None])
    def test_empty_query_rejected(self, sport_memories, query):
        with pytest.raises(InvalidQuery):
            MemoryRetriever(sport_memories).relevant(query, now=NOW)

    def test_invalid_query_is_invalid_input(self):
        assert issubclass(InvalidQuery, InvalidInput)

    def test_does_not_touch_reference_counts(self, sport_memories):
        MemoryRetriever(sport_memories).relevant("sport", now=NOW)
        assert all(m.reference_count == 0 for m in sport_memories)


class TestScoring:
    """score = 0.4 * importance + 0.3 * age_days + 0.3 * reference_count"""

    def test_recency_factor_is_age_in_days(self):
        assert recency_factor(NOW - timedelta(days=2), NOW) == pytest.approx(2.0)
        assert recency_factor(NOW, NOW) == 0.0

    def test_score_formula(self):
        memory = _memory("x", importance=0.5, days_old=1, references=2)
        score = MemoryRetriever([memory]).score(memory, NOW)
        assert score == pytest.approx(0.4 * 0.5 + 0.3 * 1 + 0.3 * 2)

    def test_older_memory_ranks_higher(self):
        fresh = _memory("sport neu", days_old=0)
        old = _memory("sport alt", days_old=10)
        result = MemoryRetriever([fresh, old]).relevant("sport", now=NOW)
        assert result == [old, fresh]

    def test_reference_count_boosts(self):
        a = _memory("sport a", importance=0.9)
        b = _memory("sport b", importance=0.1, references=3)
        assert MemoryRetriever([a, b]).relevant("sport", now=NOW) == [b, a]

    def test_equal_scores_keep_store_order(self):
        memories = [_memory(f"sport {i}") for i in range(4)]
        assert MemoryRetriever(memories).relevant("sport", now=NOW) == memories

    def test_custom_weights(self):
        config = RetrievalConfig(importance_weight=1.0, recency_weight=0.0, reference_weight=0.0)
        fresh = _memory("sport wichtig", importance=0.9)
        old = _memory("sport alt", importance=0.1, days_old=100)
        assert MemoryRetriever([old, fresh], config).relevant("sport", now=NOW) == [fresh, old]


class TestRelevantForMessage:
    def test_uses_detected_topics(self):
        memories = [_memory("sport am wochenende"), _memory("kochen mit freunden")]
        result = MemoryRetriever(memories).relevant_for_message(
            "Was soll ich heute zum Sport anziehen?", now=NOW
        )
        assert [m.content for m in result] == ["sport am wochenende"]

    def test_falls_back_to_whole_message(self):
        memories = [_memory("Tee trinken")]
        result = MemoryRetriever(memories).relevant_for_message("tee", now=NOW)
        assert result == memories

    def test_empty_message_returns_nothing(self):
        assert MemoryRetriever([_memory("x")]).relevant_for_message("  ", now=NOW) == []

    def test_merges_topics_without_duplicates(self):
        both = _memory("sport und kochen", importance=0.9)
        memories = [both, _memory("kochen", importance=0.1)]
        result = MemoryRetriever(memories).relevant_for_message(
            "Sport oder Kochen heute?", now=NOW
        )
        assert result[0] is both
        assert len(result) == 2
