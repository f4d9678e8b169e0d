"""Tests for the personality evolution ledger."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from persona_engine.core.models import CommunicationStyle, Personality, Trait
from persona_engine.personality import PersonalityLedger


@pytest.fixture
def ledger(sample_profile, clock):
    return PersonalityLedger(sample_profile, clock=clock)


class TestRecordEvolution:
    """Append-only audit trail"""

    def test_appends_event_and_counts(self, ledger, sample_profile, clock):
        event = ledger.record_evolution("Mehr Humor", "Nutzer lacht gern")

        assert event.timestamp == clock.now
        assert event.change == "Mehr Humor"
        assert event.reason == "Nutzer lacht gern"
        assert sample_profile.personality.evolution_history == [event]
        assert sample_profile.stats.evolution_count == 1

    def test_events_keep_order(self, ledger, clock):
        ledger.record_evolution("eins")
        clock.advance(minutes=5)
        ledger.record_evolution("zwei")

        assert [e.change for e in ledger.history()] == ["eins", "zwei"]

    def test_events_are_immutable(self, ledger):
        event = ledger.record_evolution("fest")
        with pytest.raises(ValidationError):
            event.change = "anders"

    def test_record_feedback_wording(self, ledger):
        event = ledger.record_feedback("kürzere Antworten", context="Chat: Lauftraining")
        assert event.change == "Adapted based on user feedback: kürzere Antworten"
        assert event.reason == "Chat: Lauftraining"

    def test_style_is_not_changed(self, ledger, sample_profile):
        before = sample_profile.personality.communication_style.model_copy()
        ledger.record_evolution("Formeller werden")
        assert sample_profile.personality.communication_style == before


class TestSnapshots:
    def test_traits_and_style_are_copies(self, sample_profile):
        sample_profile.personality = Personality(
            traits=[Trait(name="motivierend", strength=0.8)],
            communication_style=CommunicationStyle(formality=0.2),
        )
        ledger = PersonalityLedger(sample_profile)

        traits = ledger.traits()
        traits[0].strength = 0.1
        style = ledger.style()
        style.formality = 0.9

        assert sample_profile.personality.traits[0].strength == 0.8
        assert sample_profile.personality.communication_style.formality == 0.2

    def test_history_is_a_copy(self, ledger, sample_profile):
        ledger.history().append("x")
        assert sample_profile.personality.evolution_history == []
