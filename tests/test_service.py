"""End-to-end tests for PersonaService on the in-memory store."""

from __future__ import annotations

import asyncio
import json

import pytest

from persona_engine.core.exceptions import (
    ChatNotFoundError,
    InvalidInput,
    InvalidQuery,
    MessageNotFoundError,
    ProfileNotFoundError,
)
from persona_engine.core.models import (
    ChatStatus,
    MemorySource,
    MemoryType,
    MessageFeedback,
    ProfileData,
)
from persona_engine.service import (
    CONVERSATION_CONTEXT,
    INTERVIEW_CONTEXT,
    PersonaService,
)


@pytest.fixture
def service(memory_store_docs, backend, clock):
    return PersonaService(memory_store_docs, backend, clock=clock)


@pytest.fixture
async def profile(service):
    return await service.create_profile(
        "user-1",
        "Sport",
        "Sport",
        ProfileData(goals=["Marathon laufen"], experience="Fortgeschritten"),
    )


@pytest.fixture
async def chat(service, profile):
    return await service.create_chat(profile.id)


# ---------------------------------------------------------------------------
# send_message
# ---------------------------------------------------------------------------


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_turn_appends_both_messages(self, service, backend, chat):
        backend.replies = ["Lauf zuerst locker."]

        turn = await service.send_message(chat.id, "Wie soll ich für Sport trainieren?")

        assert turn.fallback is False
        assert turn.user_message.role == "user"
        assert turn.assistant_message.content == "Lauf zuerst locker."
        assert turn.assistant_message.metadata.model == "fake-model"
        assert turn.assistant_message.metadata.temperature == 0.7
        saved = await service.get_chat(chat.id)
        assert [m.role for m in saved.messages] == ["user", "assistant"]
        assert saved.stats.message_count == 2
        assert saved.title == "Wie soll ich für Sport trainieren?"

    @pytest.mark.asyncio
    async def test_relevant_memories_reach_prompt(self, service, backend, profile, chat):
        await service.profiles.add_memory(
            profile.id, MemoryType.GOAL, "Sport: unter vier Stunden ins Ziel", importance=0.9
        )

        turn = await service.send_message(chat.id, "Wie soll ich für Sport trainieren?")

        assert [m.content for m in turn.memories_used] == ["Sport: unter vier Stunden ins Ziel"]
        assert "unter vier Stunden" in backend.last_messages[0]["content"]
        stored = (await service.get_profile(profile.id)).memories[0]
        assert stored.reference_count == 1

    @pytest.mark.asyncio
    async def test_history_passed_to_backend(self, service, backend, chat):
        await service.send_message(chat.id, "Erste Frage")
        await service.send_message(chat.id, "Zweite Frage")

        assert [m["content"] for m in backend.last_messages[1:]] == [
            "Erste Frage",
            "Mock-Antwort.",
            "Zweite Frage",
        ]

    @pytest.mark.asyncio
    async def test_backend_failure_still_answers(self, service, backend, chat):
        backend.fail_with()

        turn = await service.send_message(chat.id, "Hallo?")

        assert turn.fallback is True
        assert "Sport" in turn.assistant_message.content
        assert len((await service.get_chat(chat.id)).messages) == 2

    @pytest.mark.asyncio
    async def test_profile_stats(self, service, profile, chat, clock):
        await service.send_message(chat.id, "Eins")
        clock.advance(minutes=3)
        await service.send_message(chat.id, "Zwei")

        stats = (await service.get_profile(profile.id)).stats
        assert stats.total_messages == 4
        assert stats.total_conversations == 1
        assert stats.last_used_at == clock.now

    @pytest.mark.asyncio
    async def test_learns_from_message(self, service, profile, chat):
        text = "Ich möchte einen Halbmarathon laufen"

        await service.send_message(chat.id, text)
        await service.send_message(chat.id, text)

        loaded = await service.get_profile(profile.id)
        assert loaded.profile_data.goals == ["Marathon laufen", text]
        learned = [m for m in loaded.memories if m.context == CONVERSATION_CONTEXT]
        assert len(learned) == 1
        assert learned[0].type == MemoryType.GOAL

    @pytest.mark.asyncio
    async def test_learned_lists_keep_newest_entries(self, service, backend, profile, chat):
        for i in range(40):
            await service.send_message(chat.id, f"Ich will Etappe {i} erreichen")

        loaded = await service.get_profile(profile.id)
        assert loaded.profile_data.goals == [
            f"Ich will Etappe {i} erreichen" for i in range(35, 40)
        ]
        system_prompt = backend.last_messages[0]["content"]
        goals_line = next(
            line for line in system_prompt.splitlines() if line.startswith("Ziele:")
        )
        assert goals_line.count("Etappe") == 5
        assert "Marathon laufen" not in goals_line

    @pytest.mark.asyncio
    async def test_learned_entry_is_cut_to_item_limit(self, service, profile, chat):
        await service.send_message(chat.id, "Ich will " + "sehr " * 100 + "weit laufen")

        goals = (await service.get_profile(profile.id)).profile_data.goals
        assert len(goals[-1]) == service.config.extraction.max_item_chars

    @pytest.mark.asyncio
    async def test_invalid_messages(self, service, chat):
        with pytest.raises(InvalidInput):
            await service.send_message(chat.id, "   ")
        with pytest.raises(InvalidInput):
            await service.send_message(chat.id, "x" * 10001)
        assert (await service.get_chat(chat.id)).messages == []

    @pytest.mark.asyncio
    async def test_unknown_chat(self, service):
        with pytest.raises(ChatNotFoundError):
            await service.send_message("missing", "Hallo")

    @pytest.mark.asyncio
    async def test_concurrent_turns_keep_all_messages(self, service, profile, chat):
        await asyncio.gather(
            service.send_message(chat.id, "A"),
            service.send_message(chat.id, "B"),
        )

        saved = await service.get_chat(chat.id)
        assert len(saved.messages) == 4
        assert (await service.get_profile(profile.id)).stats.total_messages == 4


# ---------------------------------------------------------------------------
# Feedback and session end
# ---------------------------------------------------------------------------


class TestFeedback:
    @pytest.mark.asyncio
    async def test_rating_updates_satisfaction(self, service, profile, chat):
        turn = await service.send_message(chat.id, "Hallo")

        message = await service.record_feedback(
            chat.id, turn.assistant_message.id, MessageFeedback(rating=5)
        )

        assert message.feedback.rating == 5
        loaded = await service.get_profile(profile.id)
        assert loaded.stats.satisfaction_score == 1.0
        assert loaded.personality.evolution_history == []

    @pytest.mark.asyncio
    async def test_comment_recorded_in_ledger_and_memory(self, service, backend, profile, chat):
        backend.replies = ["Hier ist dein Trainingsplan."]
        turn = await service.send_message(chat.id, "Plan bitte")

        await service.record_feedback(
            chat.id,
            turn.assistant_message.id,
            MessageFeedback(helpful=True, comment="Mehr Details bitte"),
        )

        loaded = await service.get_profile(profile.id)
        event = loaded.personality.evolution_history[-1]
        assert event.change == "Adapted based on user feedback: Mehr Details bitte"
        assert event.reason == "Chat: Plan bitte"
        assert loaded.stats.evolution_count == 1
        feedback_memory = next(m for m in loaded.memories if m.type == MemoryType.FEEDBACK)
        assert feedback_memory.content == "Mehr Details bitte"
        assert feedback_memory.source == MemorySource.FEEDBACK
        assert feedback_memory.context == "Hier ist dein Trainingsplan."
        assert feedback_memory.importance == 0.7

    @pytest.mark.asyncio
    async def test_unknown_message(self, service, chat):
        with pytest.raises(MessageNotFoundError):
            await service.record_feedback(chat.id, "nope", MessageFeedback(helpful=False))


class TestEndChat:
    @pytest.mark.asyncio
    async def test_archives_and_records_session(self, service, profile, chat, clock):
        await service.send_message(chat.id, "Start")
        clock.advance(minutes=10)
        await service.send_message(chat.id, "Ende")

        ended = await service.end_chat(chat.id)

        assert ended.status == ChatStatus.ARCHIVED
        assert ended.archived_at == clock.now
        stats = (await service.get_profile(profile.id)).stats
        assert stats.sessions_recorded == 1
        assert stats.average_session_length == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_second_end_is_noop(self, service, profile, chat):
        await service.send_message(chat.id, "Hallo")
        await service.end_chat(chat.id)
        await service.end_chat(chat.id)

        assert (await service.get_profile(profile.id)).stats.sessions_recorded == 1

    @pytest.mark.asyncio
    async def test_archived_chat_rejects_messages(self, service, backend, profile, chat):
        await service.send_message(chat.id, "Hallo")
        await service.end_chat(chat.id)
        calls = len(backend.calls)

        with pytest.raises(InvalidInput):
            await service.send_message(chat.id, "Noch eine Frage")

        saved = await service.get_chat(chat.id)
        assert saved.stats.message_count == 2
        assert len(backend.calls) == calls
        assert (await service.get_profile(profile.id)).stats.total_messages == 2


# ---------------------------------------------------------------------------
# Profiles, recall and one-off chat
# ---------------------------------------------------------------------------


class TestInterviewProfile:
    @pytest.mark.asyncio
    async def test_create_from_interview_seeds_memories(self, service, backend):
        backend.replies = [
            json.dumps(
                {
                    "name": "Kochen Lernen",
                    "category": "Kochen",
                    "goals": ["Frische Pasta"],
                    "preferences": ["Italienisch"],
                    "challenges": ["Teig kneten"],
                    "experience": "Anfänger",
                    "frequency": "wöchentlich",
                }
            )
        ]
        history = [{"role": "user", "content": "kochen lernen"}]

        created = await service.create_profile_from_interview("user-1", history)

        loaded = await service.get_profile(created.id)
        assert loaded.name == "Kochen Lernen"
        assert loaded.profile_data.goals == ["Frische Pasta"]
        assert {(m.type, m.importance) for m in loaded.memories} == {
            (MemoryType.GOAL, 0.7),
            (MemoryType.PREFERENCE, 0.6),
            (MemoryType.CONCERN, 0.6),
        }
        assert all(m.source == MemorySource.INTERVIEW for m in loaded.memories)
        assert all(m.context == INTERVIEW_CONTEXT for m in loaded.memories)

    @pytest.mark.asyncio
    async def test_create_from_interview_without_backend(self, service, backend):
        backend.fail_with()
        history = [
            {"role": "user", "content": "fitness training"},
            {"role": "user", "content": "Ich will fitter werden"},
        ]

        created = await service.create_profile_from_interview("user-1", history)

        assert created.name == "Fitness Training"
        assert created.profile_data.goals == ["Ich will fitter werden"]

    @pytest.mark.asyncio
    async def test_interview_turn(self, service):
        turn = await service.interview_turn("sport", [])
        assert turn.text == "Mock-Antwort."
        assert turn.is_complete is False


class TestProfileLifecycle:
    @pytest.mark.asyncio
    async def test_recall_has_no_side_effects(self, service, profile):
        await service.profiles.add_memory(profile.id, "fact", "Läuft gern im Wald")

        found = await service.recall(profile.id, "wald")

        assert [m.content for m in found] == ["Läuft gern im Wald"]
        assert (await service.get_profile(profile.id)).memories[0].reference_count == 0

    @pytest.mark.asyncio
    async def test_recall_rejects_blank_query(self, service, profile):
        with pytest.raises(InvalidQuery):
            await service.recall(profile.id, "  ")

    @pytest.mark.asyncio
    async def test_delete_profile_removes_chats(self, service, profile, chat):
        assert await service.delete_profile(profile.id) is True

        with pytest.raises(ChatNotFoundError):
            await service.get_chat(chat.id)
        assert await service.list_profiles("user-1") == []

    @pytest.mark.asyncio
    async def test_create_chat_for_missing_profile(self, service):
        with pytest.raises(ProfileNotFoundError):
            await service.create_chat("missing")

    @pytest.mark.asyncio
    async def test_list_and_delete_chats(self, service, profile, chat):
        other = await service.create_chat(profile.id, title="Ernährung")

        assert {c.id for c in await service.list_chats(profile.id)} == {chat.id, other.id}
        assert other.title == "Ernährung"
        assert await service.delete_chat(other.id) is True
        assert [c.id for c in await service.list_chats(profile.id)] == [chat.id]

    @pytest.mark.asyncio
    async def test_chat_statistics_over_user_profiles(self, service, profile, chat, clock):
        other_profile = await service.create_profile("user-1", "Kochen", "Kochen")
        other_chat = await service.create_chat(other_profile.id)
        foreign = await service.create_profile("user-2", "Reisen", "Reisen")
        await service.send_message((await service.create_chat(foreign.id)).id, "Hallo")

        await service.send_message(chat.id, "Start")
        clock.advance(minutes=20)
        await service.send_message(chat.id, "Ende")
        await service.end_chat(chat.id)
        await service.send_message(other_chat.id, "Hallo")

        summary = await service.chat_statistics("user-1")

        assert summary.total_chats == 2
        assert summary.active_chats == 1
        assert summary.total_messages == 6
        assert summary.average_session_duration == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_chat_statistics_without_chats(self, service):
        summary = await service.chat_statistics("nobody")

        assert summary.total_chats == 0
        assert summary.average_quality is None


class TestQuickChat:
    @pytest.mark.asyncio
    async def test_returns_backend_text(self, service, backend):
        assert await service.quick_chat("Was ist ein Tempolauf?", user_name="Lena") == "Mock-Antwort."
        assert "Lena" in backend.last_messages[0]["content"]

    @pytest.mark.asyncio
    async def test_rejects_empty(self, service):
        with pytest.raises(InvalidInput):
            await service.quick_chat("")
