"""Persona Service - facade over the persona engine.

This is the entry point consuming applications use. It wires the document
store, the language-model backend and the engine components together and
runs each operation as one locked read-modify-write of the profile.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from loguru import logger

from .config import EngineConfig
from .context_assembler import ContextAssembler, InterviewTurn
from .conversation import (
    ConversationAggregator,
    add_feedback,
    append_message,
    archive_chat,
)
from .core.exceptions import ChatNotFoundError, InvalidInput
from .core.interfaces import DocumentStore, LanguageModelBackend
from .core.models import (
    MEMORY_CONTENT_MAX_CHARS,
    MESSAGE_CONTENT_MAX_CHARS,
    Chat,
    ChatStatus,
    ChatSummary,
    Memory,
    MemorySource,
    MemoryType,
    Message,
    MessageFeedback,
    MessageMetadata,
    Profile,
    ProfileData,
)
from .extraction import ExtractedProfile
from .memory.keywords import KeywordExtractor
from .memory.retriever import MemoryRetriever
from .memory.store import MemoryStore
from .personality import PersonalityLedger
from .profile.manager import ProfileManager

CONVERSATION_CONTEXT = "Extracted from conversation"
INTERVIEW_CONTEXT = "Aus dem Profil-Interview"

# importance of memories seeded from the interview
INTERVIEW_IMPORTANCE = {
    MemoryType.GOAL: 0.7,
    MemoryType.PREFERENCE: 0.6,
    MemoryType.CONCERN: 0.6,
}
FEEDBACK_IMPORTANCE = 0.7


@dataclass
class ChatTurn:
    """Result of one user message: both messages and what was recalled."""

    chat: Chat
    user_message: Message
    assistant_message: Message
    memories_used: list[Memory] = field(default_factory=list)
    fallback: bool = False


def _check_message(content: str) -> str:
    if content is None or not content.strip():
        raise InvalidInput("content", "message must not be empty")
    if len(content) > MESSAGE_CONTENT_MAX_CHARS:
        raise InvalidInput(
            "content",
            f"{len(content)} chars exceeds limit of {MESSAGE_CONTENT_MAX_CHARS}",
        )
    return content


class PersonaService:
    """Persona engine facade.

    Provides:
    - Interview-driven profile creation (LLM extraction with heuristic fallback)
    - Chat turns with memory recall, fallback replies and keyword learning
    - Feedback handling (satisfaction, personality audit trail, feedback memories)
    - Session closing (archive + average session length)
    """

    def __init__(
        self,
        store: DocumentStore,
        backend: LanguageModelBackend,
        config: EngineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        assembler: ContextAssembler | None = None,
    ):
        """
        Args:
            store: Document store for profiles and chats
            backend: Language-model backend
            config: Engine configuration (defaults if not provided)
            clock: Time source (tests pin it)
            assembler: Pre-built assembler (defaults to one on *backend*)
        """
        self.config = config or EngineConfig()
        self._store = store
        self._backend = backend
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._profiles = ProfileManager(store, self.config.memory, clock=self._clock)
        self._assembler = assembler or ContextAssembler(
            backend,
            config=self.config.context,
            extraction_config=self.config.extraction,
        )
        self._aggregator = ConversationAggregator()
        self._keywords = KeywordExtractor()

        logger.info(
            f"PersonaService initialized: store={type(store).__name__}, "
            f"backend={type(backend).__name__}"
        )

    @classmethod
    def from_config(cls, config: EngineConfig | None = None) -> "PersonaService":
        """Service on a JSON store and the OpenAI-compatible backend."""
        from .llm.openai_backend import OpenAIChatBackend
        from .storage.json_store import JsonDocumentStore

        config = config or EngineConfig.from_env()
        store = JsonDocumentStore(
            config.storage.base_path,
            create_backup=config.storage.create_backup,
            pretty_print=config.storage.pretty_print,
        )
        return cls(store, OpenAIChatBackend(config.llm), config=config)

    @property
    def profiles(self) -> ProfileManager:
        return self._profiles

    @property
    def assembler(self) -> ContextAssembler:
        return self._assembler

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def interview_turn(
        self,
        message: str,
        history: Sequence[dict[str, str]] = (),
        profile_data: ProfileData | None = None,
    ) -> InterviewTurn:
        _check_message(message)
        return await self._assembler.interview(message, history, profile_data)

    async def create_profile(
        self,
        user_id: str,
        name: str,
        category: str,
        profile_data: ProfileData | None = None,
    ) -> Profile:
        return await self._profiles.create_profile(user_id, name, category, profile_data)

    async def create_profile_from_interview(
        self,
        user_id: str,
        history: Sequence[dict[str, str]],
    ) -> Profile:
        """Extract profile data from an interview and create the profile.

        Extracted goals, preferences and challenges are also stored as
        interview memories so they take part in recall.
        """
        extracted = await self._assembler.extract_profile_data(history)
        profile = await self._profiles.create_profile(
            user_id,
            extracted.name,
            extracted.category,
            extracted.to_profile_data(),
        )

        async with self._profiles.acquire_profile(profile.id) as locked:
            self._seed_interview_memories(self._profiles.memories(locked), extracted)
            profile = locked

        logger.info(
            f"Profile {profile.id} created from interview via {extracted.source} "
            f"({len(profile.memories)} memories seeded)"
        )
        return profile

    @staticmethod
    def _seed_interview_memories(store: MemoryStore, extracted: ExtractedProfile) -> None:
        seeds = (
            (MemoryType.GOAL, extracted.goals),
            (MemoryType.PREFERENCE, extracted.preferences),
            (MemoryType.CONCERN, extracted.challenges),
        )
        for memory_type, items in seeds:
            for item in items:
                store.add(
                    memory_type,
                    item[:MEMORY_CONTENT_MAX_CHARS],
                    importance=INTERVIEW_IMPORTANCE[memory_type],
                    source=MemorySource.INTERVIEW,
                    context=INTERVIEW_CONTEXT,
                )

    async def get_profile(self, profile_id: str) -> Profile:
        return await self._profiles.get_profile(profile_id)

    async def list_profiles(self, user_id: str | None = None) -> list[Profile]:
        return await self._profiles.list_profiles(user_id)

    async def delete_profile(self, profile_id: str) -> bool:
        return await self._profiles.delete_profile(profile_id)

    async def recall(
        self,
        profile_id: str,
        query: str,
        limit: int | None = None,
    ) -> list[Memory]:
        """Ranked memories of a profile for *query* (no reference bump)."""
        profile = await self._profiles.get_profile(profile_id)
        retriever = MemoryRetriever(profile.memories, self.config.retrieval, self._keywords)
        return retriever.relevant(query, limit=limit, now=self._clock())

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def create_chat(self, profile_id: str, title: str | None = None) -> Chat:
        profile = await self._profiles.get_profile(profile_id)
        now = self._clock()
        chat = Chat(profile_id=profile.id, user_id=profile.user_id, created_at=now, updated_at=now)
        if title and title.strip():
            chat.title = title.strip()[:200]
        await self._store.save_chat(chat)
        logger.info(f"Chat {chat.id} created for profile {profile.id}")
        return chat

    async def get_chat(self, chat_id: str) -> Chat:
        chat = await self._store.load_chat(chat_id)
        if chat is None:
            raise ChatNotFoundError(chat_id)
        return chat

    async def list_chats(self, profile_id: str) -> list[Chat]:
        return await self._store.list_chats(profile_id)

    async def delete_chat(self, chat_id: str) -> bool:
        return await self._store.delete_chat(chat_id)

    async def chat_statistics(self, user_id: str) -> ChatSummary:
        """Totals and averages over every chat of every profile of *user_id*."""
        chats: list[Chat] = []
        for profile in await self._profiles.list_profiles(user_id):
            chats.extend(await self._store.list_chats(profile.id))
        return self._aggregator.summarize(chats)

    async def send_message(self, chat_id: str, content: str) -> ChatTurn:
        """Run one chat turn.

        Steps, all under the profile lock: append the user message, recall
        memories, generate the reply (fallback on backend failure), append
        it with its latency, learn from the user message, bump referenced
        memories, update profile stats, save chat and profile.

        Raises:
            InvalidInput: empty or oversized message, or the chat is archived
            ChatNotFoundError: unknown chat
            ProfileNotFoundError: the chat's profile no longer exists
        """
        _check_message(content)
        profile_id = (await self.get_chat(chat_id)).profile_id

        async with self._profiles.acquire_profile(profile_id) as profile:
            # reload under the lock so concurrent turns see each other's messages
            chat = await self.get_chat(chat_id)
            if chat.status == ChatStatus.ARCHIVED:
                raise InvalidInput("chat_id", f"chat {chat_id} is archived")
            is_first_turn = not chat.messages
            history = list(chat.messages)

            now = self._clock()
            user_message = append_message(
                chat, "user", content, timestamp=now, aggregator=self._aggregator
            )

            retriever = MemoryRetriever(profile.memories, self.config.retrieval, self._keywords)
            memories = retriever.relevant_for_message(content, now=now)

            reply = await self._assembler.generate_reply(content, profile, history, memories)

            assistant_message = append_message(
                chat,
                "assistant",
                reply.text,
                metadata=MessageMetadata(
                    response_time_ms=reply.response_time_ms,
                    model=getattr(self._backend, "model", None),
                    temperature=reply.options.temperature,
                ),
                timestamp=self._clock(),
                aggregator=self._aggregator,
            )

            store = self._profiles.memories(profile)
            store.mark_referenced(memories, now=now)
            self._learn_from_message(profile, store, content)

            profile.stats.total_messages += 2
            profile.stats.last_used_at = now
            if is_first_turn:
                profile.stats.total_conversations += 1

            await self._store.save_chat(chat)

        logger.info(
            f"Chat turn in {chat.id}: {len(memories)} memories used, "
            f"fallback={reply.fallback}, quality={chat.quality.score:.2f}"
        )
        return ChatTurn(
            chat=chat,
            user_message=user_message,
            assistant_message=assistant_message,
            memories_used=memories,
            fallback=reply.fallback,
        )

    def _learn_from_message(self, profile: Profile, store: MemoryStore, text: str) -> None:
        """File keyword matches into profile data and memories (no duplicates).

        Each profile-data list keeps only its newest ``max_list_items``
        entries.
        """
        limits = self.config.extraction
        for hit in self._keywords.classify(text, max_chars=limits.max_item_chars):
            entries: list[str] = getattr(profile.profile_data, hit.category.profile_field)
            if hit.text in entries:
                continue
            entries.append(hit.text)
            del entries[: -limits.max_list_items]
            store.add(
                hit.category.memory_type,
                hit.text,
                importance=hit.category.importance,
                source=MemorySource.CONVERSATION,
                context=CONVERSATION_CONTEXT,
            )
            logger.debug(f"Learned {hit.category.name} from message: {hit.text[:40]!r}")

    async def record_feedback(
        self,
        chat_id: str,
        message_id: str,
        feedback: MessageFeedback,
    ) -> Message:
        """Store feedback on a message and let the profile learn from it.

        Raises:
            ChatNotFoundError: unknown chat
            MessageNotFoundError: unknown message in that chat
        """
        profile_id = (await self.get_chat(chat_id)).profile_id

        async with self._profiles.acquire_profile(profile_id) as profile:
            chat = await self.get_chat(chat_id)
            message = add_feedback(chat, message_id, feedback, aggregator=self._aggregator)
            self._aggregator.record_satisfaction(profile.stats, feedback)

            comment = feedback.comment.strip()
            if comment:
                PersonalityLedger(profile, clock=self._clock).record_feedback(
                    comment, context=f"Chat: {chat.title}"
                )
                self._profiles.memories(profile).add(
                    MemoryType.FEEDBACK,
                    comment[:MEMORY_CONTENT_MAX_CHARS],
                    importance=FEEDBACK_IMPORTANCE,
                    source=MemorySource.FEEDBACK,
                    context=message.content[:100],
                )

            await self._store.save_chat(chat)

        return message

    async def end_chat(self, chat_id: str) -> Chat:
        """Archive a chat and fold its duration into the session average."""
        profile_id = (await self.get_chat(chat_id)).profile_id

        async with self._profiles.acquire_profile(profile_id) as profile:
            chat = await self.get_chat(chat_id)
            if chat.status == ChatStatus.ARCHIVED:
                return chat

            archive_chat(chat, now=self._clock())
            self._aggregator.record_session(profile.stats, chat.stats)
            await self._store.save_chat(chat)

        logger.info(
            f"Chat {chat.id} archived after {chat.stats.session_duration_minutes} min; "
            f"profile average now {profile.stats.average_session_length:.1f} min"
        )
        return chat

    async def quick_chat(self, message: str, user_name: str | None = None) -> str:
        """One-off answer without a profile or chat."""
        _check_message(message)
        return await self._assembler.quick_reply(message, user_name)
