"""Prompt construction and backend calls with fallbacks.

The assembler turns a profile, its recalled memories and the recent chat
history into a backend request. Every public generation method returns text
even when the backend is unreachable: failures are logged and replaced by a
deterministic fallback reply.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

from loguru import logger

from .config import ContextConfig, ExtractionConfig
from .core.interfaces import CompletionOptions, LanguageModelBackend
from .core.models import Memory, Message, Profile, ProfileData
from .extraction import (
    ExtractedProfile,
    LLMProfileExtractor,
    ProfileExtractor,
    bound_profile,
    clean_profile_name,
)
from .profile.questions import next_question

ASSISTANT_NAME = "ALL-KI"

NONE_STATED_GOALS = "Keine spezifischen Ziele erwähnt"
NONE_STATED_PREFERENCES = "Keine spezifischen Vorlieben erwähnt"
NONE_STATED_CHALLENGES = "Keine spezifischen Herausforderungen erwähnt"
NONE_STATED_NOTES = "Keine zusätzlichen Informationen"
UNKNOWN = "Unbekannt"

INTERVIEW_COMPLETE_MARKERS = ("genug informationen", "interview abgeschlossen")

QUICK_FALLBACK = (
    "Entschuldigung, ich habe gerade technische Schwierigkeiten. "
    "Kannst du deine Frage später nochmal stellen?"
)

_PROMPT_ROLES = {"user", "assistant", "system"}


@dataclass
class AssembledContext:
    """A backend request split into system content and chat turns."""

    system_content: str
    messages: list[dict[str, str]] = field(default_factory=list)

    def to_messages(self) -> list[dict[str, str]]:
        """System message first, then the conversation turns."""
        return [{"role": "system", "content": self.system_content}, *self.messages]


@dataclass
class GeneratedReply:
    """Text returned to the user plus how it was produced."""

    text: str
    fallback: bool
    options: CompletionOptions
    response_time_ms: float = 0.0


@dataclass
class InterviewTurn:
    text: str
    is_complete: bool
    fallback: bool = False


def _as_prompt(message: Message | dict) -> dict[str, str] | None:
    if isinstance(message, Message):
        return message.to_prompt()
    role = message.get("role")
    content = message.get("content")
    if role not in _PROMPT_ROLES or not content:
        return None
    return {"role": role, "content": str(content)}


def _join_or(items: Sequence[str], empty: str) -> str:
    return ", ".join(items) if items else empty


class ContextAssembler:
    """Builds prompts and calls the language-model backend.

    Modes and their generation options (see :class:`ContextConfig`):

    * chat (``respond``): 600 tokens, temperature 0.7
    * quick (``quick_reply``): 500 tokens, temperature 0.7
    * interview (``interview``): 300 tokens, temperature 0.8
    * extraction (``extract_profile_data``): 400 tokens, temperature 0.3
    """

    def __init__(
        self,
        backend: LanguageModelBackend,
        config: ContextConfig | None = None,
        extraction_config: ExtractionConfig | None = None,
        extractor: ProfileExtractor | None = None,
    ):
        self._backend = backend
        self._config = config or ContextConfig()
        self._extraction_config = extraction_config or ExtractionConfig()
        self._extractor = extractor or LLMProfileExtractor(backend, self._extraction_config)

        logger.debug(
            f"ContextAssembler initialized: history_window={self._config.history_window}, "
            f"extractor={type(self._extractor).__name__}"
        )

    @property
    def chat_options(self) -> CompletionOptions:
        return CompletionOptions(
            max_tokens=self._config.chat_max_tokens,
            temperature=self._config.chat_temperature,
        )

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------

    @staticmethod
    def build_persona_block(
        profile: Profile,
        max_list_items: int = 5,
        max_item_chars: int = 200,
    ) -> str:
        """Describe the user's interest area; empty fields say so explicitly.

        Goals, preferences and challenges show at most *max_list_items*
        entries each (the most recent ones), every entry cut to
        *max_item_chars*.
        """
        data = profile.profile_data

        def listing(items: Sequence[str], empty: str) -> str:
            recent = items[-max_list_items:] if max_list_items > 0 else []
            return _join_or([item[:max_item_chars] for item in recent], empty)

        lines = [
            f"Profil: {profile.name} (Kategorie: {profile.category})",
            f"Ziele: {listing(data.goals, NONE_STATED_GOALS)}",
            f"Vorlieben: {listing(data.preferences, NONE_STATED_PREFERENCES)}",
            f"Herausforderungen: {listing(data.challenges, NONE_STATED_CHALLENGES)}",
            f"Erfahrung: {data.experience.value if data.experience else UNKNOWN}",
            f"Häufigkeit: {data.frequency.value if data.frequency else UNKNOWN}",
            f"Zusatzinfos: {data.notes or NONE_STATED_NOTES}",
        ]
        for custom in data.custom_fields:
            lines.append(f"{custom.key}: {custom.value}")
        return "\n".join(lines)

    @staticmethod
    def format_memories(memories: Sequence[Memory]) -> str:
        if not memories:
            return ""
        lines = ["Relevante Erinnerungen:"]
        for memory in memories:
            line = f"- [{memory.type.value}] {memory.content}"
            if memory.context:
                line += f" ({memory.context})"
            lines.append(line)
        return "\n".join(lines)

    def assemble(
        self,
        user_message: str,
        profile: Profile,
        recent_messages: Sequence[Message | dict] = (),
        memories: Sequence[Memory] | None = None,
    ) -> AssembledContext:
        """Build the chat-mode request.

        Order: persona block, memories block (if any), the last
        ``history_window`` recent messages, then the new user message.
        """
        sections = [
            f"Du bist {ASSISTANT_NAME}, ein personalisierter Assistent für den Nutzer.",
            "Kontext über den Nutzer:\n"
            + self.build_persona_block(
                profile,
                max_list_items=self._extraction_config.max_list_items,
                max_item_chars=self._extraction_config.max_item_chars,
            ),
            "Nutze diese Informationen, um personalisierte, relevante und hilfreiche "
            "Antworten zu geben. Baue auf den Zielen und Vorlieben auf und hilf bei "
            "den Herausforderungen.",
        ]
        memory_block = self.format_memories(memories or [])
        if memory_block:
            sections.append(memory_block)
        sections.append(
            "Antworte freundlich, hilfreich und auf Deutsch. Halte deine Antworten "
            "präzise aber informativ. Stelle gelegentlich Rückfragen, um das Profil "
            "noch besser zu verstehen."
        )

        window = self._config.history_window
        history = list(recent_messages)[-window:] if window > 0 else []
        turns = [p for p in (_as_prompt(m) for m in history) if p is not None]
        turns.append({"role": "user", "content": user_message})

        return AssembledContext(system_content="\n\n".join(sections), messages=turns)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def fallback_reply(self, profile: Profile) -> str:
        return (
            f"Als dein {profile.name}-Assistent kann ich dir gerade leider nicht "
            "ausführlich antworten, weil ich technische Probleme habe. "
            f"Erzähl mir gerne mehr über deine Ziele im Bereich {profile.category}, "
            "dann mache ich gleich weiter."
        )

    async def _complete_or_fallback(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
        fallback_text: str,
        mode: str,
    ) -> GeneratedReply:
        started = time.perf_counter()
        try:
            text = await self._backend.complete(messages, options)
        except Exception as e:
            elapsed = (time.perf_counter() - started) * 1000
            logger.error(f"Backend call failed in {mode} mode after {elapsed:.0f}ms: {e}")
            return GeneratedReply(fallback_text, True, options, elapsed)

        elapsed = (time.perf_counter() - started) * 1000
        if not text or not text.strip():
            logger.warning(f"Backend returned empty {mode} reply, using fallback")
            return GeneratedReply(fallback_text, True, options, elapsed)

        logger.debug(f"{mode} reply generated in {elapsed:.0f}ms ({len(text)} chars)")
        return GeneratedReply(text.strip(), False, options, elapsed)

    async def generate_reply(
        self,
        user_message: str,
        profile: Profile,
        recent_messages: Sequence[Message | dict] = (),
        memories: Sequence[Memory] | None = None,
    ) -> GeneratedReply:
        """Like :meth:`respond` but also reports fallback use and latency."""
        context = self.assemble(user_message, profile, recent_messages, memories)
        return await self._complete_or_fallback(
            context.to_messages(),
            self.chat_options,
            self.fallback_reply(profile),
            mode="chat",
        )

    async def respond(
        self,
        user_message: str,
        profile: Profile,
        recent_messages: Sequence[Message | dict] = (),
        memories: Sequence[Memory] | None = None,
    ) -> str:
        """Generate the persona's reply. Never raises on backend failure."""
        reply = await self.generate_reply(user_message, profile, recent_messages, memories)
        return reply.text

    async def quick_reply(self, message: str, user_name: str | None = None) -> str:
        """Profile-less answer for one-off questions."""
        system = (
            f"Du bist {ASSISTANT_NAME}, ein smarter und hilfsbereiter Alltagsassistent. "
            "Du hilfst Benutzern bei verschiedenen Aufgaben und beantwortest Fragen "
            "freundlich und präzise. Antworte auf Deutsch und halte deine Antworten "
            "informativ aber nicht zu lang."
        )
        if user_name:
            system += f"\nDer Benutzer heißt {user_name}."

        options = CompletionOptions(
            max_tokens=self._config.quick_max_tokens,
            temperature=self._config.quick_temperature,
        )
        reply = await self._complete_or_fallback(
            [{"role": "system", "content": system}, {"role": "user", "content": message}],
            options,
            QUICK_FALLBACK,
            mode="quick",
        )
        return reply.text

    # ------------------------------------------------------------------
    # Interview
    # ------------------------------------------------------------------

    def _interview_prompt(self, profile_name: str, profile_data: ProfileData | None) -> str:
        known = (
            profile_data.model_dump_json(exclude_defaults=True)
            if profile_data is not None
            else "Neues Profil wird erstellt"
        )
        return (
            f"Du bist ein intelligenter Profil-Interview-Assistent von {ASSISTANT_NAME}.\n\n"
            "ZIEL: Sammle Informationen für ein personalisiertes KI-Profil basierend "
            "auf dem User-Input.\n\n"
            "VERHALTEN:\n"
            "1. ERSTE ANTWORT: Bestätige den Profilnamen (EXAKT wie User eingegeben, "
            "nur Rechtschreibung korrigieren) und stelle eine spezifische Frage\n"
            "2. FOLGENDE FRAGEN: Baue auf vorherigen Antworten auf\n"
            "3. ERKENNE: Ziele, Vorlieben, Herausforderungen, Erfahrungslevel, Häufigkeit\n\n"
            "WICHTIG:\n"
            "- Stelle nur EINE kurze, spezifische Frage pro Antwort\n"
            "- Nach 4-5 relevanten Fragen sage: \"Vielen Dank! Ich habe genug "
            f"Informationen für dein personalisiertes '{profile_name}' Profil gesammelt.\"\n\n"
            f"Profil-Context: {known}"
        )

    def is_interview_complete(self, reply: str, history_length: int) -> bool:
        lowered = reply.lower()
        if any(marker in lowered for marker in INTERVIEW_COMPLETE_MARKERS):
            return True
        return history_length >= self._config.interview_complete_after

    async def interview(
        self,
        message: str,
        history: Sequence[dict[str, str]] = (),
        profile_data: ProfileData | None = None,
    ) -> InterviewTurn:
        """Ask the next interview question.

        The profile name is the first user message of the interview (or the
        current message when the interview just started).
        """
        first_user = next(
            (m.get("content", "") for m in history if m.get("role") == "user"),
            message,
        )
        profile_name = clean_profile_name(first_user) or "Profil"

        turns = [p for p in (_as_prompt(m) for m in history) if p is not None]
        messages = [
            {"role": "system", "content": self._interview_prompt(profile_name, profile_data)},
            *turns,
            {"role": "user", "content": message},
        ]
        options = CompletionOptions(
            max_tokens=self._config.interview_max_tokens,
            temperature=self._config.interview_temperature,
        )

        asked = sum(1 for m in history if m.get("role") == "assistant")
        fallback = (
            f"Super! Ich erstelle ein '{profile_name}' Profil für dich. "
            f"{next_question(profile_name.split(' ')[0], asked)}"
        )
        reply = await self._complete_or_fallback(messages, options, fallback, mode="interview")

        return InterviewTurn(
            text=reply.text,
            is_complete=self.is_interview_complete(reply.text, len(history)),
            fallback=reply.fallback,
        )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def extract_profile_data(self, history: Sequence[dict[str, str]]) -> ExtractedProfile:
        """Structured profile fields from an interview, bounded in size."""
        extracted = await self._extractor.extract(history)
        bounded = bound_profile(extracted, self._extraction_config)
        logger.info(
            f"Extracted profile {bounded.name!r} (category {bounded.category!r}) "
            f"via {bounded.source}: {len(bounded.goals)} goals, "
            f"{len(bounded.preferences)} preferences, {len(bounded.challenges)} challenges"
        )
        return bounded
