"""Profile-data extraction from an interview transcript.

Two extractors share the :class:`ProfileExtractor` interface:

* **LLM** -- asks the language-model backend to summarize the whole
  conversation as a JSON object and parses it.
* **Heuristic** -- deterministic keyword matching over the user messages.

The LLM extractor falls back to the heuristic one whenever the backend
fails or its output cannot be parsed, so extraction never raises.
"""

from __future__ import annotations

import json
import re
from typing import Any, Literal, Protocol, Sequence

from loguru import logger
from pydantic import BaseModel, Field

from .config import ExtractionConfig
from .core.exceptions import MalformedBackendOutput
from .core.interfaces import CompletionOptions, LanguageModelBackend
from .core.models import ExperienceLevel, Frequency, ProfileData
from .memory.keywords import CHALLENGES, GOALS, PREFERENCES, KeywordExtractor

DEFAULT_PROFILE_NAME = "Neues Profil"
DEFAULT_CATEGORY = "Allgemein"
HEURISTIC_NOTES = "Profil basierend auf Gesprächsanalyse erstellt"

EXTRACTION_SYSTEM_PROMPT = """\
Analysiere das folgende Interview und extrahiere strukturierte Profildaten.

WICHTIG für "name" und "category":
- Der "name" soll dem ursprünglichen User-Input sehr ähnlich sein \
(nur Rechtschreibung/Großschreibung korrigieren)
- Die "category" soll eine bereinigte, kurze Version des Namens sein
- Beispiele:
  - User sagt "sport" → name: "Sport", category: "Sport"
  - User sagt "kochen lernen" → name: "Kochen Lernen", category: "Kochen"
  - User sagt "fitness training" → name: "Fitness Training", category: "Fitness"

EXTRAHIERE aus dem Gespräch:
- goals: Konkrete Ziele die erwähnt wurden
- preferences: Was der User mag, bevorzugt oder gerne macht
- challenges: Schwierigkeiten oder Herausforderungen
- frequency: Wie oft sich der User damit beschäftigt (täglich/wöchentlich/monatlich/selten)
- experience: Erfahrungslevel (Anfänger/Fortgeschritten/Experte)
- notes: Wichtige Zusatzinfos oder Kontext

FORMAT (EXAKT so ausgeben):
{
  "name": "...",
  "category": "...",
  "goals": ["..."],
  "preferences": ["..."],
  "challenges": ["..."],
  "frequency": "...",
  "experience": "...",
  "notes": "..."
}

Antworte NUR mit dem JSON-Objekt, keine zusätzlichen Erklärungen oder Markdown.
"""

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


class ExtractedProfile(BaseModel):
    """Structured profile fields recovered from a conversation."""

    name: str = DEFAULT_PROFILE_NAME
    category: str = DEFAULT_CATEGORY
    goals: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    experience: ExperienceLevel | None = None
    frequency: Frequency | None = None
    notes: str = ""
    source: Literal["llm", "heuristic"] = "llm"

    def to_profile_data(self) -> ProfileData:
        return ProfileData(
            goals=list(self.goals),
            preferences=list(self.preferences),
            challenges=list(self.challenges),
            experience=self.experience,
            frequency=self.frequency,
            notes=self.notes,
        )


class ProfileExtractor(Protocol):
    """Turns an interview transcript into structured profile fields."""

    async def extract(self, history: Sequence[dict[str, str]]) -> ExtractedProfile:
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def clean_profile_name(text: str) -> str:
    """Capitalize every word: "kochen lernen" -> "Kochen Lernen"."""
    words = [w for w in text.strip().split(" ") if w]
    return " ".join(w[:1].upper() + w[1:].lower() for w in words)


def _user_messages(history: Sequence[dict[str, str]]) -> list[str]:
    return [
        str(m.get("content", ""))
        for m in history
        if m.get("role") == "user" and m.get("content")
    ]


def strip_wrapping(raw: str) -> str:
    """Remove markdown fences and any prose around the JSON object."""
    text = _FENCE.sub("", raw).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        text = text[start : end + 1]
    return text


def parse_profile_json(raw: str) -> dict[str, Any]:
    """Parse backend output into a dict.

    Raises:
        MalformedBackendOutput: not JSON, or not a JSON object
    """
    text = strip_wrapping(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedBackendOutput(f"extraction output is not JSON: {e}", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedBackendOutput(
            f"extraction expected JSON object, got {type(data).__name__}", raw=raw
        )
    return data


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _cut(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit].rstrip()


def bound_profile(profile: ExtractedProfile, config: ExtractionConfig) -> ExtractedProfile:
    """Cap list lengths and text lengths so nothing oversized reaches storage."""

    def cap_list(items: list[str]) -> list[str]:
        return [_cut(item, config.max_item_chars) for item in items[: config.max_list_items]]

    name = _cut(profile.name, config.max_name_chars) or DEFAULT_PROFILE_NAME
    category = _cut(profile.category, config.max_category_chars) or _cut(
        name, config.max_category_chars
    )
    return profile.model_copy(
        update={
            "name": name,
            "category": category,
            "goals": cap_list(profile.goals),
            "preferences": cap_list(profile.preferences),
            "challenges": cap_list(profile.challenges),
            "notes": _cut(profile.notes, config.max_notes_chars),
        }
    )


# ---------------------------------------------------------------------------
# Extractors
# ---------------------------------------------------------------------------


class HeuristicProfileExtractor:
    """Deterministic extraction from user messages.

    The first user message becomes the profile name (title-cased) and its
    first word the category. Goal, preference and challenge lists collect the
    user sentences that contain one of the category keywords.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        keyword_extractor: KeywordExtractor | None = None,
    ):
        self._config = config or ExtractionConfig()
        self._keywords = keyword_extractor or KeywordExtractor()

    def extract_sync(self, history: Sequence[dict[str, str]]) -> ExtractedProfile:
        user_texts = _user_messages(history)
        first = user_texts[0].strip() if user_texts else ""

        name = clean_profile_name(first) if first else DEFAULT_PROFILE_NAME
        category = (
            name.split(" ")[0][: self._config.heuristic_category_chars]
            if first
            else DEFAULT_CATEGORY
        )

        def collect(category_keywords) -> list[str]:
            return self._keywords.collect(
                user_texts,
                category_keywords,
                limit=self._config.max_list_items,
                max_chars=self._config.heuristic_item_chars,
            )

        return ExtractedProfile(
            name=name,
            category=category,
            goals=collect(GOALS),
            preferences=collect(PREFERENCES),
            challenges=collect(CHALLENGES),
            experience=ExperienceLevel.BEGINNER,
            frequency=Frequency.WEEKLY,
            notes=HEURISTIC_NOTES,
            source="heuristic",
        )

    async def extract(self, history: Sequence[dict[str, str]]) -> ExtractedProfile:
        return self.extract_sync(history)


class LLMProfileExtractor:
    """Backend-driven extraction with heuristic fallback."""

    def __init__(
        self,
        backend: LanguageModelBackend,
        config: ExtractionConfig | None = None,
        fallback: HeuristicProfileExtractor | None = None,
    ):
        self._backend = backend
        self._config = config or ExtractionConfig()
        self._fallback = fallback or HeuristicProfileExtractor(self._config)

    async def extract(self, history: Sequence[dict[str, str]]) -> ExtractedProfile:
        transcript = "\n".join(
            f"{m.get('role', 'user')}: {m.get('content', '')}" for m in history
        )
        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": transcript},
        ]
        options = CompletionOptions(
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
        )

        try:
            raw = await self._backend.complete(messages, options)
            data = parse_profile_json(raw)
        except MalformedBackendOutput as e:
            logger.warning(f"Profile extraction output unusable, using heuristics: {e}")
            logger.debug(f"Raw response: {e.raw[:500]}")
            return self._fallback.extract_sync(history)
        except Exception as e:
            logger.error(f"Profile extraction call failed, using heuristics: {e}")
            return self._fallback.extract_sync(history)

        return self._from_data(data)

    @staticmethod
    def _from_data(data: dict[str, Any]) -> ExtractedProfile:
        name = _string(data.get("name")) or DEFAULT_PROFILE_NAME
        category = _string(data.get("category")) or name
        return ExtractedProfile(
            name=name,
            category=category,
            goals=_string_list(data.get("goals")),
            preferences=_string_list(data.get("preferences")),
            challenges=_string_list(data.get("challenges")),
            experience=ExperienceLevel.from_label(_string(data.get("experience"))),
            frequency=Frequency.from_label(_string(data.get("frequency"))),
            notes=_string(data.get("notes")),
            source="llm",
        )
