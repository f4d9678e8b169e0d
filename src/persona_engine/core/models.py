"""Persona engine data models.

Profiles own their memories, personality and statistics. Chats are stored
as separate documents keyed by profile id. Every model is a pydantic model so
that documents round-trip through ``model_dump(mode="json")`` /
``model_validate``.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Current document schema version
SCHEMA_VERSION = 1

MEMORY_CONTENT_MAX_CHARS = 500
MESSAGE_CONTENT_MAX_CHARS = 10000
DEFAULT_CHAT_TITLE = "Neuer Chat"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MemoryType(str, Enum):
    PREFERENCE = "preference"
    FACT = "fact"
    GOAL = "goal"
    FEEDBACK = "feedback"
    CONTEXT = "context"
    PATTERN = "pattern"
    CONVERSATION = "conversation"
    ACHIEVEMENT = "achievement"
    CONCERN = "concern"
    INSIGHT = "insight"


class MemorySource(str, Enum):
    CONVERSATION = "conversation"
    INTERVIEW = "interview"
    FEEDBACK = "feedback"
    ANALYSIS = "analysis"


class ExperienceLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"

    @classmethod
    def from_label(cls, value: str | None) -> ExperienceLevel | None:
        """Parse an English value or a German label (case-insensitive)."""
        if not value:
            return None
        label = value.strip().lower()
        for level in cls:
            if level.value == label:
                return level
        return _EXPERIENCE_LABELS.get(label)


_EXPERIENCE_LABELS = {
    "anfänger": ExperienceLevel.BEGINNER,
    "einsteiger": ExperienceLevel.BEGINNER,
    "fortgeschritten": ExperienceLevel.INTERMEDIATE,
    "mittel": ExperienceLevel.INTERMEDIATE,
    "experte": ExperienceLevel.EXPERT,
    "profi": ExperienceLevel.EXPERT,
}


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    RARE = "rare"

    @classmethod
    def from_label(cls, value: str | None) -> Frequency | None:
        """Parse an English value or a German label (case-insensitive)."""
        if not value:
            return None
        label = value.strip().lower()
        for freq in cls:
            if freq.value == label:
                return freq
        return _FREQUENCY_LABELS.get(label)


_FREQUENCY_LABELS = {
    "täglich": Frequency.DAILY,
    "jeden tag": Frequency.DAILY,
    "wöchentlich": Frequency.WEEKLY,
    "regelmäßig": Frequency.WEEKLY,
    "monatlich": Frequency.MONTHLY,
    "selten": Frequency.RARE,
    "gelegentlich": Frequency.RARE,
}


class PersonalityRole(str, Enum):
    COACH = "coach"
    ANALYST = "analyst"
    CREATIVE = "creative"
    MENTOR = "mentor"
    FRIEND = "friend"
    EXPERT = "expert"
    ASSISTANT = "assistant"


class ChatStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class CustomField(BaseModel):
    """A user-defined profile attribute with an explicit type tag."""

    key: str = Field(min_length=1, max_length=50)
    value: str = Field(max_length=500)
    field_type: Literal["text", "number", "list"] = "text"

    @model_validator(mode="after")
    def _check_declared_type(self) -> CustomField:
        if self.field_type == "number":
            try:
                float(self.value)
            except ValueError as e:
                raise ValueError(
                    f"custom field {self.key!r} is declared as number "
                    f"but has value {self.value!r}"
                ) from e
        return self

    def typed_value(self) -> str | float | list[str]:
        if self.field_type == "number":
            return float(self.value)
        if self.field_type == "list":
            return [item.strip() for item in self.value.split(",") if item.strip()]
        return self.value


class ProfileData(BaseModel):
    """What the persona knows about the user's interest area."""

    goals: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    challenges: list[str] = Field(default_factory=list)
    experience: ExperienceLevel | None = None
    frequency: Frequency | None = None
    notes: str = ""
    custom_fields: list[CustomField] = Field(default_factory=list)

    @field_validator("experience", mode="before")
    @classmethod
    def _parse_experience(cls, value):
        if value is None or isinstance(value, ExperienceLevel):
            return value
        return ExperienceLevel.from_label(str(value))

    @field_validator("frequency", mode="before")
    @classmethod
    def _parse_frequency(cls, value):
        if value is None or isinstance(value, Frequency):
            return value
        return Frequency.from_label(str(value))


class CommunicationStyle(BaseModel):
    formality: float = Field(default=0.5, ge=0.0, le=1.0)  # 0=casual, 1=formal
    enthusiasm: float = Field(default=0.7, ge=0.0, le=1.0)
    directness: float = Field(default=0.6, ge=0.0, le=1.0)
    supportiveness: float = Field(default=0.8, ge=0.0, le=1.0)


class Trait(BaseModel):
    name: str
    strength: float = Field(default=0.5, ge=0.0, le=1.0)


class PersonalityEvolutionEvent(BaseModel):
    """One entry of the append-only personality audit trail."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)
    change: str
    reason: str = ""


class Personality(BaseModel):
    role: PersonalityRole = PersonalityRole.ASSISTANT
    communication_style: CommunicationStyle = Field(default_factory=CommunicationStyle)
    traits: list[Trait] = Field(default_factory=list)
    evolution_history: list[PersonalityEvolutionEvent] = Field(default_factory=list)


class Memory(BaseModel):
    """A retained fact or observation used to personalize responses."""

    id: str = Field(default_factory=_uuid)
    type: MemoryType
    content: str = Field(min_length=1, max_length=MEMORY_CONTENT_MAX_CHARS)
    context: str | None = None
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    source: MemorySource = MemorySource.CONVERSATION
    created_at: datetime = Field(default_factory=_utcnow)
    last_referenced_at: datetime = Field(default_factory=_utcnow)
    reference_count: int = Field(default=0, ge=0)


class ProfileStats(BaseModel):
    total_conversations: int = 0
    total_messages: int = 0
    average_session_length: float = 0.0  # minutes
    last_used_at: datetime = Field(default_factory=_utcnow)
    satisfaction_score: float = Field(default=0.5, ge=0.0, le=1.0)
    evolution_count: int = 0
    sessions_recorded: int = 0
    feedback_count: int = 0


class Profile(BaseModel):
    """An AI persona owned by exactly one user."""

    id: str = Field(default_factory=_uuid)
    user_id: str
    name: str = Field(min_length=1, max_length=100)
    category: str = Field(min_length=1, max_length=50)
    profile_data: ProfileData = Field(default_factory=ProfileData)
    personality: Personality = Field(default_factory=Personality)
    memories: list[Memory] = Field(default_factory=list)
    stats: ProfileStats = Field(default_factory=ProfileStats)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    schema_version: int = SCHEMA_VERSION

    @field_validator("name", "category", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    def format_for_context(self) -> str:
        """Compact one-line description used in log output and prompts."""
        parts = [f"Profil: {self.name}", f"Kategorie: {self.category}"]
        if self.profile_data.experience:
            parts.append(f"Erfahrung: {self.profile_data.experience.value}")
        parts.append(f"Erinnerungen: {len(self.memories)}")
        return " | ".join(parts)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class MessageFeedback(BaseModel):
    helpful: bool | None = None
    rating: int | None = Field(default=None, ge=1, le=5)
    comment: str = Field(default="", max_length=500)


class MessageMetadata(BaseModel):
    token_count: int = 0
    response_time_ms: float | None = None
    model: str | None = None
    temperature: float | None = None


class Message(BaseModel):
    """A single chat message."""

    id: str = Field(default_factory=_uuid)
    role: Literal["user", "assistant", "system"]
    content: str = Field(min_length=1, max_length=MESSAGE_CONTENT_MAX_CHARS)
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: MessageMetadata = Field(default_factory=MessageMetadata)
    feedback: MessageFeedback | None = None

    @model_validator(mode="after")
    def _default_token_count(self) -> Message:
        if not self.metadata.token_count:
            # Rough estimate: 4 chars per token
            self.metadata.token_count = math.ceil(len(self.content) / 4)
        return self

    def to_prompt(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


class ChatStats(BaseModel):
    message_count: int = 0
    user_message_count: int = 0
    assistant_message_count: int = 0
    total_tokens: int = 0
    average_response_time_ms: float = 0.0
    session_duration_minutes: int = 0
    last_activity: datetime | None = None


class QualityAssessment(BaseModel):
    score: float = Field(default=0.5, ge=0.0, le=1.0)
    factors: list[str] = Field(default_factory=list)


class Chat(BaseModel):
    """An ordered conversation between the user and one profile."""

    id: str = Field(default_factory=_uuid)
    profile_id: str
    user_id: str
    title: str = Field(default=DEFAULT_CHAT_TITLE, max_length=200)
    messages: list[Message] = Field(default_factory=list)
    stats: ChatStats = Field(default_factory=ChatStats)
    quality: QualityAssessment = Field(default_factory=QualityAssessment)
    status: ChatStatus = ChatStatus.ACTIVE
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    archived_at: datetime | None = None
    schema_version: int = SCHEMA_VERSION

    def last_messages(self, count: int = 10) -> list[Message]:
        if count <= 0:
            return []
        return self.messages[-count:]

    def messages_by_role(self, role: str) -> list[Message]:
        return [m for m in self.messages if m.role == role]

    def find_message(self, message_id: str) -> Message | None:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class ChatSummary(BaseModel):
    """Aggregate statistics over a set of chats (typically one user's)."""

    total_chats: int = 0
    active_chats: int = 0
    total_messages: int = 0
    # None when there are no chats to average over
    average_session_duration: float | None = None
    average_quality: float | None = None
