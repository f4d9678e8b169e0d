"""
Persona engine core

Interfaces, data models and exceptions.
"""

from .models import (
    Chat,
    ChatStats,
    ChatStatus,
    ChatSummary,
    CommunicationStyle,
    CustomField,
    ExperienceLevel,
    Frequency,
    Memory,
    MemorySource,
    MemoryType,
    Message,
    MessageFeedback,
    MessageMetadata,
    Personality,
    PersonalityEvolutionEvent,
    PersonalityRole,
    Profile,
    ProfileData,
    ProfileStats,
    QualityAssessment,
    SCHEMA_VERSION,
    Trait,
)
from .exceptions import (
    BackendUnavailable,
    ChatNotFoundError,
    InvalidInput,
    InvalidQuery,
    MalformedBackendOutput,
    MessageNotFoundError,
    MigrationError,
    PersonaEngineError,
    ProfileNotFoundError,
    StorageError,
)
from .interfaces import (
    CompletionOptions,
    ConnectionCheck,
    DocumentStore,
    LanguageModelBackend,
    ProfileLoader,
    ProfileSaver,
)

__all__ = [
    # Models
    "Chat",
    "ChatStats",
    "ChatStatus",
    "ChatSummary",
    "CommunicationStyle",
    "CustomField",
    "ExperienceLevel",
    "Frequency",
    "Memory",
    "MemorySource",
    "MemoryType",
    "Message",
    "MessageFeedback",
    "MessageMetadata",
    "Personality",
    "PersonalityEvolutionEvent",
    "PersonalityRole",
    "Profile",
    "ProfileData",
    "ProfileStats",
    "QualityAssessment",
    "SCHEMA_VERSION",
    "Trait",
    # Exceptions
    "BackendUnavailable",
    "ChatNotFoundError",
    "InvalidInput",
    "InvalidQuery",
    "MalformedBackendOutput",
    "MessageNotFoundError",
    "MigrationError",
    "PersonaEngineError",
    "ProfileNotFoundError",
    "StorageError",
    # Interfaces
    "CompletionOptions",
    "ConnectionCheck",
    "DocumentStore",
    "LanguageModelBackend",
    "ProfileLoader",
    "ProfileSaver",
]
