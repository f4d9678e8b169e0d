"""
Persona Engine - personalization memory and context assembly

Per-profile bounded memories with ranked recall, a personality audit trail,
conversation statistics and quality scoring, and prompt assembly with
fallback replies for AI personas.
"""

from .config import EngineConfig
from .context_assembler import AssembledContext, ContextAssembler, InterviewTurn
from .conversation import ConversationAggregator
from .core.models import Chat, Memory, MemoryType, Message, Profile, ProfileData
from .extraction import ExtractedProfile, HeuristicProfileExtractor, LLMProfileExtractor
from .logging_config import setup_logging
from .memory import MemoryRetriever, MemoryStore
from .personality import PersonalityLedger
from .profile import ProfileManager
from .service import ChatTurn, PersonaService

__all__ = [
    "AssembledContext",
    "Chat",
    "ChatTurn",
    "ContextAssembler",
    "ConversationAggregator",
    "EngineConfig",
    "ExtractedProfile",
    "HeuristicProfileExtractor",
    "InterviewTurn",
    "LLMProfileExtractor",
    "Memory",
    "MemoryRetriever",
    "MemoryStore",
    "MemoryType",
    "Message",
    "PersonaService",
    "PersonalityLedger",
    "Profile",
    "ProfileData",
    "ProfileManager",
    "setup_logging",
]
