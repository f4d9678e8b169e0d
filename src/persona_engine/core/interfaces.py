"""
Collaborator interfaces

The engine talks to persistence and to the language model only through
these protocols, so tests and deployments can inject their own
implementations.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .models import Chat, Profile


@dataclass(frozen=True)
class CompletionOptions:
    """Generation hints passed to the language-model backend."""

    max_tokens: int = 600
    temperature: float = 0.7


@dataclass(frozen=True)
class ConnectionCheck:
    """Outcome of a backend health check."""

    success: bool
    response: str | None = None
    error: str | None = None


@runtime_checkable
class LanguageModelBackend(Protocol):
    """Opaque request/response access to a chat-completion model"""

    async def complete(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions,
    ) -> str:
        """
        Run one completion.

        Args:
            messages: Chat messages (role + content), system message first
            options: Length and sampling hints

        Returns:
            The generated text

        Raises:
            BackendUnavailable: transport error, timeout or error response
        """
        ...


@runtime_checkable
class ProfileLoader(Protocol):
    async def load_profile(self, profile_id: str) -> Profile | None:
        """
        Load a profile.

        Returns:
            The profile, or None when it does not exist
        """
        ...


@runtime_checkable
class ProfileSaver(Protocol):
    async def save_profile(self, profile: Profile) -> None:
        """Persist a profile (insert or replace)."""
        ...


@runtime_checkable
class DocumentStore(ProfileLoader, ProfileSaver, Protocol):
    """
    Document store for profiles and their chats.

    A read-modify-write is exactly one load and one save with engine
    logic in between; serialization is handled by ProfileManager.
    """

    async def delete_profile(self, profile_id: str) -> bool:
        """
        Delete a profile and every chat that belongs to it.

        Returns:
            Whether the profile existed
        """
        ...

    async def list_profiles(self, user_id: str | None = None) -> list[Profile]:
        """List profiles, optionally only those of one user."""
        ...

    async def load_chat(self, chat_id: str) -> Chat | None:
        ...

    async def save_chat(self, chat: Chat) -> None:
        ...

    async def delete_chat(self, chat_id: str) -> bool:
        ...

    async def list_chats(self, profile_id: str) -> list[Chat]:
        """Chats of one profile, most recently updated first."""
        ...
