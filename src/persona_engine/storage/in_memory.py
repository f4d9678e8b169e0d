"""Process-local document store."""

from __future__ import annotations

from loguru import logger

from ..core.models import Chat, Profile


class InMemoryDocumentStore:
    """
    Dict-backed document store.

    Documents are deep-copied on save and on load, so callers never share
    state with the store or with each other.
    """

    def __init__(self):
        self._profiles: dict[str, Profile] = {}
        self._chats: dict[str, Chat] = {}

    async def save_profile(self, profile: Profile) -> None:
        self._profiles[profile.id] = profile.model_copy(deep=True)

    async def load_profile(self, profile_id: str) -> Profile | None:
        profile = self._profiles.get(profile_id)
        return profile.model_copy(deep=True) if profile else None

    async def delete_profile(self, profile_id: str) -> bool:
        if self._profiles.pop(profile_id, None) is None:
            return False
        chat_ids = [c.id for c in self._chats.values() if c.profile_id == profile_id]
        for chat_id in chat_ids:
            del self._chats[chat_id]
        logger.info(f"Profile deleted: {profile_id} ({len(chat_ids)} chats removed)")
        return True

    async def list_profiles(self, user_id: str | None = None) -> list[Profile]:
        profiles = [
            p.model_copy(deep=True)
            for p in self._profiles.values()
            if user_id is None or p.user_id == user_id
        ]
        return sorted(profiles, key=lambda p: p.stats.last_used_at, reverse=True)

    async def save_chat(self, chat: Chat) -> None:
        self._chats[chat.id] = chat.model_copy(deep=True)

    async def load_chat(self, chat_id: str) -> Chat | None:
        chat = self._chats.get(chat_id)
        return chat.model_copy(deep=True) if chat else None

    async def delete_chat(self, chat_id: str) -> bool:
        return self._chats.pop(chat_id, None) is not None

    async def list_chats(self, profile_id: str) -> list[Chat]:
        chats = [
            c.model_copy(deep=True)
            for c in self._chats.values()
            if c.profile_id == profile_id
        ]
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)
