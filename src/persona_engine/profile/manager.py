"""
Profile manager

Profile CRUD with per-profile locking. Every read-modify-write of a profile
goes through :meth:`ProfileManager.acquire_profile`, so two concurrent
updates to the same profile are applied one after the other instead of one
overwriting the other.
"""

from __future__ import annotations

import asyncio
import weakref
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Callable

from loguru import logger

from ..config import MemoryStoreConfig
from ..core.exceptions import InvalidInput, ProfileNotFoundError
from ..core.interfaces import DocumentStore
from ..core.models import (
    CustomField,
    Memory,
    MemorySource,
    MemoryType,
    Personality,
    PersonalityEvolutionEvent,
    Profile,
    ProfileData,
)
from ..memory.store import MemoryStore
from ..personality import PersonalityLedger


class ProfileManager:
    """
    Profile manager

    Features:
    - Concurrency safety: one asyncio.Lock per profile id, dropped once no
      caller holds or waits on it
    - Save on exit: ``acquire_profile`` persists the profile when the block
      finishes without an exception
    - Memory bound: every save trims the memories to the store limits, so
      profiles loaded with more records (e.g. migrated ones) are bounded
      after their first mutation
    """

    def __init__(
        self,
        store: DocumentStore,
        memory_config: MemoryStoreConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            store: Document store implementation
            memory_config: Bounds applied to every profile's memory store
            clock: Time source for timestamps
        """
        self._store = store
        self._memory_config = memory_config or MemoryStoreConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def store(self) -> DocumentStore:
        return self._store

    def _get_lock(self, profile_id: str) -> asyncio.Lock:
        """Per-profile lock (created on first use)."""
        lock = self._locks.get(profile_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[profile_id] = lock
        return lock

    @asynccontextmanager
    async def acquire_profile(self, profile_id: str) -> AsyncIterator[Profile]:
        """
        Lock a profile for a read-modify-write (context manager).

        Usage:
            async with manager.acquire_profile(profile_id) as profile:
                profile.stats.total_messages += 1
            # saved on exit

        Raises:
            ProfileNotFoundError: no profile with this id
        """
        lock = self._get_lock(profile_id)
        async with lock:
            profile = await self._store.load_profile(profile_id)
            if profile is None:
                raise ProfileNotFoundError(profile_id)
            yield profile
            await self.save_profile(profile)

    def memories(self, profile: Profile) -> MemoryStore:
        """Memory store bound to *profile* with the configured bounds."""
        return MemoryStore.for_profile(profile, config=self._memory_config, clock=self._clock)

    async def load_profile(self, profile_id: str) -> Profile | None:
        return await self._store.load_profile(profile_id)

    async def get_profile(self, profile_id: str) -> Profile:
        profile = await self._store.load_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        return profile

    async def save_profile(self, profile: Profile) -> None:
        if len(profile.memories) > self._memory_config.max_memories:
            evicted = self.memories(profile).evict()
            logger.info(
                f"Profile {profile.id} held more than {self._memory_config.max_memories} "
                f"memories; evicted {len(evicted)} before saving"
            )
        profile.updated_at = self._clock()
        await self._store.save_profile(profile)
        logger.debug(f"Saved profile {profile.id}")

    async def create_profile(
        self,
        user_id: str,
        name: str,
        category: str,
        profile_data: ProfileData | None = None,
        personality: Personality | None = None,
    ) -> Profile:
        """
        Create and persist a new profile.

        Raises:
            InvalidInput: empty user id, name or category, or one that is too long
        """
        if not user_id or not user_id.strip():
            raise InvalidInput("user_id", "must not be empty")
        for field_name, value, limit in (("name", name, 100), ("category", category, 50)):
            if not value or not value.strip():
                raise InvalidInput(field_name, "must not be empty")
            if len(value.strip()) > limit:
                raise InvalidInput(field_name, f"must be at most {limit} characters")

        now = self._clock()
        profile = Profile(
            user_id=user_id,
            name=name,
            category=category,
            profile_data=profile_data or ProfileData(),
            personality=personality or Personality(),
            created_at=now,
            updated_at=now,
        )
        profile.stats.last_used_at = now

        async with self._get_lock(profile.id):
            await self._store.save_profile(profile)

        logger.info(f"Created profile {profile.id} ({profile.format_for_context()})")
        return profile

    async def delete_profile(self, profile_id: str) -> bool:
        """
        Delete a profile and its chats.

        Returns:
            Whether the profile existed
        """
        async with self._get_lock(profile_id):
            result = await self._store.delete_profile(profile_id)
            if result:
                logger.info(f"Deleted profile: {profile_id}")
        return result

    async def list_profiles(self, user_id: str | None = None) -> list[Profile]:
        return await self._store.list_profiles(user_id)

    # ------------------------------------------------------------------
    # Locked single-field updates
    # ------------------------------------------------------------------

    async def add_memory(
        self,
        profile_id: str,
        type: MemoryType | str,
        content: str,
        importance: float = 0.5,
        source: MemorySource | str = MemorySource.CONVERSATION,
        context: str | None = None,
    ) -> Memory:
        """Add one memory (eviction applies)."""
        async with self.acquire_profile(profile_id) as profile:
            return self.memories(profile).add(
                type,
                content,
                importance=importance,
                source=source,
                context=context,
            )

    async def record_evolution(
        self,
        profile_id: str,
        change: str,
        reason: str = "",
    ) -> PersonalityEvolutionEvent:
        async with self.acquire_profile(profile_id) as profile:
            return PersonalityLedger(profile, clock=self._clock).record_evolution(change, reason)

    async def update_profile_data(self, profile_id: str, profile_data: ProfileData) -> Profile:
        """Replace the structured profile data."""
        async with self.acquire_profile(profile_id) as profile:
            profile.profile_data = profile_data
            return profile

    async def set_custom_field(self, profile_id: str, field: CustomField) -> Profile:
        """Add a custom field or replace the one with the same key."""
        async with self.acquire_profile(profile_id) as profile:
            fields = [f for f in profile.profile_data.custom_fields if f.key != field.key]
            fields.append(field)
            profile.profile_data.custom_fields = fields
            return profile
