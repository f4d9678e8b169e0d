"""Bounded per-profile memory store.

The store operates in place on the ``memories`` list of a :class:`Profile`,
so the profile stays the single owner of its records.

Eviction is clamp-on-write: the ``add`` that pushes the store past
``max_memories`` trims it to ``retain_after_eviction`` before returning.
Records are ranked by importance, but records within the same importance
band (0.1 wide by default) are ranked by recency instead. Banding keeps the
ordering transitive: two records whose importance differs by more than one
band width always land in different bands, so the more important one is
never dropped while the less important one is kept.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Callable, Iterable

from loguru import logger

from ..config import MemoryStoreConfig
from ..core.exceptions import InvalidInput
from ..core.models import Memory, MemorySource, MemoryType, Profile

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryStore:
    """Add, evict and look up the memories of one profile."""

    def __init__(
        self,
        memories: list[Memory],
        config: MemoryStoreConfig | None = None,
        clock: Clock | None = None,
    ):
        """
        Args:
            memories: The list to manage (mutated in place)
            config: Store bounds (defaults to MemoryStoreConfig)
            clock: Time source for new records
        """
        self._memories = memories
        self._config = config or MemoryStoreConfig()
        self._clock = clock or _utcnow

    @classmethod
    def for_profile(
        cls,
        profile: Profile,
        config: MemoryStoreConfig | None = None,
        clock: Clock | None = None,
    ) -> "MemoryStore":
        return cls(profile.memories, config=config, clock=clock)

    def __len__(self) -> int:
        return len(self._memories)

    def __iter__(self):
        return iter(self._memories)

    @property
    def records(self) -> list[Memory]:
        """Snapshot of the current records in insertion order."""
        return list(self._memories)

    def add(
        self,
        type: MemoryType | str,
        content: str,
        importance: float = 0.5,
        source: MemorySource | str = MemorySource.CONVERSATION,
        context: str | None = None,
        created_at: datetime | None = None,
    ) -> Memory:
        """Append a memory, evicting if the store overflows.

        Args:
            type: Memory type
            content: The fact or observation (1..max_content_chars)
            importance: 0.0 to 1.0, clamped when out of range
            source: Where the memory came from
            context: Optional free-text context
            created_at: Creation time (defaults to the store clock)

        Returns:
            The stored Memory

        Raises:
            InvalidInput: empty or oversized content, NaN importance,
                unknown type or source
        """
        content = (content or "").strip()
        if not content:
            raise InvalidInput("content", "must not be empty")
        if len(content) > self._config.max_content_chars:
            raise InvalidInput(
                "content",
                f"{len(content)} chars exceeds limit of {self._config.max_content_chars}",
            )

        importance = self._clamp_importance(importance)

        try:
            memory_type = MemoryType(type)
            memory_source = MemorySource(source)
        except ValueError as e:
            raise InvalidInput("type", str(e)) from e

        now = created_at or self._clock()
        memory = Memory(
            type=memory_type,
            content=content,
            context=context,
            importance=importance,
            source=memory_source,
            created_at=now,
            last_referenced_at=now,
        )
        self._memories.append(memory)
        logger.debug(
            f"Memory added: type={memory_type.value}, importance={importance:.2f}, "
            f"size={len(self._memories)}"
        )

        if len(self._memories) > self._config.max_memories:
            self.evict()

        return memory

    def evict(self) -> list[Memory]:
        """Trim the store to ``retain_after_eviction`` records.

        Returns:
            The evicted records
        """
        keep_count = self._config.retain_after_eviction
        if len(self._memories) <= keep_count:
            return []

        ranked = sorted(
            enumerate(self._memories),
            key=lambda pair: self._eviction_key(pair[0], pair[1]),
        )
        keep_indexes = {index for index, _ in ranked[:keep_count]}

        retained = [m for i, m in enumerate(self._memories) if i in keep_indexes]
        evicted = [m for i, m in enumerate(self._memories) if i not in keep_indexes]
        self._memories[:] = retained

        logger.info(
            f"Evicted {len(evicted)} memories, {len(retained)} retained"
        )
        return evicted

    def _eviction_key(self, index: int, memory: Memory) -> tuple:
        # Ascending sort: best records first
        band = math.floor(round(memory.importance / self._config.importance_band, 9))
        return (-band, -memory.created_at.timestamp(), -memory.importance, -index)

    def _clamp_importance(self, importance: float) -> float:
        try:
            value = float(importance)
        except (TypeError, ValueError) as e:
            raise InvalidInput("importance", f"not a number: {importance!r}") from e
        if math.isnan(value):
            raise InvalidInput("importance", "must not be NaN")
        if value < 0.0 or value > 1.0:
            clamped = max(0.0, min(1.0, value))
            logger.warning(f"Importance {value} out of range, clamped to {clamped}")
            return clamped
        return value

    def mark_referenced(
        self,
        memories: Iterable[Memory],
        now: datetime | None = None,
    ) -> None:
        """Record that *memories* were used in a prompt."""
        now = now or self._clock()
        ids = {m.id for m in memories}
        for memory in self._memories:
            if memory.id in ids:
                memory.reference_count += 1
                memory.last_referenced_at = now

    def get(self, memory_id: str) -> Memory | None:
        for memory in self._memories:
            if memory.id == memory_id:
                return memory
        return None

    def remove(self, memory_id: str) -> bool:
        for i, memory in enumerate(self._memories):
            if memory.id == memory_id:
                del self._memories[i]
                return True
        return False

    def by_type(self, type: MemoryType | str) -> list[Memory]:
        memory_type = MemoryType(type)
        return [m for m in self._memories if m.type == memory_type]
