"""
Document schema migration.

Migration functions are registered per source version and applied in
sequence until a document reaches ``SCHEMA_VERSION``. Documents without a
``schema_version`` key are treated as version 0: camelCase exports of the
earlier document-database schema.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from ...core.exceptions import MigrationError
from ...core.models import MEMORY_CONTENT_MAX_CHARS, SCHEMA_VERSION

MigrationFunc = Callable[[dict[str, Any]], dict[str, Any]]

VERSION_KEY = "schema_version"


class DocumentMigrator:
    """Upgrades raw documents of one kind to the current schema version."""

    CURRENT_VERSION = SCHEMA_VERSION
    kind = "document"

    # Each subclass declares its own registry
    _migrations: dict[int, MigrationFunc] = {}

    @classmethod
    def register(cls, from_version: int) -> Callable[[MigrationFunc], MigrationFunc]:
        """
        Register a migration step.

        Usage:
            @ProfileMigrator.register(from_version=0)
            def migrate_profile_v0_to_v1(data: dict) -> dict:
                return data
        """

        def decorator(func: MigrationFunc) -> MigrationFunc:
            cls._migrations[from_version] = func
            return func

        return decorator

    @staticmethod
    def version_of(data: dict[str, Any]) -> int:
        return int(data.get(VERSION_KEY, 0))

    def migrate(self, data: dict[str, Any]) -> dict[str, Any]:
        """
        Bring *data* up to the current version.

        Raises:
            MigrationError: no registered step, or a step failed
        """
        version = self.version_of(data)

        if version == self.CURRENT_VERSION:
            return data

        if version > self.CURRENT_VERSION:
            logger.warning(
                f"{self.kind} version {version} is newer than current "
                f"{self.CURRENT_VERSION}. This may cause compatibility issues."
            )
            return data

        while version < self.CURRENT_VERSION:
            if version not in self._migrations:
                raise MigrationError(
                    from_version=version,
                    to_version=version + 1,
                    reason=f"No {self.kind} migration path from version {version}",
                )

            try:
                logger.info(f"Migrating {self.kind} from v{version} to v{version + 1}")
                data = self._migrations[version](data)
                version += 1
                data[VERSION_KEY] = version
            except Exception as e:
                raise MigrationError(
                    from_version=version,
                    to_version=version + 1,
                    reason=str(e),
                ) from e

        return data

    @classmethod
    def get_registered_versions(cls) -> list[int]:
        return sorted(cls._migrations.keys())


class ProfileMigrator(DocumentMigrator):
    kind = "profile"
    _migrations: dict[int, MigrationFunc] = {}


class ChatMigrator(DocumentMigrator):
    kind = "chat"
    _migrations: dict[int, MigrationFunc] = {}


# ============================================================================
# Helpers
# ============================================================================


def _rename(data: dict[str, Any], mapping: dict[str, str]) -> dict[str, Any]:
    """Rename keys in place; an existing new-style key wins over the old one."""
    for old, new in mapping.items():
        if old in data:
            value = data.pop(old)
            data.setdefault(new, value)
    return data


def _drop(data: dict[str, Any], *keys: str) -> dict[str, Any]:
    for key in keys:
        data.pop(key, None)
    return data


def _stringify_id(data: dict[str, Any]) -> dict[str, Any]:
    if "_id" in data:
        legacy_id = data.pop("_id")
        if isinstance(legacy_id, dict):
            # Extended JSON export: {"$oid": "..."}
            legacy_id = legacy_id.get("$oid", "")
        if legacy_id:
            data.setdefault("id", str(legacy_id))
    return data


def _clamp(value: Any, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return min(1.0, max(0.0, number))


# ============================================================================
# Profile migrations
# ============================================================================


def _migrate_legacy_memory(memory: dict[str, Any]) -> dict[str, Any] | None:
    memory = _stringify_id(dict(memory))
    _rename(
        memory,
        {
            "createdAt": "created_at",
            "lastReferenced": "last_referenced_at",
            "referenceCount": "reference_count",
        },
    )
    _drop(memory, "emotional_tone")

    content = str(memory.get("content") or "").strip()
    if not content:
        return None
    memory["content"] = content[:MEMORY_CONTENT_MAX_CHARS]

    if memory.get("type") == "update":
        memory["type"] = "context"
    memory["importance"] = _clamp(memory.get("importance", 0.5), 0.5)
    if not memory.get("context"):
        memory["context"] = None
    return memory


@ProfileMigrator.register(from_version=0)
def migrate_profile_v0_to_v1(data: dict[str, Any]) -> dict[str, Any]:
    """
    v0 -> v1: camelCase document-database export to the current schema

    Changes:
    - ``_id``/``userId``/``profileData``/timestamps renamed
    - personality ``type`` -> ``role``, ``evolutionHistory`` entries ``date`` -> ``timestamp``
    - memories renamed field by field, legacy type ``update`` -> ``context``,
      empty memories dropped, importance clamped
    - stats renamed; ``totalMemories`` dropped (it is ``len(memories)``)
    - conversation history and adaptations dropped (chats are separate documents)
    """
    _stringify_id(data)
    _rename(
        data,
        {
            "userId": "user_id",
            "profileData": "profile_data",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        },
    )
    _drop(data, "conversationHistory", "adaptations", "__v")

    profile_data = data.get("profile_data") or {}
    _rename(profile_data, {"customFields": "custom_fields"})
    profile_data["custom_fields"] = [
        _rename(dict(field), {"type": "field_type"})
        for field in profile_data.get("custom_fields") or []
        if field.get("key")
    ]
    for key in ("goals", "preferences", "challenges"):
        profile_data[key] = [str(item) for item in profile_data.get(key) or [] if item]
    profile_data["notes"] = profile_data.get("notes") or ""
    data["profile_data"] = profile_data

    personality = data.get("personality") or {}
    _rename(
        personality,
        {
            "type": "role",
            "communicationStyle": "communication_style",
            "evolutionHistory": "evolution_history",
        },
    )
    personality["evolution_history"] = [
        _drop(_rename(dict(event), {"date": "timestamp"}), "_id")
        for event in personality.get("evolution_history") or []
    ]
    personality["traits"] = [
        _drop(dict(trait), "_id") for trait in personality.get("traits") or []
    ]
    data["personality"] = personality

    memories = (_migrate_legacy_memory(m) for m in data.get("memories") or [])
    data["memories"] = [m for m in memories if m is not None]

    stats = data.get("stats") or {}
    _rename(
        stats,
        {
            "totalConversations": "total_conversations",
            "avgSessionLength": "average_session_length",
            "lastUsed": "last_used_at",
            "userSatisfaction": "satisfaction_score",
            "personalityEvolutions": "evolution_count",
        },
    )
    _drop(stats, "totalMemories")
    if "satisfaction_score" in stats:
        stats["satisfaction_score"] = _clamp(stats["satisfaction_score"], 0.5)
    data["stats"] = stats

    return data


# ============================================================================
# Chat migrations
# ============================================================================


@ChatMigrator.register(from_version=0)
def migrate_chat_v0_to_v1(data: dict[str, Any]) -> dict[str, Any]:
    """
    v0 -> v1: camelCase chat export to the current schema

    Stats and quality are dropped; the store recomputes them from the
    messages after migration.
    """
    _stringify_id(data)
    _rename(
        data,
        {
            "userId": "user_id",
            "profileId": "profile_id",
            "createdAt": "created_at",
            "updatedAt": "updated_at",
        },
    )

    archival = data.pop("archival", None) or {}
    if archival.get("archivedAt"):
        data.setdefault("archived_at", archival["archivedAt"])

    _drop(
        data,
        "stats",
        "analysis",
        "description",
        "tags",
        "isPublic",
        "priority",
        "context",
        "feedback",
        "__v",
    )

    messages = []
    for raw in data.get("messages") or []:
        message = _stringify_id(dict(raw))
        if not str(message.get("content") or "").strip():
            continue
        metadata = message.get("metadata") or {}
        _rename(metadata, {"tokenCount": "token_count", "responseTime": "response_time_ms"})
        _drop(metadata, "sentiment", "intent", "confidence")
        message["metadata"] = metadata
        if message.get("feedback") is not None:
            message["feedback"] = {
                "helpful": message["feedback"].get("helpful"),
                "rating": message["feedback"].get("rating"),
                "comment": message["feedback"].get("comment") or "",
            }
        messages.append(message)
    data["messages"] = messages

    return data
