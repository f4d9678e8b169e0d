"""
JSON file document store.

Atomic writes and automatic backups keep documents intact across crashes.
"""

from __future__ import annotations

import json
import re
import shutil
from pathlib import Path
from typing import Any, AsyncIterator, Callable, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError

from ..conversation import ConversationAggregator
from ..core.exceptions import MigrationError, StorageError
from ..core.models import Chat, Profile
from .migrations.migrator import ChatMigrator, DocumentMigrator, ProfileMigrator

ModelT = TypeVar("ModelT", bound=BaseModel)


class JsonDocumentStore:
    """
    JSON file document store.

    Layout:
        {base_path}/
        ├── profiles/
        │   └── {profile_id}.json
        └── chats/
            └── {chat_id}.json
    """

    def __init__(
        self,
        base_path: str | Path,
        create_backup: bool = True,
        pretty_print: bool = True,
    ):
        """
        Args:
            base_path: Root directory of the store
            create_backup: Keep a ``.bak`` copy of the previous version on save
            pretty_print: Indent JSON output
        """
        self._base_path = Path(base_path)
        self._create_backup = create_backup
        self._pretty_print = pretty_print
        self._profile_migrator = ProfileMigrator()
        self._chat_migrator = ChatMigrator()

        self._profiles_dir = self._base_path / "profiles"
        self._chats_dir = self._base_path / "chats"
        self._profiles_dir.mkdir(parents=True, exist_ok=True)
        self._chats_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _sanitize_filename(name: str) -> str:
        safe_name = re.sub(r'[<>:"/\\|?*]', "_", name)
        safe_name = safe_name.replace(" ", "_")
        return safe_name[:200]

    def _profile_path(self, profile_id: str) -> Path:
        return self._profiles_dir / f"{self._sanitize_filename(profile_id)}.json"

    def _chat_path(self, chat_id: str) -> Path:
        return self._chats_dir / f"{self._sanitize_filename(chat_id)}.json"

    # ------------------------------------------------------------------
    # Low-level file handling
    # ------------------------------------------------------------------

    def _write(self, file_path: Path, data: dict[str, Any]) -> None:
        """
        Atomic write:

        1. write to a temp file
        2. back up the existing file (optional)
        3. move the temp file over the real file
        """
        temp_path = file_path.with_suffix(".json.tmp")
        backup_path = file_path.with_suffix(".json.bak")

        try:
            indent = 2 if self._pretty_print else None
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=indent)

            if self._create_backup and file_path.exists():
                shutil.copy2(file_path, backup_path)

            temp_path.replace(file_path)

        except OSError as e:
            if backup_path.exists() and not file_path.exists():
                try:
                    shutil.copy2(backup_path, file_path)
                    logger.info(f"Restored document from backup: {file_path}")
                except OSError as restore_error:
                    logger.error(f"Failed to restore from backup: {restore_error}")

            raise StorageError(f"Failed to save document: {e}", path=str(file_path)) from e

        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove temp file {temp_path}: {e}")

    def _read(
        self,
        file_path: Path,
        migrator: DocumentMigrator,
        model: type[ModelT],
        after_migration: Callable[[ModelT], ModelT] | None = None,
    ) -> ModelT | None:
        """Load, migrate and validate one document; restore from backup if corrupted."""
        backup_path = file_path.with_suffix(".json.bak")

        if not file_path.exists():
            return None

        try:
            return self._parse(file_path, migrator, model, after_migration)

        except json.JSONDecodeError as e:
            logger.error(f"Corrupted document file: {file_path}: {e}")

            if backup_path.exists():
                logger.info(f"Attempting to restore from backup: {backup_path}")
                try:
                    shutil.copy2(backup_path, file_path)
                    return self._parse(file_path, migrator, model, after_migration)
                except (OSError, ValueError, MigrationError) as restore_error:
                    logger.error(f"Failed to restore from backup: {restore_error}")

            raise StorageError(
                f"Corrupted file and no valid backup: {file_path}",
                path=str(file_path),
            ) from e

        except (OSError, ValidationError, MigrationError) as e:
            raise StorageError(f"Failed to load document: {e}", path=str(file_path)) from e

    @staticmethod
    def _parse(
        file_path: Path,
        migrator: DocumentMigrator,
        model: type[ModelT],
        after_migration: Callable[[ModelT], ModelT] | None,
    ) -> ModelT:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        migrated = migrator.version_of(data) < migrator.CURRENT_VERSION
        data = migrator.migrate(data)
        document = model.model_validate(data)
        if migrated and after_migration is not None:
            document = after_migration(document)
        return document

    def _delete_file(self, file_path: Path) -> bool:
        backup_path = file_path.with_suffix(".json.bak")
        if not file_path.exists():
            return False

        try:
            file_path.unlink()
            if backup_path.exists():
                backup_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete document: {e}", path=str(file_path)) from e
        return True

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def save_profile(self, profile: Profile) -> None:
        self._write(self._profile_path(profile.id), profile.model_dump(mode="json"))
        logger.debug(f"Profile saved: {profile.id}")

    async def load_profile(self, profile_id: str) -> Profile | None:
        return self._read(self._profile_path(profile_id), self._profile_migrator, Profile)

    async def delete_profile(self, profile_id: str) -> bool:
        """Delete the profile and every chat that belongs to it."""
        existed = self._delete_file(self._profile_path(profile_id))
        if not existed:
            return False

        chats = await self.list_chats(profile_id)
        for chat in chats:
            self._delete_file(self._chat_path(chat.id))

        logger.info(f"Profile deleted: {profile_id} ({len(chats)} chats removed)")
        return True

    async def list_profiles(self, user_id: str | None = None) -> list[Profile]:
        profiles = [p async for p in self.iter_profiles()]
        if user_id is not None:
            profiles = [p for p in profiles if p.user_id == user_id]
        return sorted(profiles, key=lambda p: p.stats.last_used_at, reverse=True)

    async def iter_profiles(self) -> AsyncIterator[Profile]:
        """Iterate stored profiles, skipping documents that fail to load."""
        for file_path in sorted(self._profiles_dir.glob("*.json")):
            try:
                profile = self._read(file_path, self._profile_migrator, Profile)
            except StorageError as e:
                logger.warning(f"Failed to load profile {file_path.stem}: {e}")
                continue
            if profile:
                yield profile

    async def profile_exists(self, profile_id: str) -> bool:
        return self._profile_path(profile_id).exists()

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------

    async def save_chat(self, chat: Chat) -> None:
        self._write(self._chat_path(chat.id), chat.model_dump(mode="json"))
        logger.debug(f"Chat saved: {chat.id} ({len(chat.messages)} messages)")

    async def load_chat(self, chat_id: str) -> Chat | None:
        return self._read(
            self._chat_path(chat_id),
            self._chat_migrator,
            Chat,
            after_migration=ConversationAggregator().refresh,
        )

    async def delete_chat(self, chat_id: str) -> bool:
        deleted = self._delete_file(self._chat_path(chat_id))
        if deleted:
            logger.info(f"Chat deleted: {chat_id}")
        return deleted

    async def list_chats(self, profile_id: str) -> list[Chat]:
        chats: list[Chat] = []
        for file_path in sorted(self._chats_dir.glob("*.json")):
            try:
                chat = await self.load_chat(file_path.stem)
            except StorageError as e:
                logger.warning(f"Failed to load chat {file_path.stem}: {e}")
                continue
            if chat and chat.profile_id == profile_id:
                chats.append(chat)
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)

    async def get_stats(self) -> dict:
        """Document counts."""
        return {
            "total_profiles": len(list(self._profiles_dir.glob("*.json"))),
            "total_chats": len(list(self._chats_dir.glob("*.json"))),
        }
