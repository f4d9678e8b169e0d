from .migrator import ChatMigrator, DocumentMigrator, ProfileMigrator

__all__ = ["ChatMigrator", "DocumentMigrator", "ProfileMigrator"]
