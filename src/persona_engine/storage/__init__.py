"""
Document persistence: JSON files on disk or in-process dicts.
"""

from .in_memory import InMemoryDocumentStore
from .json_store import JsonDocumentStore
from .migrations import ChatMigrator, DocumentMigrator, ProfileMigrator

__all__ = [
    "ChatMigrator",
    "DocumentMigrator",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "ProfileMigrator",
]
