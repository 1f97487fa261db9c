"""
External collaborators: document and object storage, the OpenAI SDK and a headless browser
"""

from .document_store import (
    DocumentNotFoundError,
    DocumentStore,
    InMemoryDocumentStore,
    JsonDocumentStore,
)
from .object_store import LocalObjectStore
from .settings import SettingsRepository, UsageTracker

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "LocalObjectStore",
    "SettingsRepository",
    "UsageTracker",
]
