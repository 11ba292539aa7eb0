"""Persistence layers: documents, module cache and metadata."""

from .documents import DocumentStore, FileStat, LocalDocumentStore, feature_path
from .metadata import ModuleMetadataStore, can_progress, compute_checksum
from .module_cache import CacheStats, ModuleCache

__all__ = [
    "CacheStats",
    "DocumentStore",
    "FileStat",
    "LocalDocumentStore",
    "ModuleCache",
    "ModuleMetadataStore",
    "can_progress",
    "compute_checksum",
    "feature_path",
]
