"""Blob store implementations."""

from .base import BlobStore, StoreTransaction
from .sqlite_store import SQLiteBlobStore

__all__ = ["BlobStore", "StoreTransaction", "SQLiteBlobStore"]
