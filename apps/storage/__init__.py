"""Snapshot storage for raw and processed contest data."""

from apps.storage.manager import StorageManager, StorageResult

__all__ = ["StorageManager", "StorageResult"]
