"""Local inventory persistence."""

from .base import InventoryTransaction, LocalStateRepository
from .json_store import JsonInventoryStore, JsonTransaction, StoreError, StoreLockError

__all__ = [
    "InventoryTransaction",
    "LocalStateRepository",
    "JsonInventoryStore",
    "JsonTransaction",
    "StoreError",
    "StoreLockError",
]
