"""Storage — repository interface, backends, history store, watch registry."""

from pricewatch.store.base import Repository
from pricewatch.store.exceptions import (
    PersistenceError,
    StoreError,
    WatchItemValidationError,
)
from pricewatch.store.history import HistoryStore
from pricewatch.store.memory import InMemoryRepository
from pricewatch.store.registry import WatchRegistry, group_by_target
from pricewatch.store.supabase import SupabaseRepository

__all__ = [
    "HistoryStore",
    "InMemoryRepository",
    "PersistenceError",
    "Repository",
    "StoreError",
    "SupabaseRepository",
    "WatchItemValidationError",
    "WatchRegistry",
    "group_by_target",
]
