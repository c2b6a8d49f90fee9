"""
Tenancy storage module.

Transactional persistence with row locks and unique constraints.
"""

from .base import Store, StoreError, StoreTransaction, UniqueViolation
from .memory import MemoryStore
from .sql import SQLStore, create_engine_for, metadata

__all__ = [
    "Store",
    "StoreTransaction",
    "StoreError",
    "UniqueViolation",
    "MemoryStore",
    "SQLStore",
    "create_engine_for",
    "metadata",
]
