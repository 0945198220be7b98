"""
Document store for entitlement state.

Provides the store interface, the patch builder and local implementations.
"""

from asset_entitlements.core.store.base import EntitlementStore, reference
from asset_entitlements.core.store.errors import (
    DocumentNotFoundError,
    PreconditionFailedError,
    StoreError,
)
from asset_entitlements.core.store.memory import JsonFileStore, MemoryStore
from asset_entitlements.core.store.patch import Patch, PatchOperation
from asset_entitlements.core.store.query import Query, matches

__all__ = [
    "DocumentNotFoundError",
    "EntitlementStore",
    "JsonFileStore",
    "MemoryStore",
    "Patch",
    "PatchOperation",
    "PreconditionFailedError",
    "Query",
    "StoreError",
    "matches",
    "reference",
]
