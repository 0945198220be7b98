"""
Entitlement store interface.

The store is the sole owner of persisted entitlement state. The engine
reads through queries and writes through create() and patch() only.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from asset_entitlements.core.store.patch import Patch
from asset_entitlements.core.store.query import Query


def reference(doc_id: str) -> dict[str, str]:
    """Build a reference field pointing at another document."""
    return {"_type": "reference", "_ref": doc_id}


class EntitlementStore(ABC):
    """Abstract key-document store."""

    @abstractmethod
    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Get a document by id."""
        pass

    @abstractmethod
    def find(
        self,
        query: Query,
        *,
        order_by: str | None = None,
        descending: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Find documents matching a query.

        Args:
            query: Filter dict (see store.query)
            order_by: Field path to sort by
            descending: Sort direction
            offset: Number of matches to skip
            limit: Maximum number of documents to return

        Returns:
            Matching documents (copies)
        """
        pass

    @abstractmethod
    def count(self, query: Query) -> int:
        """Count documents matching a query."""
        pass

    @abstractmethod
    def create(self, document: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new document.

        Assigns "_id" when missing and sets "_createdAt"/"_updatedAt".

        Returns:
            The stored document (copy)
        """
        pass

    @abstractmethod
    def commit_patch(self, patch: Patch) -> dict[str, Any]:
        """Apply a patch atomically. Use patch(doc_id)...commit() instead."""
        pass

    def find_one(self, query: Query, **kwargs: Any) -> dict[str, Any] | None:
        """Get the first document matching a query, or None."""
        results = self.find(query, limit=1, **kwargs)
        return results[0] if results else None

    def exists(self, query: Query) -> bool:
        """Check whether any document matches a query."""
        return self.count(query) > 0

    def patch(self, doc_id: str) -> Patch:
        """Start a partial update of a document."""
        return Patch(store=self, doc_id=doc_id)
