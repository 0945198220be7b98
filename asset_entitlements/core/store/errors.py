"""
Store errors.

Raised by EntitlementStore implementations.
"""

from __future__ import annotations

from asset_entitlements.core.errors import EntitlementError


class StoreError(EntitlementError):
    """Base class for store failures (I/O, query or serialization errors)."""

    pass


class DocumentNotFoundError(StoreError):
    """Raised when a patch targets a document id that does not exist."""

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Document not found: {doc_id}")


class PreconditionFailedError(StoreError):
    """Raised when a conditional patch does not match the current document."""

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Patch precondition failed for document: {doc_id}")
