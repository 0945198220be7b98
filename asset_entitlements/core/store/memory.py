"""
In-memory and JSON-file document stores.

MemoryStore keeps documents in a dict guarded by a re-entrant lock, so each
commit is atomic with respect to other commits on the same store.
JsonFileStore persists the same data to a JSON file after every write.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from asset_entitlements.core.store.base import EntitlementStore
from asset_entitlements.core.store.errors import (
    DocumentNotFoundError,
    PreconditionFailedError,
    StoreError,
)
from asset_entitlements.core.store.patch import Patch, apply_steps
from asset_entitlements.core.store.query import Query, matches, sort_key

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


class MemoryStore(EntitlementStore):
    """Dict-backed document store."""

    def __init__(self, documents: list[dict[str, Any]] | None = None):
        self._documents: dict[str, dict[str, Any]] = {}
        self._lock = threading.RLock()

        for document in documents or []:
            self.create(document)

    def __len__(self) -> int:
        return len(self._documents)

    def get(self, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            document = self._documents.get(doc_id)
            return copy.deepcopy(document) if document is not None else None

    def find(
        self,
        query: Query,
        *,
        order_by: str | None = None,
        descending: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            try:
                found = [doc for doc in self._documents.values() if matches(doc, query)]
            except ValueError as e:
                raise StoreError(f"Invalid query: {e}") from e

            if order_by:
                found.sort(key=sort_key(order_by), reverse=descending)

            end = None if limit is None else offset + limit
            return copy.deepcopy(found[offset:end])

    def count(self, query: Query) -> int:
        with self._lock:
            try:
                return sum(1 for doc in self._documents.values() if matches(doc, query))
            except ValueError as e:
                raise StoreError(f"Invalid query: {e}") from e

    def create(self, document: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            stored = copy.deepcopy(document)
            doc_id = stored.get("_id") or uuid.uuid4().hex
            if doc_id in self._documents:
                raise StoreError(f"Document already exists: {doc_id}")

            now = _utc_now_iso()
            stored["_id"] = doc_id
            stored.setdefault("_createdAt", now)
            stored["_updatedAt"] = now

            self._write(doc_id, stored)
            logger.debug("Created %s document %s", stored.get("_type", "untyped"), doc_id)
            return copy.deepcopy(stored)

    def commit_patch(self, patch: Patch) -> dict[str, Any]:
        with self._lock:
            current = self._documents.get(patch.doc_id)
            if current is None:
                raise DocumentNotFoundError(patch.doc_id)

            try:
                for condition in patch.preconditions:
                    if not matches(current, condition):
                        raise PreconditionFailedError(patch.doc_id)
                updated = apply_steps(current, patch.steps)
            except (TypeError, ValueError) as e:
                raise StoreError(f"Invalid patch for {patch.doc_id}: {e}") from e

            updated["_updatedAt"] = _utc_now_iso()
            self._write(patch.doc_id, updated)
            return copy.deepcopy(updated)

    def _write(self, doc_id: str, document: dict[str, Any]) -> None:
        """Replace one document and persist, restoring the previous state if persisting fails."""
        previous = self._documents.get(doc_id)
        self._documents[doc_id] = document
        try:
            self._persist()
        except StoreError:
            if previous is None:
                del self._documents[doc_id]
            else:
                self._documents[doc_id] = previous
            raise

    def dump(self) -> list[dict[str, Any]]:
        """Get a copy of all documents."""
        with self._lock:
            return copy.deepcopy(list(self._documents.values()))

    def _persist(self) -> None:
        """Hook for subclasses that write documents somewhere durable."""
        pass


class JsonFileStore(MemoryStore):
    """MemoryStore persisted to a JSON file."""

    def __init__(self, path: Path):
        """
        Initialize store from file.

        Args:
            path: JSON file holding {"documents": [...]}. Created on first write.
        """
        self.path = Path(path)
        self._loading = True
        super().__init__()
        self._load()
        self._loading = False

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StoreError(f"Invalid store file {self.path}: {e}") from e
        except OSError as e:
            raise StoreError(f"Failed to read store file {self.path}: {e}") from e

        documents = data.get("documents", []) if isinstance(data, dict) else None
        if not isinstance(documents, list):
            raise StoreError(f"Invalid store file {self.path}: expected an object with a documents list")

        for document in documents:
            if not isinstance(document, dict) or not document.get("_id"):
                raise StoreError(f"Invalid store file {self.path}: document without _id")
            self._documents[str(document["_id"])] = document

    def _persist(self) -> None:
        if self._loading:
            return

        data = {"documents": list(self._documents.values())}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            tmp_path.replace(self.path)
        except OSError as e:
            raise StoreError(f"Failed to write store file {self.path}: {e}") from e
