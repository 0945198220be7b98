"""Tests for the patch builder and local stores."""

import json
import threading
from pathlib import Path

import pytest

from asset_entitlements.core.store import (
    DocumentNotFoundError,
    JsonFileStore,
    MemoryStore,
    PreconditionFailedError,
    StoreError,
)
from asset_entitlements.core.store.patch import PatchOperation, PatchStep, apply_steps


class TestApplySteps:
    """Tests for apply_steps()."""

    def test_does_not_modify_input(self) -> None:
        """Test the original document is left untouched."""
        doc = {"count": 1}
        updated = apply_steps(doc, [PatchStep(PatchOperation.INC, "count", 1)])
        assert doc == {"count": 1}
        assert updated == {"count": 2}

    def test_inc_missing_starts_at_zero(self) -> None:
        """Test inc on a missing nested field."""
        updated = apply_steps({}, [PatchStep(PatchOperation.INC, "usage.totalDownloads", 1)])
        assert updated == {"usage": {"totalDownloads": 1}}

    def test_set_if_missing(self) -> None:
        """Test set_if_missing only fills undefined fields."""
        steps = [
            PatchStep(PatchOperation.SET_IF_MISSING, "history", []),
            PatchStep(PatchOperation.SET_IF_MISSING, "status", "revoked"),
        ]
        updated = apply_steps({"status": "active", "history": None}, steps)
        assert updated == {"status": "active", "history": []}

    def test_append_creates_list(self) -> None:
        """Test append on a missing field creates the list."""
        updated = apply_steps({}, [PatchStep(PatchOperation.APPEND, "history", [{"a": 1}])])
        assert updated == {"history": [{"a": 1}]}

    def test_inc_non_number_raises(self) -> None:
        """Test inc on a string field."""
        with pytest.raises(TypeError):
            apply_steps({"count": "x"}, [PatchStep(PatchOperation.INC, "count", 1)])

    def test_append_non_list_raises(self) -> None:
        """Test append on a scalar field."""
        with pytest.raises(TypeError):
            apply_steps({"history": 1}, [PatchStep(PatchOperation.APPEND, "history", [2])])


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_create_assigns_id_and_timestamps(self) -> None:
        """Test create fills _id, _createdAt and _updatedAt."""
        store = MemoryStore()
        created = store.create({"_type": "license"})
        assert created["_id"]
        assert created["_createdAt"]
        assert created["_updatedAt"]
        assert store.get(created["_id"]) == created

    def test_create_duplicate_id_raises(self) -> None:
        """Test creating a document with an existing id."""
        store = MemoryStore([{"_id": "a"}])
        with pytest.raises(StoreError):
            store.create({"_id": "a"})

    def test_returns_copies(self) -> None:
        """Test callers cannot mutate stored documents."""
        store = MemoryStore([{"_id": "a", "tags": []}])
        doc = store.get("a")
        assert doc is not None
        doc["tags"].append("x")
        assert store.get("a")["tags"] == []  # type: ignore[index]

    def test_find_order_offset_limit(self) -> None:
        """Test sorting and pagination."""
        store = MemoryStore([{"_id": str(i), "_type": "t", "n": i} for i in range(5)])
        found = store.find({"_type": "t"}, order_by="n", descending=True, offset=1, limit=2)
        assert [doc["n"] for doc in found] == [3, 2]
        assert store.count({"_type": "t"}) == 5
        assert store.exists({"n": 4})
        assert not store.exists({"n": 9})

    def test_find_invalid_query_raises_store_error(self) -> None:
        """Test invalid queries surface as StoreError."""
        store = MemoryStore([{"_id": "a"}])
        with pytest.raises(StoreError):
            store.find({"$nor": []})

    def test_patch_chain(self) -> None:
        """Test chained operations are applied together."""
        store = MemoryStore([{"_id": "a", "count": 0}])
        updated = (
            store.patch("a")
            .inc({"count": 1})
            .set_if_missing({"history": []})
            .append("history", [{"n": 1}])
            .set({"last": "now"})
            .commit()
        )
        assert updated["count"] == 1
        assert updated["history"] == [{"n": 1}]
        assert updated["last"] == "now"
        assert store.get("a")["count"] == 1  # type: ignore[index]

    def test_patch_missing_document(self) -> None:
        """Test patching an unknown id."""
        store = MemoryStore()
        with pytest.raises(DocumentNotFoundError):
            store.patch("missing").set({"x": 1}).commit()

    def test_precondition_failure_leaves_document_unchanged(self) -> None:
        """Test when() makes the commit a compare-and-swap."""
        store = MemoryStore([{"_id": "a", "count": 5, "limit": 5}])
        with pytest.raises(PreconditionFailedError):
            (
                store.patch("a")
                .when({"$expr": {"$lt": ["$count", "$limit"]}})
                .inc({"count": 1})
                .commit()
            )
        assert store.get("a")["count"] == 5  # type: ignore[index]

    def test_invalid_patch_raises_store_error(self) -> None:
        """Test type errors during apply become StoreError."""
        store = MemoryStore([{"_id": "a", "count": "x"}])
        with pytest.raises(StoreError):
            store.patch("a").inc({"count": 1}).commit()

    def test_concurrent_conditional_increments(self) -> None:
        """Test a conditional increment never overshoots under contention."""
        store = MemoryStore([{"_id": "a", "count": 0, "limit": 10}])
        successes: list[int] = []

        def worker() -> None:
            for _ in range(5):
                try:
                    (
                        store.patch("a")
                        .when({"$expr": {"$lt": ["$count", "$limit"]}})
                        .inc({"count": 1})
                        .commit()
                    )
                    successes.append(1)
                except PreconditionFailedError:
                    pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 10
        assert store.get("a")["count"] == 10  # type: ignore[index]


class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_persists_and_reloads(self, tmp_path: Path) -> None:
        """Test documents survive reopening the store."""
        path = tmp_path / "data" / "store.json"
        store = JsonFileStore(path)
        created = store.create({"_type": "license", "downloadCount": 0})
        store.patch(created["_id"]).inc({"downloadCount": 1}).commit()

        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data["documents"]) == 1

        reopened = JsonFileStore(path)
        assert len(reopened) == 1
        assert reopened.get(created["_id"])["downloadCount"] == 1  # type: ignore[index]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        """Test a store over a missing file starts empty."""
        store = JsonFileStore(tmp_path / "none.json")
        assert len(store) == 0
        assert not (tmp_path / "none.json").exists()

    def test_invalid_file_raises(self, tmp_path: Path) -> None:
        """Test a corrupt store file."""
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StoreError, match="Invalid store file"):
            JsonFileStore(path)

    @pytest.mark.parametrize(
        "content",
        [
            "[]",
            '{"documents": {"a": 1}}',
            '{"documents": [{"_type": "license"}]}',
            '{"documents": ["license-1"]}',
        ],
    )
    def test_malformed_file_raises(self, tmp_path: Path, content: str) -> None:
        """Test valid JSON with the wrong shape is reported as an invalid store file."""
        path = tmp_path / "store.json"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(StoreError, match="Invalid store file"):
            JsonFileStore(path)

    def test_failed_patch_write_keeps_previous_state(self, tmp_path: Path) -> None:
        """Test a patch that cannot be written is not visible in memory."""
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        created = store.create({"_id": "license-1", "_type": "license", "downloadCount": 0})
        (tmp_path / "store.json.tmp").mkdir()

        with pytest.raises(StoreError, match="Failed to write store file"):
            store.patch(created["_id"]).inc({"downloadCount": 1}).commit()

        assert store.get("license-1")["downloadCount"] == 0  # type: ignore[index]
        assert JsonFileStore(path).get("license-1")["downloadCount"] == 0  # type: ignore[index]

    def test_failed_create_write_keeps_previous_state(self, tmp_path: Path) -> None:
        """Test a document that cannot be written is not kept in memory."""
        store = JsonFileStore(tmp_path / "store.json")
        (tmp_path / "store.json.tmp").mkdir()

        with pytest.raises(StoreError):
            store.create({"_id": "license-1", "_type": "license"})

        assert store.get("license-1") is None
        assert len(store) == 0
