"""
Partial-update builder.

A Patch collects set / setIfMissing / inc / append operations against one
document and applies them together on commit():

    store.patch(license_id)
        .inc({"downloadCount": 1})
        .set_if_missing({"downloadHistory": []})
        .append("downloadHistory", [entry])
        .set({"lastDownloadAt": now})
        .when({"status": "active"})
        .commit()

A precondition added with when() turns the commit into a compare-and-swap:
the store applies the operations only if the current document matches.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from asset_entitlements.core.store.query import Query, get_path, is_defined, set_path

if TYPE_CHECKING:
    from asset_entitlements.core.store.base import EntitlementStore


class PatchOperation(Enum):
    """Patch operation types."""

    SET = "set"
    SET_IF_MISSING = "set_if_missing"
    INC = "inc"
    APPEND = "append"


@dataclass(frozen=True)
class PatchStep:
    """Single operation within a patch."""

    operation: PatchOperation
    path: str
    value: Any


@dataclass
class Patch:
    """Chained partial update for one document."""

    store: EntitlementStore
    doc_id: str
    steps: list[PatchStep] = field(default_factory=list)
    preconditions: list[Query] = field(default_factory=list)

    def set(self, fields: dict[str, Any]) -> Patch:
        for path, value in fields.items():
            self.steps.append(PatchStep(PatchOperation.SET, path, value))
        return self

    def set_if_missing(self, fields: dict[str, Any]) -> Patch:
        for path, value in fields.items():
            self.steps.append(PatchStep(PatchOperation.SET_IF_MISSING, path, value))
        return self

    def inc(self, fields: dict[str, int | float]) -> Patch:
        for path, amount in fields.items():
            self.steps.append(PatchStep(PatchOperation.INC, path, amount))
        return self

    def append(self, path: str, items: list[Any]) -> Patch:
        self.steps.append(PatchStep(PatchOperation.APPEND, path, list(items)))
        return self

    def when(self, query: Query) -> Patch:
        """Only apply the patch if the current document matches query."""
        self.preconditions.append(query)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.steps

    def commit(self) -> dict[str, Any]:
        """
        Apply all operations in one store write.

        Returns:
            The updated document

        Raises:
            DocumentNotFoundError: If the document does not exist
            PreconditionFailedError: If a when() precondition does not hold
        """
        return self.store.commit_patch(self)


def apply_steps(document: dict[str, Any], steps: list[PatchStep]) -> dict[str, Any]:
    """
    Apply patch steps to a copy of a document.

    Args:
        document: Current document (not modified)
        steps: Operations in the order they were chained

    Returns:
        New document with all steps applied

    Raises:
        TypeError: If inc targets a non-number or append a non-list
    """
    updated = copy.deepcopy(document)

    for step in steps:
        current = get_path(updated, step.path)

        if step.operation == PatchOperation.SET:
            set_path(updated, step.path, copy.deepcopy(step.value))

        elif step.operation == PatchOperation.SET_IF_MISSING:
            if not is_defined(current):
                set_path(updated, step.path, copy.deepcopy(step.value))

        elif step.operation == PatchOperation.INC:
            base = current if is_defined(current) else 0
            if not isinstance(base, int | float) or isinstance(base, bool):
                raise TypeError(f"Cannot increment non-numeric field '{step.path}'")
            set_path(updated, step.path, base + step.value)

        elif step.operation == PatchOperation.APPEND:
            existing = current if is_defined(current) else []
            if not isinstance(existing, list):
                raise TypeError(f"Cannot append to non-list field '{step.path}'")
            set_path(updated, step.path, [*existing, *copy.deepcopy(step.value)])

    return updated
