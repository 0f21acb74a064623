"""
Module: uniform_kernel.db.document_store
Responsibility: The document store contract the kernel is written against:
    CRUD over collections of JSON documents keyed by id, filtered queries,
    batched id lookups, field-merge updates with array helpers, single-attempt
    transactions, and push subscriptions.
Architecture position: Kernel > DB.  Services and selectors depend on the
    abstract ``DocumentStore``; ``SqlDocumentStore`` is the concrete adapter.

Invariants enforced:
    - Documents are plain dicts.  Returned documents always carry their id
      under ``"id"``; the id is never stored inside the body.
    - ``run_transaction`` calls its function exactly once.  A concurrent
      modification of any document read inside it raises
      TransactionConflictError.  Retrying is the caller's decision.
    - Subscribers receive a full re-snapshot of their query after every
      committed write to the collection, never a delta.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from uniform_kernel.logging_config import get_logger

logger = get_logger("db.document_store")

T = TypeVar("T")

# Collection names
SCHOOLS = "schools"
STUDENTS = "students"
UNIFORMS = "uniforms"
BATCH_INVENTORY = "batchInventory"
DEFICIT_REPORTS = "deficitReports"


class ArrayUnion:
    """Update sentinel: append each element not already in the array."""

    def __init__(self, *elements: Any):
        self.elements = elements

    def apply(self, current: Any) -> list:
        result = list(current) if isinstance(current, list) else []
        for element in self.elements:
            if element not in result:
                result.append(copy.deepcopy(element))
        return result


class ArrayRemove:
    """Update sentinel: remove every array element equal to one given."""

    def __init__(self, *elements: Any):
        self.elements = elements

    def apply(self, current: Any) -> list:
        if not isinstance(current, list):
            return []
        return [item for item in current if item not in self.elements]


def _get_path(doc: Mapping[str, Any], path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def apply_field_changes(data: Mapping[str, Any], changes: Mapping[str, Any]) -> dict:
    """
    Merge ``changes`` into a copy of ``data``.

    Keys may be dotted paths into nested maps.  ``ArrayUnion`` and
    ``ArrayRemove`` values are applied against the current array.
    """
    result = copy.deepcopy(dict(data))
    for path, value in changes.items():
        parts = path.split(".")
        target = result
        for part in parts[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        leaf = parts[-1]
        if isinstance(value, (ArrayUnion, ArrayRemove)):
            target[leaf] = value.apply(target.get(leaf))
        else:
            target[leaf] = copy.deepcopy(value)
    return result


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "array_contains": lambda a, b: isinstance(a, list) and b in a,
}


@dataclass(frozen=True)
class FieldFilter:
    """A single ``field op value`` query condition."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, doc: Mapping[str, Any]) -> bool:
        return _OPERATORS[self.op](_get_path(doc, self.field), self.value)


def filter_and_sort(
    docs: Iterable[dict],
    filters: Sequence[FieldFilter] = (),
    order_by: str | None = None,
    descending: bool = False,
) -> list[dict]:
    """Apply filters and optional ordering; missing sort values sort last."""
    matched = [d for d in docs if all(f.matches(d) for f in filters)]
    if order_by is None:
        return matched
    present = [d for d in matched if _get_path(d, order_by) is not None]
    missing = [d for d in matched if _get_path(d, order_by) is None]
    present.sort(key=lambda d: _get_path(d, order_by), reverse=descending)
    return present + missing


class Transaction(ABC):
    """Read-then-write unit handed to ``DocumentStore.run_transaction``."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict | None:
        ...

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        ...


class Subscription:
    """Handle returned by ``DocumentStore.watch``."""

    def __init__(self, store: DocumentStore, listener: _Listener):
        self._store = store
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._store._listeners.remove(self._listener)
            self.active = False


@dataclass
class _Listener:
    collection: str
    callback: Callable[[list[dict]], None]
    filters: tuple[FieldFilter, ...]
    order_by: str | None
    descending: bool


class DocumentStore(ABC):
    """
    Abstract document store.

    Contract:
        Concrete stores implement the CRUD, query, and transaction methods
        and call ``_notify`` with the collections touched by every committed
        write.  Subscription handling lives here.
    """

    def __init__(self) -> None:
        self._listeners: list[_Listener] = []

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict | None:
        """Fetch one document, or None when absent."""

    @abstractmethod
    def get_many(self, collection: str, doc_ids: Iterable[str]) -> list[dict]:
        """Fetch every existing document whose id is in ``doc_ids``."""

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        """Documents matching all filters, ordered by id unless ``order_by``."""

    @abstractmethod
    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a document under a generated id and return the id."""

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Create or fully overwrite a document."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        """Merge fields into an existing document. Raises NotFoundError if absent."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting an absent document is a no-op."""

    @abstractmethod
    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` once inside a transaction and commit its writes."""

    def watch(
        self,
        collection: str,
        callback: Callable[[list[dict]], None],
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> Subscription:
        """
        Subscribe to a query.

        ``callback`` is invoked immediately with the current snapshot and
        again with a full snapshot after each committed write to
        ``collection``.
        """
        listener = _Listener(collection, callback, tuple(filters), order_by, descending)
        self._listeners.append(listener)
        callback(self.query(collection, filters, order_by, descending))
        return Subscription(self, listener)

    def _notify(self, collections: Iterable[str]) -> None:
        touched = set(collections)
        for listener in list(self._listeners):
            if listener.collection in touched:
                snapshot = self.query(
                    listener.collection,
                    listener.filters,
                    listener.order_by,
                    listener.descending,
                )
                listener.callback(snapshot)
