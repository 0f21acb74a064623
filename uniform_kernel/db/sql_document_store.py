"""
Module: uniform_kernel.db.sql_document_store
Responsibility: SQLAlchemy-backed implementation of ``DocumentStore``.
    Documents live as JSON in the ``documents`` table; the integer
    ``version`` column is the compare-and-set token for transactions.
Architecture position: Kernel > DB.  Imports models/document.py and
    db/document_store.py only.

Invariants enforced:
    - A transaction writes a document it read only if the stored version is
      still the version it observed (UPDATE ... WHERE version = :seen).
      Zero affected rows means another writer got there first.
    - Writes to documents the transaction did not read are blind
      last-writer-wins overwrites.
    - Listeners are notified only after commit.

Failure modes:
    - TransactionConflictError on a lost compare-and-set or a racing insert
      of the same (collection, doc_id).
    - NotFoundError from ``update`` on an absent document.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from uniform_kernel.db.document_store import (
    DocumentStore,
    FieldFilter,
    Transaction,
    apply_field_changes,
    filter_and_sort,
)
from uniform_kernel.db.engine import session_scope
from uniform_kernel.domain.clock import Clock, SystemClock
from uniform_kernel.exceptions import NotFoundError, TransactionConflictError
from uniform_kernel.logging_config import get_logger
from uniform_kernel.models.document import DocumentRecord

logger = get_logger("db.sql_document_store")

T = TypeVar("T")

# Keeps IN (...) lists under SQLite's bound-parameter limit.
_GET_MANY_CHUNK = 500

_UNREAD = object()


def _to_doc(record: DocumentRecord | None) -> dict | None:
    if record is None:
        return None
    doc = copy.deepcopy(record.data)
    doc["id"] = record.doc_id
    return doc


def _body(data: Mapping[str, Any]) -> dict:
    body = copy.deepcopy(dict(data))
    body.pop("id", None)
    return body


class SqlTransaction(Transaction):
    """
    Buffered transaction over one SQLAlchemy session.

    Reads go to the database and record the observed version.  Writes are
    buffered and applied by ``apply()`` once the transaction function has
    returned.
    """

    def __init__(self, session: Session, clock: Clock):
        self._session = session
        self._clock = clock
        self._seen: dict[tuple[str, str], int | None] = {}
        self._writes: dict[tuple[str, str], dict | None] = {}

    @property
    def touched_collections(self) -> set[str]:
        return {collection for collection, _ in self._writes}

    def _load(self, collection: str, doc_id: str) -> DocumentRecord | None:
        return self._session.execute(
            select(DocumentRecord).where(
                DocumentRecord.collection == collection,
                DocumentRecord.doc_id == doc_id,
            )
        ).scalar_one_or_none()

    def get(self, collection: str, doc_id: str) -> dict | None:
        key = (collection, doc_id)
        if key in self._writes:
            pending = self._writes[key]
            if pending is None:
                return None
            doc = copy.deepcopy(pending)
            doc["id"] = doc_id
            return doc
        record = self._load(collection, doc_id)
        self._seen.setdefault(key, record.version if record is not None else None)
        return _to_doc(record)

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._writes[(collection, doc_id)] = _body(data)

    def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        current = self.get(collection, doc_id)
        if current is None:
            raise NotFoundError(collection, doc_id)
        self._writes[(collection, doc_id)] = _body(apply_field_changes(current, changes))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes[(collection, doc_id)] = None

    def apply(self) -> None:
        """Flush buffered writes, enforcing versions of documents read."""
        now = self._clock.now_utc()
        for (collection, doc_id), data in self._writes.items():
            seen = self._seen.get((collection, doc_id), _UNREAD)
            if seen is _UNREAD:
                self._blind_write(collection, doc_id, data, now)
            elif seen is None:
                if data is not None:
                    self._insert(collection, doc_id, data, now)
            else:
                self._checked_write(collection, doc_id, data, seen, now)

    def _insert(self, collection: str, doc_id: str, data: dict, now) -> None:
        # A conflict aborts the whole transaction, so no savepoint is needed.
        self._session.add(
            DocumentRecord(
                collection=collection,
                doc_id=doc_id,
                data=data,
                version=1,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise TransactionConflictError(collection, doc_id) from exc

    def _checked_write(
        self, collection: str, doc_id: str, data: dict | None, seen: int, now
    ) -> None:
        where = (
            DocumentRecord.collection == collection,
            DocumentRecord.doc_id == doc_id,
            DocumentRecord.version == seen,
        )
        if data is None:
            stmt = delete(DocumentRecord).where(*where)
        else:
            stmt = (
                update(DocumentRecord)
                .where(*where)
                .values(data=data, version=seen + 1, updated_at=now)
            )
        result = self._session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TransactionConflictError(collection, doc_id)

    def _blind_write(self, collection: str, doc_id: str, data: dict | None, now) -> None:
        record = self._load(collection, doc_id)
        if data is None:
            if record is not None:
                self._session.execute(
                    delete(DocumentRecord)
                    .where(
                        DocumentRecord.collection == collection,
                        DocumentRecord.doc_id == doc_id,
                    )
                    .execution_options(synchronize_session=False)
                )
        elif record is None:
            self._insert(collection, doc_id, data, now)
        else:
            self._session.execute(
                update(DocumentRecord)
                .where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.doc_id == doc_id,
                )
                .values(data=data, version=DocumentRecord.version + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )


class SqlDocumentStore(DocumentStore):
    """
    Document store over a SQLAlchemy session factory.

    Contract:
        Every public call opens its own session and commits or rolls back
        before returning.  The store does not retry.

    Usage:
        engine = build_engine("sqlite://")
        create_tables(engine)
        store = SqlDocumentStore(sessionmaker(bind=engine), clock)
    """

    def __init__(self, session_factory: sessionmaker[Session], clock: Clock | None = None):
        super().__init__()
        self._session_factory = session_factory
        self._clock = clock or SystemClock()

    def get(self, collection: str, doc_id: str) -> dict | None:
        with self._session_factory() as session:
            record = session.execute(
                select(DocumentRecord).where(
                    DocumentRecord.collection == collection,
                    DocumentRecord.doc_id == doc_id,
                )
            ).scalar_one_or_none()
            return _to_doc(record)

    def get_many(self, collection: str, doc_ids: Iterable[str]) -> list[dict]:
        ids = list(dict.fromkeys(doc_ids))
        found: dict[str, dict] = {}
        with self._session_factory() as session:
            for start in range(0, len(ids), _GET_MANY_CHUNK):
                chunk = ids[start:start + _GET_MANY_CHUNK]
                records = session.execute(
                    select(DocumentRecord).where(
                        DocumentRecord.collection == collection,
                        DocumentRecord.doc_id.in_(chunk),
                    )
                ).scalars()
                for record in records:
                    found[record.doc_id] = _to_doc(record)
        return [found[i] for i in ids if i in found]

    def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict]:
        with self._session_factory() as session:
            records = session.execute(
                select(DocumentRecord)
                .where(DocumentRecord.collection == collection)
                .order_by(DocumentRecord.doc_id)
            ).scalars()
            docs = [_to_doc(r) for r in records]
        return filter_and_sort(docs, filters, order_by, descending)

    def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self.run_transaction(lambda txn: txn.set(collection, doc_id, data))

    def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        self.run_transaction(lambda txn: txn.update(collection, doc_id, changes))

    def delete(self, collection: str, doc_id: str) -> None:
        self.run_transaction(lambda txn: txn.delete(collection, doc_id))

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        with session_scope(self._session_factory) as session:
            txn = SqlTransaction(session, self._clock)
            result = fn(txn)
            txn.apply()
        touched = txn.touched_collections
        if touched:
            logger.debug(
                "transaction_committed",
                extra={"collections": sorted(touched)},
            )
            self._notify(touched)
        return result
