"""
StockLedger -- stock check and transactional decrement of batch sizes.

Responsibility:
    Locate issuable stock for a (uniform, size), and decrement it inside a
    document-store transaction.  Retries the decrement a bounded number of
    times when the store reports a transaction conflict.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - A size's quantity never goes negative: the quantity is re-read inside
      the transaction and the write is a compare-and-set on that read.
    - ``depletedAt`` is stamped on the first transition to zero only.
    - Every retry re-runs the stock check from scratch, so a retry never
      acts on the stale read that lost the race.

Failure modes:
    - InsufficientStockError: a fresh stock check found no single variant
      that covers the request.  Nothing has been deducted.
    - BatchNotFoundError / VariantNotFoundError: the batch chosen by the
      check vanished or changed shape before the transaction ran.
    - TransactionConflictError: still conflicting after ``max_attempts``;
      ``attempts`` on the error records how many were made.  A chosen size
      found below the request inside the transaction counts as a conflict,
      so the next attempt checks stock again.

Stock check semantics:
    Batches are scanned oldest first (``createdAt``), variants in document
    order.  The first variant whose size holds at least the requested
    quantity is chosen.  When none does, ``current_stock`` reports the
    largest quantity any single variant holds for that size (0 when the
    size is not stocked at all), which is the most the caller could issue
    in one go.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from uniform_kernel.db.document_store import BATCH_INVENTORY, DocumentStore, Transaction
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.values import Batch, SizeStock
from uniform_kernel.exceptions import (
    BatchNotFoundError,
    InsufficientStockError,
    TransactionConflictError,
    VariantNotFoundError,
)
from uniform_kernel.logging_config import get_logger
from uniform_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")

T = TypeVar("T")


@dataclass(frozen=True)
class StockCheck:
    """Outcome of a stock lookup for one (uniform, size, quantity)."""

    available: bool
    current_stock: int
    batch_id: str | None = None
    variant_id: str | None = None


@dataclass(frozen=True)
class StockDeduction:
    """A committed decrement."""

    uniform_id: str
    size: str
    quantity: int
    batch_id: str
    variant_id: str
    remaining: int
    depleted_at: str | None
    attempts: int


class StockLedger(BaseService):
    """
    Stock check and decrement over the ``batchInventory`` collection.

    Contract:
        ``deduct`` either commits exactly one decrement of ``quantity`` (and
        whatever ``within`` wrote in the same transaction) or raises with
        nothing written.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        *,
        max_attempts: int = 5,
        backoff_seconds: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(store, clock)
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def check_stock(self, uniform_id: str, size: str, quantity: int) -> StockCheck:
        best = 0
        for doc in self.store.query(BATCH_INVENTORY, order_by="createdAt"):
            batch = Batch.from_document(doc)
            for variant in batch.items:
                if variant.uniform_id != uniform_id:
                    continue
                size_stock = variant.size(size)
                if size_stock is None:
                    continue
                if size_stock.quantity >= quantity:
                    return StockCheck(
                        available=True,
                        current_stock=size_stock.quantity,
                        batch_id=batch.id,
                        variant_id=variant.id,
                    )
                best = max(best, size_stock.quantity)
        return StockCheck(available=False, current_stock=best)

    def run_with_retry(
        self, operation: Callable[[], T], event: str, **fields: Any
    ) -> tuple[T, int]:
        """
        Run ``operation`` until it stops raising ``TransactionConflictError``.

        Makes at most ``max_attempts`` attempts, sleeping
        ``backoff_seconds * attempt`` between them.  Returns the result and
        the number of attempts made.  Every conflict is logged as ``event``.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(), attempt
            except TransactionConflictError as exc:
                logger.warning(
                    event,
                    extra={
                        **fields,
                        "attempt": attempt,
                        "max_attempts": self.max_attempts,
                        "conflict_collection": exc.collection,
                        "conflict_doc_id": exc.doc_id,
                    },
                )
                if attempt == self.max_attempts:
                    raise TransactionConflictError(
                        exc.collection, exc.doc_id, attempts=attempt
                    ) from exc
                self._sleep(self.backoff_seconds * attempt)

    def deduct(
        self,
        uniform_id: str,
        size: str,
        quantity: int,
        within: Callable[[Transaction], None] | None = None,
    ) -> StockDeduction:
        """
        Decrement ``quantity`` of ``size`` for ``uniform_id``.

        ``within`` runs inside the same transaction after the decrement is
        staged, so its writes commit or fail together with it.
        """

        def attempt() -> tuple[str, str, SizeStock]:
            check = self.check_stock(uniform_id, size, quantity)
            if not check.available:
                raise InsufficientStockError(uniform_id, size, quantity, check.current_stock)
            return self.store.run_transaction(
                lambda txn: self._decrement(txn, check, size, quantity, within)
            )

        (batch_id, variant_id, updated), attempts = self.run_with_retry(
            attempt, "stock_retry", uniform_id=uniform_id, size=size
        )
        logger.info(
            "stock_deducted",
            extra={
                "uniform_id": uniform_id,
                "size": size,
                "quantity": quantity,
                "batch_id": batch_id,
                "variant_id": variant_id,
                "remaining": updated.quantity,
                "depleted": updated.quantity == 0,
                "attempts": attempts,
            },
        )
        return StockDeduction(
            uniform_id=uniform_id,
            size=size,
            quantity=quantity,
            batch_id=batch_id,
            variant_id=variant_id,
            remaining=updated.quantity,
            depleted_at=updated.depleted_at,
            attempts=attempts,
        )

    def _decrement(
        self,
        txn: Transaction,
        check: StockCheck,
        size: str,
        quantity: int,
        within: Callable[[Transaction], None] | None,
    ) -> tuple[str, str, SizeStock]:
        batch_id = check.batch_id or ""
        variant_id = check.variant_id or ""
        doc = txn.get(BATCH_INVENTORY, batch_id)
        if doc is None:
            raise BatchNotFoundError(batch_id)
        batch = Batch.from_document(doc)

        items = [item.to_document() for item in batch.items]
        for item in items:
            if item["id"] != variant_id:
                continue
            for index, size_doc in enumerate(item["sizes"]):
                if size_doc["size"] != size:
                    continue
                current = SizeStock.from_document(size_doc)
                if current.quantity < quantity:
                    # Drawn down since the check; another batch may still cover it.
                    raise TransactionConflictError(BATCH_INVENTORY, batch_id)
                updated = current.deduct(quantity, self.clock.isoformat())
                item["sizes"][index] = updated.to_document()
                txn.update(BATCH_INVENTORY, batch_id, {"items": items})
                if within is not None:
                    within(txn)
                return batch_id, variant_id, updated
        raise VariantNotFoundError(batch_id, variant_id, size)
