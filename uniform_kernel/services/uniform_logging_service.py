"""
UniformLoggingService -- record a uniform handed to (or requested by) a student.

Responsibility:
    Orchestrates the logging of a uniform: input validation, the stock
    check and decrement, and the append of a receipt-log entry to the
    student document.  Returns a ``LoggingResult`` in which insufficient
    stock is an expected outcome rather than an exception.

Architecture position:
    Kernel > Services -- imperative shell.  Uses ``StockLedger`` for stock
    and the document store for the student log.

Invariants enforced:
    - Validation runs before anything is read or written.
    - The log append commits in the same store transaction as the stock
      decrement; neither lands without the other.
    - A size-request entry never touches stock and contributes 0 to
      received totals.

Failure modes (raised, not returned):
    - ValidationError: bad quantity, or neither a size nor a wanted size.
    - StudentNotFoundError: the student document does not exist.
    - TransactionConflictError: the decrement or the log append kept
      conflicting after the ledger's bounded retries.

Usage:
    service = UniformLoggingService(store, clock, ledger=StockLedger(store, clock))
    result = service.log_uniform_received(
        student_id, uniform, quantity=1, size="M", actor="J. Banda",
    )
    if not result.is_success:
        show(result.error.current_stock)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from uniform_kernel.db.document_store import STUDENTS, DocumentStore, Transaction
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.values import (
    LogEntry,
    Policy,
    ReceivedEntry,
    SizeRequestEntry,
    Student,
    Uniform,
)
from uniform_kernel.exceptions import (
    InsufficientStockError,
    StudentNotFoundError,
    ValidationError,
)
from uniform_kernel.logging_config import LogContext, get_logger
from uniform_kernel.services.base import BaseService
from uniform_kernel.services.stock_ledger import StockDeduction, StockLedger

if TYPE_CHECKING:
    from uniform_kernel.services.deficit_report_service import DeficitReportStore

logger = get_logger("services.uniform_logging")


class LoggingStatus(str, Enum):
    """Outcome of a logging request."""

    LOGGED = "logged"
    SIZE_REQUESTED = "size_requested"
    INSUFFICIENT_STOCK = "insufficient_stock"


@dataclass(frozen=True)
class LoggingResult:
    """Result of ``log_uniform_received``."""

    status: LoggingStatus
    entry: LogEntry | None = None
    error: InsufficientStockError | None = None
    deduction: StockDeduction | None = None

    @property
    def is_success(self) -> bool:
        return self.status in (LoggingStatus.LOGGED, LoggingStatus.SIZE_REQUESTED)

    def unwrap(self) -> LogEntry:
        """The logged entry, or raise the carried error."""
        if self.error is not None:
            raise self.error
        if self.entry is None:
            raise ValueError(f"No entry carried by a {self.status.value} result")
        return self.entry


def _validate(
    quantity: Any, size: str | None, size_wanted: str | None
) -> tuple[str | None, str | None]:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity", "must be an integer")
    if quantity < 0:
        raise ValidationError("quantity", "must not be negative")

    size = size.strip() if isinstance(size, str) else None
    wanted = size_wanted.strip() if isinstance(size_wanted, str) else None
    if size and wanted:
        raise ValidationError("size", "give either a size or a wanted size, not both")
    if size:
        return size, None
    if wanted:
        return None, wanted
    if size_wanted is not None:
        raise ValidationError("size_wanted", "must not be blank")
    raise ValidationError("size", "a size or a wanted size is required")


class UniformLoggingService(BaseService):
    """
    Logs uniforms against students.

    Contract:
        ``log_uniform_received`` returns a ``LoggingResult`` whose status is
        LOGGED, SIZE_REQUESTED, or INSUFFICIENT_STOCK.  Other failures raise.

    Non-goals:
        Does not resolve the acting user; ``actor`` is taken as given.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Clock | None = None,
        *,
        ledger: StockLedger | None = None,
        report_store: DeficitReportStore | None = None,
    ):
        super().__init__(store, clock)
        self.ledger = ledger or StockLedger(store, self.clock)
        self.report_store = report_store

    def log_uniform_received(
        self,
        student_id: str,
        uniform: Uniform | Policy | Mapping[str, Any],
        quantity: int,
        size: str | None = None,
        size_wanted: str | None = None,
        actor: str | None = None,
    ) -> LoggingResult:
        """
        Log ``quantity`` of ``uniform`` received by a student, or a size request.

        With ``size`` set, stock is checked and decremented and a received
        entry is appended in one transaction.  With only ``size_wanted``
        set, a size-request entry is appended and stock is untouched.
        """
        size, wanted = _validate(quantity, size, size_wanted)
        item = Uniform.coerce(uniform)
        if not item.id:
            raise ValidationError("uniform", "uniform id is required")

        with LogContext.bind(student_id=student_id, actor_id=actor):
            student_doc = self.store.get(STUDENTS, student_id)
            if student_doc is None:
                raise StudentNotFoundError(student_id)

            common = dict(
                uniform_id=item.id,
                uniform_name=item.name,
                uniform_type=item.type,
                logged_at=self.clock.isoformat(),
                logged_by=actor,
            )

            if wanted is not None:
                entry: LogEntry = SizeRequestEntry(wanted=wanted, **common)
                self.ledger.run_with_retry(
                    lambda: self.store.run_transaction(
                        lambda txn: self._append_entry(txn, student_id, entry)
                    ),
                    "log_append_retry",
                    uniform_id=item.id,
                )
                logger.info(
                    "uniform_size_requested",
                    extra={"uniform_id": item.id, "size_wanted": wanted},
                )
                result = LoggingResult(LoggingStatus.SIZE_REQUESTED, entry=entry)
            else:
                entry = ReceivedEntry(quantity=quantity, size=size, **common)
                try:
                    deduction = self.ledger.deduct(
                        item.id,
                        size,
                        quantity,
                        within=lambda txn: self._append_entry(txn, student_id, entry),
                    )
                except InsufficientStockError as exc:
                    logger.info(
                        "uniform_insufficient_stock",
                        extra={
                            "uniform_id": item.id,
                            "size": size,
                            "requested": quantity,
                            "current_stock": exc.current_stock,
                        },
                    )
                    return LoggingResult(LoggingStatus.INSUFFICIENT_STOCK, error=exc)
                logger.info(
                    "uniform_logged",
                    extra={
                        "uniform_id": item.id,
                        "size": size,
                        "quantity": quantity,
                        "batch_id": deduction.batch_id,
                    },
                )
                result = LoggingResult(
                    LoggingStatus.LOGGED, entry=entry, deduction=deduction
                )

            if self.report_store is not None:
                school_id = Student.from_document(student_doc).school_id
                if school_id:
                    self.report_store.refresh_from_store(school_id)
            return result

    @staticmethod
    def _append_entry(txn: Transaction, student_id: str, entry: LogEntry) -> None:
        doc = txn.get(STUDENTS, student_id)
        if doc is None:
            raise StudentNotFoundError(student_id)
        log = list(doc.get("uniformLog") or [])
        log.append(entry.to_document())
        txn.update(STUDENTS, student_id, {"uniformLog": log})
