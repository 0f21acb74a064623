"""
Typed Exception Hierarchy for the Uniform Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from UniformKernelError:

    UniformKernelError (base)
    |
    +-- ValidationError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |
    +-- NotFoundError
    |   +-- SchoolNotFoundError
    |   +-- StudentNotFoundError
    |   +-- BatchNotFoundError
    |   +-- VariantNotFoundError
    |   +-- PolicyNotFoundError
    |   +-- LogEntryNotFoundError
    |
    +-- ConcurrencyError
    |   +-- TransactionConflictError
    |
    +-- DualWriteInconsistencyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|---------------------------------------
Validation    | VALIDATION_ERROR         | Malformed or missing input (no retry)
--------------|--------------------------|---------------------------------------
Stock         | INSUFFICIENT_STOCK       | Requested quantity exceeds stock
--------------|--------------------------|---------------------------------------
Not found     | SCHOOL_NOT_FOUND         | School document absent
              | STUDENT_NOT_FOUND        | Student document absent
              | BATCH_NOT_FOUND          | Batch document absent
              | VARIANT_NOT_FOUND        | Variant/size absent from a batch
              | POLICY_NOT_FOUND         | No policy matched a removal request
              | LOG_ENTRY_NOT_FOUND      | Log/distribution index out of range
--------------|--------------------------|---------------------------------------
Concurrency   | TRANSACTION_CONFLICT     | Document changed under a transaction
--------------|--------------------------|---------------------------------------
Roster        | DUAL_WRITE_INCONSISTENCY | One half of a roster dual-write failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. INSUFFICIENT STOCK IS AN EXPECTED OUTCOME:

    result = logging_service.log_uniform_received(...)
    if result.status is LoggingStatus.INSUFFICIENT_STOCK:
        offer_smaller_quantity(result.error.current_stock)

2. CONFLICTS ARE RETRIED BY THE STOCK LEDGER, NOT BY CALLERS:

    TransactionConflictError only reaches a caller after the ledger has
    used up its bounded number of attempts.

3. DUAL-WRITE FAILURES NEED RECONCILIATION:

    except DualWriteInconsistencyError as e:
        roster_service.rebuild_roster_summary(e.school_id)
"""


class UniformKernelError(Exception):
    """
    Base exception for all uniform kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "UNIFORM_KERNEL_ERROR"


# Validation


class ValidationError(UniformKernelError):
    """Input is malformed or incomplete. The caller must correct it."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Stock


class StockError(UniformKernelError):
    """Base exception for stock-related errors."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested quantity is larger than the stock that can be issued.

    Nothing has been deducted when this is raised.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        uniform_id: str,
        size: str,
        requested: int,
        current_stock: int,
    ):
        self.uniform_id = uniform_id
        self.size = size
        self.requested = requested
        self.current_stock = current_stock
        super().__init__(
            f"Only {current_stock} of {uniform_id} size {size} available, "
            f"{requested} requested"
        )


# Not found


class NotFoundError(UniformKernelError):
    """A referenced document does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class SchoolNotFoundError(NotFoundError):
    """School document does not exist."""

    code: str = "SCHOOL_NOT_FOUND"

    def __init__(self, school_id: str):
        self.school_id = school_id
        super().__init__("School", school_id)


class StudentNotFoundError(NotFoundError):
    """Student document does not exist."""

    code: str = "STUDENT_NOT_FOUND"

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__("Student", student_id)


class BatchNotFoundError(NotFoundError):
    """Batch document does not exist."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__("Batch", batch_id)


class VariantNotFoundError(NotFoundError):
    """Variant or size entry is missing from a batch."""

    code: str = "VARIANT_NOT_FOUND"

    def __init__(self, batch_id: str, variant_id: str, size: str | None = None):
        self.batch_id = batch_id
        self.variant_id = variant_id
        self.size = size
        label = variant_id if size is None else f"{variant_id} size {size}"
        super().__init__("Variant", f"{label} in batch {batch_id}")


class PolicyNotFoundError(NotFoundError):
    """No policy entry on the school matched a removal request."""

    code: str = "POLICY_NOT_FOUND"

    def __init__(self, school_id: str, policy_ref: str):
        self.school_id = school_id
        self.policy_ref = policy_ref
        super().__init__("Policy", f"{policy_ref} on school {school_id}")


class LogEntryNotFoundError(NotFoundError):
    """A log or distribution entry index is out of range."""

    code: str = "LOG_ENTRY_NOT_FOUND"

    def __init__(self, student_id: str, index: int, key: str | None = None):
        self.student_id = student_id
        self.index = index
        self.key = key
        where = f"{key}[{index}]" if key else f"uniformLog[{index}]"
        super().__init__("Log entry", f"{where} for student {student_id}")


# Concurrency


class ConcurrencyError(UniformKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class TransactionConflictError(ConcurrencyError):
    """
    A document read inside a transaction was modified before commit.

    Transient. The stock ledger retries these a bounded number of times;
    `attempts` records how many were made before surfacing.
    """

    code: str = "TRANSACTION_CONFLICT"

    def __init__(self, collection: str, doc_id: str, attempts: int = 1):
        self.collection = collection
        self.doc_id = doc_id
        self.attempts = attempts
        super().__init__(
            f"Transaction conflict on {collection}/{doc_id} "
            f"after {attempts} attempt(s)"
        )


# Roster


class DualWriteInconsistencyError(UniformKernelError):
    """
    One half of a roster dual-write succeeded and the other failed.

    The student document and the school's roster summary now disagree.
    `completed_step` names the write that landed, `failed_step` the one
    that did not.
    """

    code: str = "DUAL_WRITE_INCONSISTENCY"

    def __init__(
        self,
        school_id: str,
        student_id: str,
        completed_step: str,
        failed_step: str,
    ):
        self.school_id = school_id
        self.student_id = student_id
        self.completed_step = completed_step
        self.failed_step = failed_step
        super().__init__(
            f"Roster dual-write for student {student_id} in school {school_id} "
            f"left inconsistent: {completed_step} succeeded, {failed_step} failed"
        )
