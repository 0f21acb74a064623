"""
Module: uniform_kernel.selectors.base
Responsibility: Abstract base class for read-only selectors.  Selectors form
    the query side of the kernel, giving structured read access to schools,
    rosters, reports, and stock without any mutation capability.
Architecture position: Kernel > Selectors.  May import db/, domain/, and
    uniform_engines.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never call add, set, update, delete, or
      run_transaction on the store.
    - DTO return convention: selectors return frozen dataclasses or plain
      documents, never store internals.
"""

from abc import ABC

from uniform_kernel.db.document_store import DocumentStore


class BaseSelector(ABC):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a ``DocumentStore`` from the caller, perform
        read-only queries, and return DTOs or computed results.
    """

    def __init__(self, store: DocumentStore):
        self.store = store
