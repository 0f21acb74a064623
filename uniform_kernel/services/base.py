"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor for every service in the kernel
    layer.  Services receive the ``DocumentStore`` and the ``Clock`` they
    use by injection; none of them reaches for ambient state.

Architecture position:
    Kernel > Services -- imperative shell over the pure domain and engines.

Invariants enforced:
    - Every timestamp a service writes comes from ``self.clock``.
    - Multi-document writes that must be atomic go through
      ``store.run_transaction``; everything else is a single-document
      last-writer-wins write.
"""

from abc import ABC

from uniform_kernel.db.document_store import DocumentStore
from uniform_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a ``DocumentStore`` and an optional ``Clock`` (defaulting
        to ``SystemClock``).

    Non-goals:
        - Does NOT provide read-only views -- those belong in
          ``uniform_kernel/selectors/``.
    """

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        self.store = store
        self.clock = clock or SystemClock()
