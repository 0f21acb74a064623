"""ORM models for the uniform kernel."""

from uniform_kernel.models.document import DocumentRecord

__all__ = ["DocumentRecord"]
