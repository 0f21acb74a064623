"""
DocumentRecord -- one stored document.

Every collection (``schools``, ``students``, ``batchInventory``,
``deficitReports``, ...) lives in the single ``documents`` table.  The
document body is a JSON column; ``version`` is bumped on every write and is
the compare-and-set token for transactions.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from uniform_kernel.db.base import Base


class DocumentRecord(Base):
    """A JSON document addressed by (collection, doc_id)."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
    )

    collection: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    doc_id: Mapped[str] = mapped_column(String(128), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<DocumentRecord {self.collection}/{self.doc_id} v{self.version}>"
