"""
BatchService -- batch inventory documents.

Creates batches with validated variant/size quantities and restocks sizes.
Issuing stock goes through ``StockLedger``, never through this service.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from uniform_kernel.db.document_store import BATCH_INVENTORY, DocumentStore, Transaction
from uniform_kernel.domain.clock import Clock
from uniform_kernel.domain.values import Batch, SizeStock, Variant
from uniform_kernel.exceptions import (
    BatchNotFoundError,
    ValidationError,
    VariantNotFoundError,
)
from uniform_kernel.logging_config import get_logger
from uniform_kernel.services.base import BaseService

logger = get_logger("services.batch")


def _quantity(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(field, "must be a non-negative integer")
    return value


def _variant_from_input(raw: Mapping[str, Any], index: int) -> Variant:
    uniform_id = raw.get("uniformId")
    if not isinstance(uniform_id, str) or not uniform_id:
        raise ValidationError(f"items[{index}].uniformId", "is required")
    try:
        price = Decimal(str(raw.get("price", "0")))
    except InvalidOperation:
        raise ValidationError(f"items[{index}].price", "must be a number") from None
    if price < 0:
        raise ValidationError(f"items[{index}].price", "must not be negative")

    sizes = []
    seen: set[str] = set()
    for j, size_raw in enumerate(raw.get("sizes") or []):
        size = size_raw.get("size")
        if not isinstance(size, str) or not size.strip():
            raise ValidationError(f"items[{index}].sizes[{j}].size", "is required")
        if size in seen:
            raise ValidationError(f"items[{index}].sizes[{j}].size", "duplicate size")
        seen.add(size)
        sizes.append(
            SizeStock(
                size=size,
                quantity=_quantity(
                    size_raw.get("quantity"), f"items[{index}].sizes[{j}].quantity"
                ),
            )
        )
    return Variant(
        id=raw.get("id") or uuid4().hex,
        uniform_id=uniform_id,
        variant_type=str(raw.get("variantType") or ""),
        color=str(raw.get("color") or ""),
        price=price,
        sizes=tuple(sizes),
    )


class BatchService(BaseService):
    """Create, fetch, and restock batches."""

    def __init__(self, store: DocumentStore, clock: Clock | None = None):
        super().__init__(store, clock)

    def create_batch(self, name: str, items: Iterable[Mapping[str, Any]]) -> Batch:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", "batch name is required")
        variants = tuple(_variant_from_input(raw, i) for i, raw in enumerate(items))
        batch = Batch(
            id="",
            name=name.strip(),
            items=variants,
            created_at=self.clock.isoformat(),
        )
        batch_id = self.store.add(BATCH_INVENTORY, batch.to_document())
        logger.info(
            "batch_created",
            extra={"batch_id": batch_id, "variants": len(variants)},
        )
        return Batch(
            id=batch_id, name=batch.name, items=variants, created_at=batch.created_at
        )

    def get_batch(self, batch_id: str) -> Batch:
        doc = self.store.get(BATCH_INVENTORY, batch_id)
        if doc is None:
            raise BatchNotFoundError(batch_id)
        return Batch.from_document(doc)

    def restock(self, batch_id: str, variant_id: str, size: str, quantity: int) -> SizeStock:
        """
        Add ``quantity`` to a size, creating the size if the variant lacks it.

        ``depletedAt`` is cleared once the size holds stock again.
        """
        _quantity(quantity, "quantity")

        def apply(txn: Transaction) -> SizeStock:
            doc = txn.get(BATCH_INVENTORY, batch_id)
            if doc is None:
                raise BatchNotFoundError(batch_id)
            items = [v.to_document() for v in Batch.from_document(doc).items]
            for item in items:
                if item["id"] != variant_id:
                    continue
                for index, size_doc in enumerate(item["sizes"]):
                    if size_doc["size"] == size:
                        current = SizeStock.from_document(size_doc)
                        break
                else:
                    index = len(item["sizes"])
                    current = SizeStock(size=size, quantity=0)
                    item["sizes"].append(current.to_document())
                total = current.quantity + quantity
                updated = SizeStock(
                    size=size,
                    quantity=total,
                    depleted_at=current.depleted_at if total == 0 else None,
                )
                item["sizes"][index] = updated.to_document()
                txn.update(BATCH_INVENTORY, batch_id, {"items": items})
                return updated
            raise VariantNotFoundError(batch_id, variant_id)

        updated = self.store.run_transaction(apply)
        logger.info(
            "batch_restocked",
            extra={
                "batch_id": batch_id,
                "variant_id": variant_id,
                "size": size,
                "quantity": quantity,
                "on_hand": updated.quantity,
            },
        )
        return updated
