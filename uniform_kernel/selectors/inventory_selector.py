"""
InventorySelector -- read-only stock views over ``batchInventory``.
"""

from __future__ import annotations

from dataclasses import dataclass

from uniform_kernel.db.document_store import BATCH_INVENTORY
from uniform_kernel.domain.values import Batch
from uniform_kernel.exceptions import BatchNotFoundError
from uniform_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class DepletedSize:
    variant_id: str
    variant_type: str
    color: str
    size: str
    depleted_at: str | None


class InventorySelector(BaseSelector):
    """Stock totals and depletion views."""

    def stock_by_size(self, uniform_id: str) -> dict[str, int]:
        """
        Quantity on hand per size for a uniform, summed over every batch
        variant.  Sizes appear in the order first seen, oldest batch first.
        """
        totals: dict[str, int] = {}
        for doc in self.store.query(BATCH_INVENTORY, order_by="createdAt"):
            for variant in Batch.from_document(doc).items:
                if variant.uniform_id != uniform_id:
                    continue
                for size in variant.sizes:
                    totals[size.size] = totals.get(size.size, 0) + size.quantity
        return totals

    def depleted_sizes(self, batch_id: str) -> list[DepletedSize]:
        """Sizes at zero, most recently depleted first; undated ones last."""
        doc = self.store.get(BATCH_INVENTORY, batch_id)
        if doc is None:
            raise BatchNotFoundError(batch_id)
        depleted = [
            DepletedSize(
                variant_id=variant.id,
                variant_type=variant.variant_type,
                color=variant.color,
                size=size.size,
                depleted_at=size.depleted_at,
            )
            for variant in Batch.from_document(doc).items
            for size in variant.sizes
            if size.quantity == 0
        ]
        dated = sorted(
            (d for d in depleted if d.depleted_at),
            key=lambda d: d.depleted_at,
            reverse=True,
        )
        return dated + [d for d in depleted if not d.depleted_at]
