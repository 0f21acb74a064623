"""Tests for BatchService: batch creation validation and restocking."""

from decimal import Decimal

import pytest

from uniform_kernel.exceptions import (
    BatchNotFoundError,
    ValidationError,
    VariantNotFoundError,
)


def _item(**overrides):
    item = {
        "uniformId": "shirt",
        "variantType": "Long sleeve",
        "color": "Blue",
        "price": "9.99",
        "sizes": [{"size": "S", "quantity": 4}, {"size": "M", "quantity": 0}],
    }
    item.update(overrides)
    return item


class TestCreateBatch:
    def test_create_and_load(self, batch_service, clock):
        created = batch_service.create_batch("March delivery", [_item()])

        loaded = batch_service.get_batch(created.id)
        assert loaded.name == "March delivery"
        assert loaded.created_at == clock.isoformat()
        variant = loaded.items[0]
        assert variant.id
        assert variant.price == Decimal("9.99")
        assert [(s.size, s.quantity) for s in variant.sizes] == [("S", 4), ("M", 0)]

    def test_variant_id_kept_when_given(self, batch_service):
        created = batch_service.create_batch("Delivery", [_item(id="v-1")])

        assert created.items[0].id == "v-1"

    @pytest.mark.parametrize(
        "item",
        [
            _item(uniformId=""),
            _item(price="-1"),
            _item(price="cheap"),
            _item(sizes=[{"size": " ", "quantity": 1}]),
            _item(sizes=[{"size": "M", "quantity": 1}, {"size": "M", "quantity": 2}]),
            _item(sizes=[{"size": "M", "quantity": -1}]),
            _item(sizes=[{"size": "M", "quantity": 1.5}]),
        ],
    )
    def test_invalid_items_rejected(self, batch_service, store, item):
        with pytest.raises(ValidationError):
            batch_service.create_batch("Delivery", [item])

        assert store.query("batchInventory") == []

    def test_name_required(self, batch_service):
        with pytest.raises(ValidationError):
            batch_service.create_batch("", [_item()])

    def test_unknown_batch(self, batch_service):
        with pytest.raises(BatchNotFoundError):
            batch_service.get_batch("ghost")


class TestRestock:
    def test_restock_existing_size(self, batch_service):
        batch = batch_service.create_batch("Delivery", [_item(id="v-1")])

        updated = batch_service.restock(batch.id, "v-1", "S", 6)

        assert updated.quantity == 10
        assert batch_service.get_batch(batch.id).items[0].size("S").quantity == 10

    def test_restock_adds_missing_size(self, batch_service):
        batch = batch_service.create_batch("Delivery", [_item(id="v-1")])

        batch_service.restock(batch.id, "v-1", "XL", 3)

        assert batch_service.get_batch(batch.id).items[0].size("XL").quantity == 3

    def test_restock_clears_depleted_at(self, batch_service, stock_ledger, make_batch):
        batch = make_batch(quantity=1)
        variant_id = batch.items[0].id
        stock_ledger.deduct("shirt", "M", 1)
        assert batch_service.get_batch(batch.id).items[0].size("M").depleted_at is not None

        batch_service.restock(batch.id, variant_id, "M", 5)

        size = batch_service.get_batch(batch.id).items[0].size("M")
        assert (size.quantity, size.depleted_at) == (5, None)

    def test_restock_unknown_variant(self, batch_service):
        batch = batch_service.create_batch("Delivery", [_item(id="v-1")])

        with pytest.raises(VariantNotFoundError):
            batch_service.restock(batch.id, "v-2", "S", 1)

    def test_restock_negative_quantity(self, batch_service):
        batch = batch_service.create_batch("Delivery", [_item(id="v-1")])

        with pytest.raises(ValidationError):
            batch_service.restock(batch.id, "v-1", "S", -2)
