"""
Tests for the SQLAlchemy document store.

Covers CRUD, queries, array helpers, compare-and-set transactions and
query subscriptions.
"""

import pytest

from uniform_kernel.db import (
    ArrayRemove,
    ArrayUnion,
    FieldFilter,
    SqlDocumentStore,
)
from uniform_kernel.exceptions import NotFoundError, TransactionConflictError


class TestCrud:
    def test_set_and_get_carries_id(self, store):
        store.set("things", "t1", {"name": "one", "id": "ignored"})

        assert store.get("things", "t1") == {"name": "one", "id": "t1"}

    def test_get_missing_returns_none(self, store):
        assert store.get("things", "nope") is None

    def test_add_generates_id(self, store):
        doc_id = store.add("things", {"name": "generated"})

        assert store.get("things", doc_id)["name"] == "generated"

    def test_set_overwrites(self, store):
        store.set("things", "t1", {"a": 1, "b": 2})
        store.set("things", "t1", {"a": 3})

        assert store.get("things", "t1") == {"a": 3, "id": "t1"}

    def test_update_merges_dotted_paths(self, store):
        store.set("things", "t1", {"a": 1, "nested": {"x": 1, "y": 2}})
        store.update("things", "t1", {"nested.x": 10, "b": 5})

        doc = store.get("things", "t1")
        assert doc["nested"] == {"x": 10, "y": 2}
        assert doc["a"] == 1
        assert doc["b"] == 5

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            store.update("things", "ghost", {"a": 1})

    def test_delete(self, store):
        store.set("things", "t1", {"a": 1})
        store.delete("things", "t1")

        assert store.get("things", "t1") is None

    def test_delete_missing_is_noop(self, store):
        store.delete("things", "ghost")

    def test_returned_documents_are_copies(self, store):
        store.set("things", "t1", {"items": [1]})
        doc = store.get("things", "t1")
        doc["items"].append(2)

        assert store.get("things", "t1")["items"] == [1]

    def test_collections_are_separate(self, store):
        store.set("a", "same", {"v": "a"})
        store.set("b", "same", {"v": "b"})

        assert store.get("a", "same")["v"] == "a"
        assert store.get("b", "same")["v"] == "b"


class TestArrayHelpers:
    def test_array_union_skips_existing(self, store):
        store.set("things", "t1", {"tags": ["a"]})
        store.update("things", "t1", {"tags": ArrayUnion("a", "b")})

        assert store.get("things", "t1")["tags"] == ["a", "b"]

    def test_array_union_creates_missing_field(self, store):
        store.set("things", "t1", {})
        store.update("things", "t1", {"tags": ArrayUnion({"id": "x"})})

        assert store.get("things", "t1")["tags"] == [{"id": "x"}]

    def test_array_remove_by_equality(self, store):
        store.set("things", "t1", {"tags": [{"id": "x"}, {"id": "y"}, {"id": "x"}]})
        store.update("things", "t1", {"tags": ArrayRemove({"id": "x"})})

        assert store.get("things", "t1")["tags"] == [{"id": "y"}]


class TestQueries:
    @pytest.fixture
    def populated(self, store):
        store.set("people", "c", {"name": "Chisomo", "age": 14, "tags": ["prefect"]})
        store.set("people", "a", {"name": "Alinafe", "age": 12, "tags": []})
        store.set("people", "b", {"name": "Bwalo", "age": 16})
        return store

    def test_default_order_is_id(self, populated):
        assert [d["id"] for d in populated.query("people")] == ["a", "b", "c"]

    def test_filters_combine(self, populated):
        docs = populated.query(
            "people",
            [FieldFilter("age", ">=", 13), FieldFilter("age", "<", 16)],
        )

        assert [d["id"] for d in docs] == ["c"]

    def test_in_and_array_contains(self, populated):
        assert [d["id"] for d in populated.query("people", [FieldFilter("name", "in", ["Bwalo"])])] == ["b"]
        assert [
            d["id"] for d in populated.query("people", [FieldFilter("tags", "array_contains", "prefect")])
        ] == ["c"]

    def test_order_by_descending(self, populated):
        docs = populated.query("people", order_by="age", descending=True)

        assert [d["age"] for d in docs] == [16, 14, 12]

    def test_missing_sort_values_last(self, populated):
        populated.set("people", "d", {"name": "Dalitso"})
        docs = populated.query("people", order_by="age")

        assert docs[-1]["id"] == "d"

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValueError):
            FieldFilter("age", "like", 3)

    def test_get_many_keeps_input_order_and_skips_missing(self, populated):
        docs = populated.get_many("people", ["c", "zzz", "a", "c"])

        assert [d["id"] for d in docs] == ["c", "a"]

    def test_get_many_large_id_list(self, store):
        for i in range(1200):
            store.set("bulk", f"d{i:04d}", {"n": i})

        docs = store.get_many("bulk", [f"d{i:04d}" for i in range(1200)])

        assert len(docs) == 1200
        assert docs[1199]["n"] == 1199


class TestTransactions:
    def test_commit_returns_value(self, store):
        store.set("things", "t1", {"n": 1})

        def bump(txn):
            doc = txn.get("things", "t1")
            txn.update("things", "t1", {"n": doc["n"] + 1})
            return doc["n"] + 1

        assert store.run_transaction(bump) == 2
        assert store.get("things", "t1")["n"] == 2

    def test_reads_see_own_writes(self, store):
        def fn(txn):
            txn.set("things", "t1", {"n": 5})
            return txn.get("things", "t1")

        assert store.run_transaction(fn) == {"n": 5, "id": "t1"}

    def test_exception_discards_writes(self, store):
        store.set("things", "t1", {"n": 1})

        def fn(txn):
            txn.update("things", "t1", {"n": 99})
            txn.set("things", "t2", {"n": 2})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.run_transaction(fn)

        assert store.get("things", "t1")["n"] == 1
        assert store.get("things", "t2") is None

    def test_concurrent_modification_conflicts(self, store, session_factory, clock):
        """A document changed after it was read makes the commit fail."""
        rival = SqlDocumentStore(session_factory, clock)
        store.set("things", "t1", {"n": 1})

        def fn(txn):
            doc = txn.get("things", "t1")
            rival.update("things", "t1", {"n": 50})
            txn.update("things", "t1", {"n": doc["n"] + 1})

        with pytest.raises(TransactionConflictError) as exc_info:
            store.run_transaction(fn)

        assert exc_info.value.collection == "things"
        assert exc_info.value.doc_id == "t1"
        assert store.get("things", "t1")["n"] == 50

    def test_racing_insert_conflicts(self, store, session_factory, clock):
        rival = SqlDocumentStore(session_factory, clock)

        def fn(txn):
            assert txn.get("things", "new") is None
            rival.set("things", "new", {"owner": "rival"})
            txn.set("things", "new", {"owner": "me"})

        with pytest.raises(TransactionConflictError):
            store.run_transaction(fn)

        assert store.get("things", "new")["owner"] == "rival"

    def test_conflict_rolls_back_other_writes(self, store, session_factory, clock):
        rival = SqlDocumentStore(session_factory, clock)
        store.set("things", "t1", {"n": 1})

        def fn(txn):
            txn.get("things", "t1")
            rival.update("things", "t1", {"n": 7})
            txn.set("other", "o1", {"written": True})
            txn.update("things", "t1", {"n": 2})

        with pytest.raises(TransactionConflictError):
            store.run_transaction(fn)

        assert store.get("other", "o1") is None

    def test_unread_documents_are_blind_writes(self, store, session_factory, clock):
        rival = SqlDocumentStore(session_factory, clock)
        store.set("things", "t1", {"n": 1})

        def fn(txn):
            rival.update("things", "t1", {"n": 7})
            txn.set("things", "t1", {"n": 2})

        store.run_transaction(fn)

        assert store.get("things", "t1")["n"] == 2


class TestSubscriptions:
    def test_initial_and_post_commit_snapshots(self, store):
        snapshots = []
        store.set("people", "a", {"name": "A"})
        store.watch("people", snapshots.append)

        store.set("people", "b", {"name": "B"})

        assert [len(s) for s in snapshots] == [1, 2]

    def test_filtered_subscription(self, store):
        snapshots = []
        store.watch("people", snapshots.append, [FieldFilter("level", "==", "Junior")])

        store.set("people", "a", {"level": "Junior"})
        store.set("people", "b", {"level": "Senior"})

        assert [[d["id"] for d in s] for s in snapshots] == [[], ["a"], ["a"]]

    def test_other_collections_do_not_notify(self, store):
        snapshots = []
        store.watch("people", snapshots.append)

        store.set("things", "t", {})

        assert len(snapshots) == 1

    def test_failed_transaction_does_not_notify(self, store):
        snapshots = []
        store.watch("people", snapshots.append)

        def fn(txn):
            txn.set("people", "a", {})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            store.run_transaction(fn)

        assert len(snapshots) == 1

    def test_unsubscribe(self, store):
        snapshots = []
        subscription = store.watch("people", snapshots.append)
        subscription.unsubscribe()
        subscription.unsubscribe()

        store.set("people", "a", {})

        assert len(snapshots) == 1
        assert subscription.active is False
