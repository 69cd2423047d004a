"""Tests for the ledger implementations."""

import os
import tempfile

import pytest

from classmarket.errors import PersistenceError, TransactionConflictError
from classmarket.persistence import InMemoryLedger, SqliteLedger, WriteOp
from classmarket.persistence.base import apply_write


@pytest.fixture(params=["memory", "sqlite"])
def any_ledger(request):
    """Each ledger implementation in turn."""
    if request.param == "memory":
        yield InMemoryLedger()
        return

    with tempfile.TemporaryDirectory() as tmp_dir:
        yield SqliteLedger(os.path.join(tmp_dir, "ledger.db"))


class TestApplyWrite:
    """Test single-document write semantics."""

    def test_set_replaces(self):
        assert apply_write({"a": 1, "b": 2}, WriteOp.set("c", "k", {"a": 5})) == {"a": 5}

    def test_merge_creates_missing(self):
        assert apply_write(None, WriteOp.merge("c", "k", {"a": 1})) == {"a": 1}

    def test_update_missing_raises(self):
        with pytest.raises(PersistenceError):
            apply_write(None, WriteOp.update("c", "k", {"a": 1}))

    def test_increment_starts_at_zero(self):
        assert apply_write({}, WriteOp.increment("c", "k", {"n": 3})) == {"n": 3}

    def test_increment_non_numeric_raises(self):
        with pytest.raises(PersistenceError):
            apply_write({"n": "x"}, WriteOp.increment("c", "k", {"n": 1}))

    def test_delete(self):
        assert apply_write({"a": 1}, WriteOp.delete("c", "k")) is None


class TestLedgerBasics:
    """Test point reads, writes and queries."""

    def test_set_and_get(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100, "class_code": "C1"})
        assert any_ledger.get("accounts", "s1") == {"cash": 100, "class_code": "C1"}

    def test_get_missing(self, any_ledger):
        assert any_ledger.get("accounts", "nobody") is None

    def test_merge_keeps_other_fields(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100, "name": "Alice"})
        any_ledger.set("accounts", "s1", {"cash": 50}, merge=True)
        assert any_ledger.get("accounts", "s1") == {"cash": 50, "name": "Alice"}

    def test_returned_documents_are_copies(self, any_ledger):
        any_ledger.set("accounts", "s1", {"tags": ["a"]})
        doc = any_ledger.get("accounts", "s1")
        doc["tags"].append("b")
        assert any_ledger.get("accounts", "s1") == {"tags": ["a"]}

    def test_query_filters_and_orders(self, any_ledger):
        any_ledger.set("accounts", "b", {"class_code": "C1"})
        any_ledger.set("accounts", "a", {"class_code": "C1"})
        any_ledger.set("accounts", "c", {"class_code": "C2"})

        found = any_ledger.query("accounts", class_code="C1")
        assert [key for key, _doc in found] == ["a", "b"]

    def test_delete_hides_document(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 1})
        any_ledger.delete("accounts", "s1")

        assert any_ledger.get("accounts", "s1") is None
        assert any_ledger.query("accounts") == []


class TestBatches:
    """Test atomic batches."""

    def test_batch_applies_in_order(self, any_ledger):
        any_ledger.commit_batch([
            WriteOp.set("accounts", "s1", {"cash": 10}),
            WriteOp.increment("accounts", "s1", {"cash": 5}),
            WriteOp.increment("accounts", "s1", {"cash": -3}),
        ])
        assert any_ledger.get("accounts", "s1")["cash"] == 12

    def test_failed_batch_writes_nothing(self, any_ledger):
        with pytest.raises(PersistenceError):
            any_ledger.commit_batch([
                WriteOp.set("accounts", "s1", {"cash": 10}),
                WriteOp.update("accounts", "missing", {"cash": 1}),
            ])
        assert any_ledger.get("accounts", "s1") is None

    def test_commit_in_chunks(self, any_ledger):
        ops = [WriteOp.increment("accounts", f"s{i}", {"cash": i}) for i in range(10)]
        chunks = any_ledger.commit_in_chunks(ops, 4)

        assert chunks == 3
        assert len(any_ledger.query("accounts")) == 10

    def test_commit_in_chunks_reports_committed_chunks_before_failure(self, any_ledger):
        ops = [WriteOp.increment("accounts", "s1", {"cash": 1}),
               WriteOp.update("accounts", "missing", {"cash": 1})]
        seen = []

        with pytest.raises(PersistenceError):
            any_ledger.commit_in_chunks(ops, 1, on_chunk=seen.append)

        assert len(seen) == 1
        assert any_ledger.get("accounts", "s1") == {"cash": 1}


class TestTransactions:
    """Test optimistic transactions."""

    def test_commit(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100})

        def debit(tx):
            doc = tx.get("accounts", "s1")
            tx.update("accounts", "s1", {"cash": doc["cash"] - 30})
            return doc["cash"] - 30

        assert any_ledger.run_transaction(debit) == 70
        assert any_ledger.get("accounts", "s1")["cash"] == 70

    def test_retry_on_conflict(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100})
        attempts = []

        def debit(tx):
            doc = tx.get("accounts", "s1")
            if not attempts:
                # A concurrent writer changes the document after our read
                any_ledger.set("accounts", "s1", {"cash": 500})
            attempts.append(doc["cash"])
            tx.update("accounts", "s1", {"cash": doc["cash"] - 30})

        any_ledger.run_transaction(debit)

        assert attempts == [100, 500]
        assert any_ledger.get("accounts", "s1")["cash"] == 470

    def test_conflict_after_delete_and_recreate(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100})
        attempts = []

        def read_then_race(tx):
            tx.get("accounts", "s1")
            if not attempts:
                any_ledger.delete("accounts", "s1")
                any_ledger.set("accounts", "s1", {"cash": 100})
            attempts.append(1)
            tx.merge("accounts", "s1", {"seen": True})

        any_ledger.run_transaction(read_then_race)
        assert len(attempts) == 2

    def test_gives_up_after_max_attempts(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 0})

        def always_conflicts(tx):
            doc = tx.get("accounts", "s1")
            any_ledger.set("accounts", "s1", {"cash": doc["cash"] + 1})
            tx.update("accounts", "s1", {"cash": -1})

        with pytest.raises(TransactionConflictError) as exc_info:
            any_ledger.run_transaction(always_conflicts, max_attempts=3)

        assert exc_info.value.attempts == 3

    def test_callback_exception_propagates_without_commit(self, any_ledger):
        any_ledger.set("accounts", "s1", {"cash": 100})

        def failing(tx):
            tx.get("accounts", "s1")
            raise ValueError("rejected")

        with pytest.raises(ValueError):
            any_ledger.run_transaction(failing)
        assert any_ledger.get("accounts", "s1")["cash"] == 100

    def test_read_after_write_rejected(self, any_ledger):
        def bad(tx):
            tx.set("accounts", "s1", {"cash": 1})
            tx.get("accounts", "s1")

        with pytest.raises(PersistenceError):
            any_ledger.run_transaction(bad)

    def test_atomic_add(self, any_ledger):
        assert any_ledger.atomic_add("treasuries", "C1", "total_amount", 300) == 300
        assert any_ledger.atomic_add("treasuries", "C1", "total_amount", -100) == 200
        assert any_ledger.get("treasuries", "C1") == {"total_amount": 200}


class TestSqlitePersistence:
    """Test durability of the SQLite ledger."""

    def test_data_survives_reopen(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = os.path.join(tmp_dir, "ledger.db")
            SqliteLedger(path).set("settings", "scheduler", {"vacation_mode": True})

            reopened = SqliteLedger(path)
            assert reopened.get("settings", "scheduler") == {"vacation_mode": True}
