"""
Ledger contract used by every component that reads or mutates shared state.

A ledger is a document store keyed by (collection, key) offering point
reads, point writes, atomic multi-document batches and an optimistic
transaction primitive. Every document carries a version that changes on
each write (deletes included), which is what transactions compare at
commit time.
"""

import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, TypeVar

import structlog

from ..errors import PersistenceError, TransactionConflictError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DocKey = tuple[str, str]

SET = "set"
MERGE = "merge"
UPDATE = "update"
INCREMENT = "increment"
DELETE = "delete"


@dataclass(frozen=True)
class WriteOp:
    """One pending write against a single document."""
    kind: str
    collection: str
    key: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, collection: str, key: str, data: dict[str, Any]) -> "WriteOp":
        """Replace the whole document."""
        return cls(SET, collection, key, dict(data))

    @classmethod
    def merge(cls, collection: str, key: str, data: dict[str, Any]) -> "WriteOp":
        """Overwrite the given top-level fields, creating the document if needed."""
        return cls(MERGE, collection, key, dict(data))

    @classmethod
    def update(cls, collection: str, key: str, data: dict[str, Any]) -> "WriteOp":
        """Overwrite the given top-level fields of an existing document."""
        return cls(UPDATE, collection, key, dict(data))

    @classmethod
    def increment(cls, collection: str, key: str, deltas: dict[str, int]) -> "WriteOp":
        """Add deltas to numeric fields at commit time; missing fields start at 0."""
        return cls(INCREMENT, collection, key, dict(deltas))

    @classmethod
    def delete(cls, collection: str, key: str) -> "WriteOp":
        return cls(DELETE, collection, key)

    @property
    def doc_key(self) -> DocKey:
        return (self.collection, self.key)


def apply_write(current: Optional[dict[str, Any]], op: WriteOp) -> Optional[dict[str, Any]]:
    """
    Compute the document that results from applying `op` to `current`.

    Args:
        current: Existing document, or None if absent
        op: Write to apply

    Returns:
        New document, or None if the write deletes it

    Raises:
        PersistenceError: Update of a missing document or increment of a non-numeric field
    """
    if op.kind == SET:
        return copy.deepcopy(op.data)
    if op.kind == DELETE:
        return None
    if op.kind == UPDATE and current is None:
        raise PersistenceError(
            f"Cannot update missing document {op.collection}/{op.key}",
            operation=UPDATE,
            target=f"{op.collection}/{op.key}",
        )
    result = copy.deepcopy(current) if current is not None else {}
    if op.kind in (MERGE, UPDATE):
        result.update(copy.deepcopy(op.data))
        return result
    if op.kind == INCREMENT:
        for name, delta in op.data.items():
            existing = result.get(name) or 0
            if isinstance(existing, bool) or not isinstance(existing, (int, float)):
                raise PersistenceError(
                    f"Field '{name}' of {op.collection}/{op.key} is not numeric",
                    operation=INCREMENT,
                    target=f"{op.collection}/{op.key}",
                )
            result[name] = existing + delta
        return result
    raise PersistenceError(f"Unknown write kind '{op.kind}'", operation=op.kind)


def apply_writes(
    ops: Iterable[WriteOp],
    load: Callable[[DocKey], Optional[dict[str, Any]]],
) -> dict[DocKey, Optional[dict[str, Any]]]:
    """
    Fold a sequence of writes into final document states.

    Later writes to the same document see the result of earlier ones.
    Nothing is installed here; callers apply the returned mapping only if
    every write succeeded.
    """
    staged: dict[DocKey, Optional[dict[str, Any]]] = {}
    for op in ops:
        current = staged[op.doc_key] if op.doc_key in staged else load(op.doc_key)
        staged[op.doc_key] = apply_write(current, op)
    return staged


def matches(doc: dict[str, Any], equals: dict[str, Any]) -> bool:
    return all(doc.get(name) == value for name, value in equals.items())


class Transaction:
    """
    Buffer of reads and writes executed by `Ledger.run_transaction`.

    All reads must happen before the first write. Writes are applied at
    commit only if none of the documents read have changed since.
    """

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger
        self._read_versions: dict[DocKey, int] = {}
        self._ops: list[WriteOp] = []

    @property
    def read_versions(self) -> dict[DocKey, int]:
        return dict(self._read_versions)

    @property
    def operations(self) -> list[WriteOp]:
        return list(self._ops)

    def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        if self._ops:
            raise PersistenceError(
                "Transaction reads must happen before writes",
                operation="transaction_read",
                target=f"{collection}/{key}",
            )
        doc, version = self._ledger._read_versioned(collection, key)
        self._read_versions.setdefault((collection, key), version)
        return doc

    def set(self, collection: str, key: str, data: dict[str, Any]) -> None:
        self._ops.append(WriteOp.set(collection, key, data))

    def merge(self, collection: str, key: str, data: dict[str, Any]) -> None:
        self._ops.append(WriteOp.merge(collection, key, data))

    def update(self, collection: str, key: str, data: dict[str, Any]) -> None:
        self._ops.append(WriteOp.update(collection, key, data))

    def increment(self, collection: str, key: str, deltas: dict[str, int]) -> None:
        self._ops.append(WriteOp.increment(collection, key, deltas))

    def delete(self, collection: str, key: str) -> None:
        self._ops.append(WriteOp.delete(collection, key))


class Ledger(ABC):
    """Abstract document ledger."""

    @abstractmethod
    def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        """Point read. Returns a copy of the document or None."""

    @abstractmethod
    def query(self, collection: str, **equals: Any) -> list[tuple[str, dict[str, Any]]]:
        """Return (key, document) pairs whose fields equal all given values, ordered by key."""

    @abstractmethod
    def commit_batch(self, ops: list[WriteOp]) -> None:
        """Apply all writes atomically: either every write lands or none does."""

    @abstractmethod
    def _read_versioned(self, collection: str, key: str) -> tuple[Optional[dict[str, Any]], int]:
        """Read a document with its current version (0 if never written)."""

    @abstractmethod
    def _commit_if_unchanged(self, read_versions: dict[DocKey, int], ops: list[WriteOp]) -> bool:
        """Apply `ops` atomically iff every read document still has its read version."""

    def set(self, collection: str, key: str, data: dict[str, Any], merge: bool = False) -> None:
        op = WriteOp.merge(collection, key, data) if merge else WriteOp.set(collection, key, data)
        self.commit_batch([op])

    def delete(self, collection: str, key: str) -> None:
        self.commit_batch([WriteOp.delete(collection, key)])

    def commit_in_chunks(self, ops: list[WriteOp], chunk_size: int,
                         on_chunk: Optional[Callable[[list[WriteOp]], None]] = None) -> int:
        """
        Commit writes as several batches of at most `chunk_size` operations.

        Each chunk is atomic on its own; a failure stops at the failing chunk.
        `on_chunk` is called after each chunk commits, so callers can tell
        whether anything was written before a failure.

        Returns:
            Number of chunks committed
        """
        committed = 0
        for start in range(0, len(ops), chunk_size):
            chunk = ops[start:start + chunk_size]
            self.commit_batch(chunk)
            committed += 1
            if on_chunk is not None:
                on_chunk(chunk)
        return committed

    def run_transaction(self, fn: Callable[[Transaction], T], max_attempts: int = 5) -> T:
        """
        Run `fn` as an optimistic read-modify-write transaction.

        `fn` may be called several times and must not have side effects
        outside the transaction it is given. Exceptions raised by `fn`
        abort the transaction and propagate without a retry.

        Args:
            fn: Callback receiving a Transaction
            max_attempts: Attempts before giving up on conflicts

        Returns:
            Whatever `fn` returned on the attempt that committed

        Raises:
            TransactionConflictError: Every attempt conflicted
        """
        for attempt in range(1, max_attempts + 1):
            tx = Transaction(self)
            result = fn(tx)
            if self._commit_if_unchanged(tx.read_versions, tx.operations):
                return result
            logger.debug("Transaction conflict, retrying", attempt=attempt)

        raise TransactionConflictError(
            f"Transaction did not commit after {max_attempts} attempts",
            attempts=max_attempts,
        )

    def atomic_add(self, collection: str, key: str, field_name: str, delta: int) -> int:
        """
        Atomically add `delta` to a numeric field and return the new value.

        A missing document or field starts at 0.
        """
        def add(tx: Transaction) -> int:
            doc = tx.get(collection, key) or {}
            new_value = (doc.get(field_name) or 0) + delta
            tx.merge(collection, key, {field_name: new_value})
            return new_value

        return self.run_transaction(add)
