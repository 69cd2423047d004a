"""In-process ledger for tests and single-process deployments."""

import copy
import threading
from typing import Any, Optional

from .base import DocKey, Ledger, WriteOp, apply_writes, matches


class InMemoryLedger(Ledger):
    """Dictionary-backed ledger guarded by one lock."""

    def __init__(self, initial: Optional[dict[str, dict[str, dict[str, Any]]]] = None):
        self._docs: dict[DocKey, dict[str, Any]] = {}
        # Versions outlive deletes so a delete-then-recreate is still a change
        self._versions: dict[DocKey, int] = {}
        self._lock = threading.RLock()

        for collection, docs in (initial or {}).items():
            for key, data in docs.items():
                self._install({(collection, key): copy.deepcopy(data)})

    def get(self, collection: str, key: str) -> Optional[dict[str, Any]]:
        with self._lock:
            doc = self._docs.get((collection, key))
            return copy.deepcopy(doc) if doc is not None else None

    def query(self, collection: str, **equals: Any) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            found = [
                (key, copy.deepcopy(doc))
                for (coll, key), doc in self._docs.items()
                if coll == collection and matches(doc, equals)
            ]
        return sorted(found, key=lambda item: item[0])

    def commit_batch(self, ops: list[WriteOp]) -> None:
        with self._lock:
            self._install(apply_writes(ops, self._docs.get))

    def _read_versioned(self, collection: str, key: str) -> tuple[Optional[dict[str, Any]], int]:
        with self._lock:
            doc = self._docs.get((collection, key))
            return (copy.deepcopy(doc) if doc is not None else None,
                    self._versions.get((collection, key), 0))

    def _commit_if_unchanged(self, read_versions: dict[DocKey, int], ops: list[WriteOp]) -> bool:
        with self._lock:
            for doc_key, version in read_versions.items():
                if self._versions.get(doc_key, 0) != version:
                    return False
            self._install(apply_writes(ops, self._docs.get))
            return True

    def _install(self, staged: dict[DocKey, Optional[dict[str, Any]]]) -> None:
        for doc_key, doc in staged.items():
            if doc is None:
                self._docs.pop(doc_key, None)
            else:
                self._docs[doc_key] = doc
            self._versions[doc_key] = self._versions.get(doc_key, 0) + 1
