"""In-process store and directory implementations."""

from copy import deepcopy
from typing import Iterable, Optional
import threading

from ..models.transaction import Customer, Transaction
from ..utils.exceptions import StoreError


class InMemoryTransactionStore:
    """
    Dictionary-backed transaction store.

    Safe to share between ingestion workers; every access happens under one
    lock, and stored objects are copies so callers cannot mutate them.
    """

    def __init__(self):
        self._by_hash: dict[str, Transaction] = {}
        self._by_id: dict[str, str] = {}
        self._lock = threading.Lock()

    def insert_if_absent(self, txn: Transaction) -> bool:
        if not txn.content_hash:
            raise StoreError("transaction has no content hash")
        with self._lock:
            if txn.content_hash in self._by_hash:
                return False
            self._by_hash[txn.content_hash] = deepcopy(txn)
            self._by_id[txn.id or txn.content_hash] = txn.content_hash
            return True

    def update_match(
        self, txn_id: str, customer_id: Optional[str], confidence: float
    ) -> None:
        with self._lock:
            key = self._by_id.get(txn_id)
            if key is None:
                raise StoreError(f"unknown transaction id {txn_id}")
            stored = self._by_hash[key]
            stored.is_matched = customer_id is not None
            stored.matched_customer_id = customer_id
            stored.match_confidence = confidence

    def get(self, txn_id: str) -> Optional[Transaction]:
        with self._lock:
            key = self._by_id.get(txn_id)
            return deepcopy(self._by_hash[key]) if key else None

    def list_unmatched(self) -> list[Transaction]:
        with self._lock:
            return [deepcopy(t) for t in self._by_hash.values() if not t.is_matched]

    def all(self) -> list[Transaction]:
        with self._lock:
            return [deepcopy(t) for t in self._by_hash.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_hash)


class InMemoryCustomerDirectory:
    """Customer directory over a fixed list."""

    def __init__(self, customers: Optional[Iterable[Customer]] = None):
        self._customers = list(customers or [])

    def list_customers(self) -> list[Customer]:
        return list(self._customers)
