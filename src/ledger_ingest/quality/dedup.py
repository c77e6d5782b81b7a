"""
Content hashing for idempotent transaction storage.

The same statement is routinely uploaded more than once, and the same email
may be fetched again after a mailbox flag reset. A stable fingerprint of the
defining fields lets the store skip events it already holds.
"""

from typing import Iterable, Protocol
import hashlib
import logging

from ..models.transaction import Transaction, ZERO
from ..parsers.amounts import format_money

logger = logging.getLogger(__name__)

DESCRIPTION_PREFIX_LENGTH = 120
STORE_ID_LENGTH = 16


class InsertIfAbsent(Protocol):
    def insert_if_absent(self, txn: Transaction) -> bool: ...


def canonical_key(txn: Transaction, prefix_length: int = DESCRIPTION_PREFIX_LENGTH) -> str:
    """Build ``timestamp|amount|balance|description-prefix`` for a transaction."""
    balance = txn.balance_after if txn.balance_after is not None else ZERO
    return "|".join(
        [
            txn.timestamp_iso,
            format_money(txn.amount),
            format_money(balance),
            txn.description[:prefix_length],
        ]
    )


def content_hash(txn: Transaction, prefix_length: int = DESCRIPTION_PREFIX_LENGTH) -> str:
    """SHA-256 hex digest of the canonical key."""
    return hashlib.sha256(canonical_key(txn, prefix_length).encode("utf-8")).hexdigest()


class Deduplicator:
    """Assigns content hashes and performs idempotent inserts."""

    def __init__(self, prefix_length: int = DESCRIPTION_PREFIX_LENGTH):
        self.prefix_length = prefix_length

    def assign_hash(self, txn: Transaction) -> Transaction:
        txn.content_hash = content_hash(txn, self.prefix_length)
        txn.id = txn.content_hash[:STORE_ID_LENGTH]
        return txn

    def assign_hashes(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        return [self.assign_hash(txn) for txn in transactions]

    def store_new(
        self, transactions: Iterable[Transaction], store: InsertIfAbsent
    ) -> tuple[int, int]:
        """
        Insert transactions whose hash the store does not hold yet.

        A hash that already exists is a normal idempotence outcome: the record
        is skipped and counted, never overwritten.

        Args:
            transactions: Hashed transactions
            store: Transaction store offering ``insert_if_absent``

        Returns:
            Tuple of (inserted count, duplicate count)
        """
        inserted = 0
        duplicates = 0

        for txn in transactions:
            if not txn.content_hash:
                self.assign_hash(txn)
            if store.insert_if_absent(txn):
                inserted += 1
            else:
                duplicates += 1

        if duplicates:
            logger.info(f"Skipped {duplicates} already stored transaction(s)")
        return inserted, duplicates
