"""Collaborator protocols for transaction persistence and customer lookup."""

from typing import Optional, Protocol

from ..models.transaction import Customer, Transaction


class TransactionStore(Protocol):
    """Where canonical transactions live, keyed by content hash."""

    def insert_if_absent(self, txn: Transaction) -> bool:
        """Insert unless the content hash exists; True when inserted."""
        ...

    def update_match(
        self, txn_id: str, customer_id: Optional[str], confidence: float
    ) -> None:
        """Write the matching outcome onto a stored transaction."""
        ...

    def get(self, txn_id: str) -> Optional[Transaction]:
        ...

    def list_unmatched(self) -> list[Transaction]:
        ...

    def all(self) -> list[Transaction]:
        ...


class CustomerDirectory(Protocol):
    """Read-only source of match targets."""

    def list_customers(self) -> list[Customer]:
        """Customers with alternate names and recent transaction history."""
        ...
