"""Transaction stores and customer directories."""

from .base import CustomerDirectory, TransactionStore
from .csv_directory import CsvCustomerDirectory
from .memory import InMemoryCustomerDirectory, InMemoryTransactionStore
from .sql import SqlTransactionStore

__all__ = [
    "CustomerDirectory",
    "TransactionStore",
    "CsvCustomerDirectory",
    "InMemoryCustomerDirectory",
    "InMemoryTransactionStore",
    "SqlTransactionStore",
]
