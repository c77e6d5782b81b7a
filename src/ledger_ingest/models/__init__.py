"""Data models for ledger ingestion."""

from .transaction import (
    AccountInfo,
    Customer,
    Direction,
    EmailMessage,
    FailureKind,
    HistoryEntry,
    MatchCandidate,
    MatchResult,
    RawRecord,
    RejectedRecord,
    Transaction,
    TransactionSource,
)
from .reports import (
    BalanceAnomaly,
    IngestReport,
    ReconciliationReport,
    StatementParseResult,
    StatementSummary,
)

__all__ = [
    "AccountInfo",
    "Customer",
    "Direction",
    "EmailMessage",
    "FailureKind",
    "HistoryEntry",
    "MatchCandidate",
    "MatchResult",
    "RawRecord",
    "RejectedRecord",
    "Transaction",
    "TransactionSource",
    "BalanceAnomaly",
    "IngestReport",
    "ReconciliationReport",
    "StatementParseResult",
    "StatementSummary",
]
