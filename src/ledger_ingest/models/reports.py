"""Batch-level result models for statement parsing and ingestion runs."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from .transaction import AccountInfo, RejectedRecord, Transaction, ZERO


@dataclass
class BalanceAnomaly:
    """A break in the running-balance sequence."""

    position: int
    expected_balance: Decimal
    actual_balance: Decimal
    difference: Decimal
    transaction_hash: str = ""


@dataclass
class ReconciliationReport:
    """Outcome of checking one batch for balance and duplicate consistency."""

    anomalies: list[BalanceAnomaly] = field(default_factory=list)
    duplicate_hashes: list[str] = field(default_factory=list)

    @property
    def total_anomalies(self) -> int:
        return len(self.anomalies)


@dataclass
class StatementSummary:
    """Totals and quality figures for a parsed statement."""

    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    transaction_count: int = 0
    segmented_count: int = 0
    rejected_count: int = 0
    anomaly_count: int = 0
    duplicate_count: int = 0
    category_distribution: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        """Share of segmented records that parsed into transactions."""
        if self.segmented_count == 0:
            return 0.0
        return self.transaction_count / self.segmented_count


@dataclass
class StatementParseResult:
    """Everything produced from one statement's text."""

    transactions: list[Transaction]
    account_info: AccountInfo
    summary: StatementSummary
    reconciliation: ReconciliationReport
    rejected: list[RejectedRecord] = field(default_factory=list)
    source_name: Optional[str] = None


@dataclass
class IngestReport:
    """
    Counts reported by a batch ingestion run.

    Batches never fail wholesale on per-item errors; callers read the counts
    and the failure notes instead.
    """

    processed: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    anomalous: int = 0
    matched: int = 0
    unmatched: int = 0
    failures: list[str] = field(default_factory=list)

    def merge(self, other: "IngestReport") -> "IngestReport":
        """Add another report's counts into this one."""
        self.processed += other.processed
        self.inserted += other.inserted
        self.duplicates += other.duplicates
        self.failed += other.failed
        self.anomalous += other.anomalous
        self.matched += other.matched
        self.unmatched += other.unmatched
        self.failures.extend(other.failures)
        return self
