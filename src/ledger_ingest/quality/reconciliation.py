"""
Running-balance consistency checks for one statement batch.
"""

from decimal import Decimal
from typing import Iterable, Optional
import logging

from ..config import QualityConfig
from ..models.reports import BalanceAnomaly, ReconciliationReport
from ..models.transaction import Transaction
from ..parsers.amounts import quantize_money

logger = logging.getLogger(__name__)


class ReconciliationChecker:
    """
    Validates that each balance follows from the previous one.

    The checker only annotates: amounts are never changed and no record is
    removed. Each failed check appends an anomaly note and multiplies the
    record's confidence, so independent problems compound.
    """

    def __init__(self, config: Optional[QualityConfig] = None):
        """
        Initialize the checker.

        Args:
            config: Quality section of the application configuration
        """
        self.config = config or QualityConfig()
        self.tolerance = Decimal(str(self.config.balance_tolerance))

    def check(
        self, transactions: Iterable[Transaction]
    ) -> tuple[list[Transaction], ReconciliationReport]:
        """
        Sort a batch by timestamp and check balances and in-batch duplicates.

        Args:
            transactions: All transactions of one statement, any order

        Returns:
            Tuple of (transactions in timestamp order, reconciliation report)
        """
        # sorted() is stable, so equal timestamps keep statement order
        ordered = sorted(transactions, key=lambda t: t.timestamp_iso)
        report = ReconciliationReport()

        for position in range(1, len(ordered)):
            anomaly = self._check_pair(ordered[position - 1], ordered[position], position)
            if anomaly is not None:
                report.anomalies.append(anomaly)

        seen: set[str] = set()
        for txn in ordered:
            if not txn.content_hash:
                continue
            if txn.content_hash in seen:
                txn.degrade(self.config.duplicate_factor, "duplicate record within batch")
                report.duplicate_hashes.append(txn.content_hash)
            else:
                seen.add(txn.content_hash)

        if report.anomalies or report.duplicate_hashes:
            logger.warning(
                f"Reconciliation: {report.total_anomalies} balance anomalies, "
                f"{len(report.duplicate_hashes)} in-batch duplicates"
            )
        return ordered, report

    def _check_pair(
        self, prev: Transaction, curr: Transaction, position: int
    ) -> Optional[BalanceAnomaly]:
        if prev.balance_after is None or curr.balance_after is None:
            return None

        expected = prev.balance_after + curr.credit - curr.debit
        difference = abs(expected - curr.balance_after)
        if difference <= self.tolerance:
            return None

        curr.degrade(
            self.config.balance_anomaly_factor,
            f"balance mismatch: expected {quantize_money(expected)}, "
            f"found {quantize_money(curr.balance_after)} "
            f"(difference {quantize_money(difference)} {curr.balance_currency or curr.currency})",
        )
        return BalanceAnomaly(
            position=position,
            expected_balance=quantize_money(expected),
            actual_balance=curr.balance_after,
            difference=quantize_money(difference),
            transaction_hash=curr.content_hash,
        )
