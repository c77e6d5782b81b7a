"""
Weighted multi-strategy matcher that attributes transactions to customers.
"""

from datetime import datetime
from typing import Iterable, Optional
import logging

from ..config import MatchingConfig
from ..models.reports import IngestReport
from ..models.transaction import Customer, MatchCandidate, MatchResult, Transaction
from ..storage.base import CustomerDirectory, TransactionStore
from .strategies import (
    AmountPatternStrategy,
    IbanMatchStrategy,
    MatchingStrategy,
    NameMatchStrategy,
    turkish_lower,
)

logger = logging.getLogger(__name__)

# Float weights produce totals like 0.6999999999999998
SCORE_PRECISION = 9


class PaymentMatcher:
    """
    Scores every eligible customer and keeps those above the acceptance floor.

    Each strategy contributes ``confidence x weight`` when it matches; the
    highest total wins.
    """

    def __init__(self, config: Optional[MatchingConfig] = None):
        """
        Initialize the matcher.

        Args:
            config: Matching section of the application configuration
        """
        self.config = config or MatchingConfig()
        self.strategies = self._build_strategies()
        self.excluded_markers = [turkish_lower(m) for m in self.config.excluded_name_markers]

    def _build_strategies(self) -> list[tuple[MatchingStrategy, float]]:
        """
        Build weighted strategies from configuration.

        Returns:
            List of (strategy, weight) tuples
        """
        strategies: list[tuple[MatchingStrategy, float]] = [
            (NameMatchStrategy(self.config), self.config.name_weight),
            (AmountPatternStrategy(self.config), self.config.amount_weight),
        ]
        if self.config.iban_enabled:
            strategies.append((IbanMatchStrategy(), self.config.iban_weight))
        for strategy, weight in strategies:
            logger.debug(f"Loaded matching strategy: {strategy.name} (weight {weight})")
        return strategies

    def is_eligible(self, customer: Customer) -> bool:
        """Inactive customers and excluded names are never match targets."""
        if not customer.is_active:
            return False
        name = turkish_lower(customer.name)
        return not any(marker in name for marker in self.excluded_markers)

    def score_customer(
        self, txn: Transaction, customer: Customer, now: Optional[datetime] = None
    ) -> MatchCandidate:
        total = 0.0
        methods: list[str] = []
        for strategy, weight in self.strategies:
            result = strategy.score(txn, customer, now)
            if result.matched:
                total += result.confidence * weight
                methods.append(result.method)
        return MatchCandidate(customer=customer, confidence=total, methods=methods)

    def is_accepted(self, score: float) -> bool:
        return round(score, SCORE_PRECISION) >= self.config.acceptance_floor

    def match_against(
        self,
        txn: Transaction,
        customers: Iterable[Customer],
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """
        Match a transaction against a list of customers.

        Args:
            txn: Transaction to attribute
            customers: Candidate customers; ineligible ones are skipped
            now: Reference time for history windows (defaults to now)

        Returns:
            Best candidate plus all accepted candidates, or an unmatched result
        """
        candidates: list[MatchCandidate] = []
        for customer in customers:
            if not self.is_eligible(customer):
                continue
            candidate = self.score_customer(txn, customer, now)
            logger.debug(
                f"{customer.name}: {candidate.confidence:.3f} {', '.join(candidate.methods)}"
            )
            if self.is_accepted(candidate.confidence):
                candidates.append(candidate)

        if not candidates:
            logger.debug(f"No customer match for {txn.counterparty_name!r} {txn.amount}")
            return MatchResult(matched=False)

        candidates.sort(key=lambda c: c.confidence, reverse=True)
        best = candidates[0]
        logger.info(
            f"Matched {txn.counterparty_name!r} to {best.customer.name} "
            f"({best.confidence:.1%})"
        )
        return MatchResult(
            matched=True,
            confidence=best.confidence,
            customer=best.customer,
            methods=list(best.methods),
            all_candidates=candidates,
        )

    def match_transaction(
        self,
        txn: Transaction,
        directory: CustomerDirectory,
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """
        Match a transaction against the customer directory.

        A directory failure is reported on the result instead of raised.
        """
        try:
            customers = directory.list_customers()
        except Exception as e:
            logger.error(f"Customer directory unavailable: {e}")
            return MatchResult(matched=False, error=str(e))
        return self.match_against(txn, customers, now)

    @staticmethod
    def save_match_result(store: TransactionStore, txn: Transaction, result: MatchResult) -> None:
        """Persist the outcome of a successful match onto the stored transaction."""
        if not result.matched or result.customer is None or txn.id is None:
            return
        store.update_match(txn.id, result.customer.id, result.confidence)
        txn.is_matched = True
        txn.matched_customer_id = result.customer.id
        txn.match_confidence = result.confidence

    def match_unmatched(
        self,
        store: TransactionStore,
        directory: CustomerDirectory,
        now: Optional[datetime] = None,
    ) -> IngestReport:
        """
        Match every stored transaction that has no customer yet.

        Returns:
            Report with matched and unmatched counts
        """
        report = IngestReport()
        pending = store.list_unmatched()
        try:
            customers = directory.list_customers()
        except Exception as e:
            logger.error(f"Customer directory unavailable: {e}")
            report.failures.append(f"customer directory: {e}")
            report.unmatched = len(pending)
            return report

        for txn in pending:
            report.processed += 1
            result = self.match_against(txn, customers, now)
            if result.matched:
                self.save_match_result(store, txn, result)
                report.matched += 1
            else:
                report.unmatched += 1

        logger.info(f"Matching: {report.matched} matched, {report.unmatched} unmatched")
        return report
