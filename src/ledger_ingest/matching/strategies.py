"""
Scoring strategies for customer payment matching.
Each strategy scores one kind of evidence that a transaction belongs to a customer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
import re

from rapidfuzz.distance import Levenshtein

from ..config import MatchingConfig
from ..models.transaction import Customer, HistoryEntry, Transaction

_LETTER_RUN_RE = re.compile(r"[a-zçğıöşüâîû]+")


@dataclass
class StrategyScore:
    """One strategy's verdict on a (transaction, customer) pair."""

    matched: bool
    confidence: float
    method: str


def turkish_lower(text: str) -> str:
    """Lowercase with Turkish dotted/dotless I rules."""
    return text.replace("İ", "i").replace("I", "ı").lower()


class MatchingStrategy(ABC):
    """Abstract base class for matching strategies."""

    name: str = ""

    @abstractmethod
    def score(
        self, txn: Transaction, customer: Customer, now: Optional[datetime] = None
    ) -> StrategyScore:
        """
        Score how strongly the transaction points to the customer.

        Args:
            txn: Transaction being matched
            customer: Candidate customer
            now: Reference time for history windows

        Returns:
            Strategy verdict with confidence 0.0-1.0 and method label
        """
        pass


class NameMatchStrategy(MatchingStrategy):
    """
    Counterparty name against customer name, original name and variations.

    The highest confidence among the customer's names wins.
    """

    name = "name"

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.suffixes = {turkish_lower(s) for s in self.config.corporate_suffixes}

    def normalize(self, name: str) -> str:
        """Lowercase, keep letters only and drop corporate suffix words."""
        tokens = _LETTER_RUN_RE.findall(turkish_lower(name or ""))
        return "".join(t for t in tokens if t not in self.suffixes)

    def similarity(self, name1: str, name2: str) -> float:
        """Normalised Levenshtein similarity, 1.0 for equal normalised names."""
        a = self.normalize(name1)
        b = self.normalize(name2)
        if not a or not b:
            return 0.0
        if a == b:
            return 1.0
        return Levenshtein.normalized_similarity(a, b)

    def check_name(self, customer_name: str, counterparty: str) -> StrategyScore:
        similarity = self.similarity(customer_name, counterparty)
        if similarity >= self.config.name_similarity_threshold:
            return StrategyScore(True, similarity, "name_similarity")

        customer_words = turkish_lower(customer_name).split()
        counterparty_words = turkish_lower(counterparty).split()

        if customer_words and counterparty_words and customer_words[0] == counterparty_words[0]:
            return StrategyScore(True, self.config.first_word_confidence, "first_word_match")

        customer_initials = "".join(w[0] for w in customer_words)
        counterparty_initials = "".join(w[0] for w in counterparty_words)
        if len(customer_initials) > 1 and customer_initials == counterparty_initials:
            return StrategyScore(True, self.config.initials_confidence, "initials_match")

        return StrategyScore(False, similarity, "no_match")

    def score(
        self, txn: Transaction, customer: Customer, now: Optional[datetime] = None
    ) -> StrategyScore:
        counterparty = txn.counterparty_name or ""
        if not counterparty.strip():
            return StrategyScore(False, 0.0, "no_counterparty")

        best = self.check_name(customer.name, counterparty)
        alternates = ([customer.original_name] if customer.original_name else []) + list(
            customer.name_variations
        )
        for alternate in alternates:
            candidate = self.check_name(alternate, counterparty)
            if candidate.matched and (not best.matched or candidate.confidence > best.confidence):
                best = candidate
        return best


class AmountPatternStrategy(MatchingStrategy):
    """
    Transaction amount against the customer's recent payment history.

    Only the most recent entries inside the history window are considered.
    An empty history is a plain non-match.
    """

    name = "amount"

    def __init__(self, config: Optional[MatchingConfig] = None):
        self.config = config or MatchingConfig()
        self.exact_tolerance = Decimal(str(self.config.exact_amount_tolerance))
        self.percent = Decimal(str(self.config.amount_tolerance_percent)) / Decimal(100)

    def recent_history(
        self, customer: Customer, now: Optional[datetime] = None
    ) -> list[HistoryEntry]:
        cutoff = (now or datetime.now()) - timedelta(days=self.config.history_days)
        recent = [h for h in customer.recent_transactions if h.occurred_at >= cutoff]
        recent.sort(key=lambda h: h.occurred_at, reverse=True)
        return recent[: self.config.history_limit]

    def score(
        self, txn: Transaction, customer: Customer, now: Optional[datetime] = None
    ) -> StrategyScore:
        history = self.recent_history(customer, now)
        if not history:
            return StrategyScore(False, 0.0, "no_recent_transactions")

        amount = abs(txn.amount)
        amounts = sorted(abs(h.amount) for h in history)

        if any(abs(a - amount) < self.exact_tolerance for a in amounts):
            return StrategyScore(True, self.config.exact_amount_confidence, "exact_amount_match")

        average = sum(amounts) / len(amounts)
        tolerance = average * self.percent
        if abs(amount - average) <= tolerance:
            return StrategyScore(
                True, self.config.average_amount_confidence, "average_amount_pattern"
            )

        if len(amounts) >= 3:
            steps = [b - a for a, b in zip(amounts, amounts[1:])]
            expected_next = amounts[-1] + sum(steps) / len(steps)
            if abs(amount - expected_next) <= tolerance:
                return StrategyScore(
                    True, self.config.sequential_amount_confidence, "sequential_amount_pattern"
                )

        return StrategyScore(False, 0.0, "no_amount_pattern")


class IbanMatchStrategy(MatchingStrategy):
    """
    Counterparty IBAN against IBANs listed among the customer's names.

    Customer records carry no IBAN field, so the strategy only fires when an
    IBAN appears as a name variation; it is off unless configured.
    """

    name = "iban"
    IBAN_RE = re.compile(r"^TR[\dX]{24}$")

    def score(
        self, txn: Transaction, customer: Customer, now: Optional[datetime] = None
    ) -> StrategyScore:
        txn_iban = (txn.counterparty_iban or "").replace(" ", "")
        customer_ibans = [
            v.replace(" ", "") for v in customer.name_variations if self.IBAN_RE.match(v.replace(" ", ""))
        ]
        if not txn_iban or not customer_ibans:
            return StrategyScore(False, 0.0, "no_customer_iban")

        for iban in customer_ibans:
            if iban == txn_iban:
                return StrategyScore(True, 1.0, "exact_iban_match")
        for iban in customer_ibans:
            if iban[-4:] == txn_iban[-4:]:
                return StrategyScore(True, 0.8, "partial_iban_match")
        return StrategyScore(False, 0.0, "no_iban_match")
