"""Data models for ingested bank transactions and match results."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

ZERO = Decimal("0")


class TransactionSource(Enum):
    """Where the transaction evidence came from."""

    PDF = "pdf"
    EMAIL = "email"


class Direction(Enum):
    """Direction of value movement from the account holder's perspective."""

    IN = "IN"  # Money in (incoming transfers, refunds)
    OUT = "OUT"  # Money out (payments, fees)


class FailureKind(Enum):
    """Item-level outcomes that never abort a batch."""

    SEGMENTATION_GAP = "segmentation_gap"
    DIRECTION_UNRESOLVED = "direction_unresolved"
    TEMPLATE_MISMATCH = "template_mismatch"
    RECONCILIATION_ANOMALY = "reconciliation_anomaly"
    DUPLICATE_CONTENT = "duplicate_content"
    MATCHING_INCONCLUSIVE = "matching_inconclusive"


@dataclass
class RawRecord:
    """One candidate transaction string stitched from statement lines."""

    text: str
    line_index: int
    lines: list[str] = field(default_factory=list)


@dataclass
class Transaction:
    """
    Canonical unit of value movement.

    Both PDF statement rows and notification emails are normalized into this
    model before enrichment, hashing, reconciliation and matching.
    """

    # Source-local timestamp and its ISO-8601 rendering
    timestamp: datetime
    description: str

    # Mutually exclusive, non-negative
    debit: Decimal = ZERO
    credit: Decimal = ZERO

    # Signed: credit positive, debit negative
    amount: Decimal = ZERO
    currency: str = "TL"

    # Post-transaction balance (emails may not carry one)
    balance_after: Optional[Decimal] = None
    balance_currency: Optional[str] = None

    source: TransactionSource = TransactionSource.PDF

    # Enrichment
    category: str = "other"
    subcategory: str = "other"
    tags: list[str] = field(default_factory=list)
    operation: Optional[str] = None
    channel: Optional[str] = None
    direction: Optional[Direction] = None
    counterparty_name: Optional[str] = None
    counterparty_iban: Optional[str] = None

    # Email specific
    transaction_type: Optional[str] = None
    message_id: Optional[str] = None
    account_iban: Optional[str] = None
    masked_account: Optional[str] = None

    # Quality
    content_hash: str = ""
    confidence: float = 1.0
    anomalies: list[str] = field(default_factory=list)

    # Original text for audit trail
    source_raw: str = ""

    # Storage and matching state
    id: Optional[str] = None
    is_matched: bool = False
    matched_customer_id: Optional[str] = None
    match_confidence: float = 0.0

    @property
    def timestamp_iso(self) -> str:
        """Timestamp as ``YYYY-MM-DDTHH:MM:SS``."""
        return self.timestamp.strftime("%Y-%m-%dT%H:%M:%S")

    @property
    def is_anomalous(self) -> bool:
        return bool(self.anomalies)

    def degrade(self, factor: float, note: str) -> None:
        """Record an anomaly and compound the confidence penalty."""
        self.confidence = max(0.0, self.confidence * factor)
        self.anomalies.append(note)


@dataclass
class AccountInfo:
    """Statement-level account context, used for reporting only."""

    account_holder: Optional[str] = None
    account_number: Optional[str] = None
    iban: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_balance: Optional[Decimal] = None
    end_balance: Optional[Decimal] = None


@dataclass
class RejectedRecord:
    """A segmented record that could not be turned into a transaction."""

    line_index: int
    raw: str
    reason: str
    kind: FailureKind = FailureKind.SEGMENTATION_GAP


@dataclass
class HistoryEntry:
    """A past transaction amount attributed to a customer."""

    amount: Decimal
    occurred_at: datetime


@dataclass
class Customer:
    """A match target from the customer directory."""

    id: str
    name: str
    original_name: Optional[str] = None
    name_variations: list[str] = field(default_factory=list)
    is_active: bool = True
    recent_transactions: list[HistoryEntry] = field(default_factory=list)


@dataclass
class MatchCandidate:
    """A customer whose total score cleared the acceptance floor."""

    customer: Customer
    confidence: float
    methods: list[str] = field(default_factory=list)


@dataclass
class MatchResult:
    """Result of a customer matching attempt for one transaction."""

    matched: bool
    confidence: float = 0.0
    customer: Optional[Customer] = None
    methods: list[str] = field(default_factory=list)
    all_candidates: list[MatchCandidate] = field(default_factory=list)
    error: Optional[str] = None
    matched_at: datetime = field(default_factory=datetime.now)


@dataclass
class EmailMessage:
    """A bank notification email as handed over by the mailbox layer."""

    subject: str
    body_text: str
    message_id: Optional[str] = None
    from_address: Optional[str] = None
    date: Optional[datetime] = None
    html: Optional[str] = None
