"""
Field extraction for a single stitched statement record.

A record reads left to right as ``<date time> <description> <amount> <ccy>
<balance> <ccy>``. The description is free text that may itself contain
numbers, so the financial block is located from the right.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence, Union
import logging
import re
import unicodedata

from ..models.transaction import (
    RawRecord,
    RejectedRecord,
    Transaction,
    TransactionSource,
    ZERO,
)
from ..config import ParsingConfig
from .amounts import parse_amount
from .segmenter import DATETIME_ANCHOR

logger = logging.getLogger(__name__)

# A Turkish-formatted amount that is not part of a longer number
AMOUNT_PATTERN = r"(?<![\d.,-])-?(?:\d{1,3}(?:[.\u00a0]\d{3})+|\d+)(?:,\d{1,2})?(?!\d)"
CURRENCY_PATTERN = r"[A-Z]{2,3}"

FINANCIAL_BLOCK = re.compile(
    rf"(?P<amount>{AMOUNT_PATTERN})\s*(?P<currency>{CURRENCY_PATTERN})?\s*"
    rf"(?P<balance>{AMOUNT_PATTERN})\s*(?P<balance_currency>{CURRENCY_PATTERN})?\s*$"
)
BARE_AMOUNT = re.compile(AMOUNT_PATTERN)

IBAN_OR_LONG_NUMBER = re.compile(r"\bTR\d{24}\b|\b\d{10,}\b")

# Bank boilerplate removed from descriptions, applied top to bottom
DESCRIPTION_CLEANUP_RULES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"\bInternet\s*-\s*Mobil\b", re.IGNORECASE), " "),
    (re.compile(r"\bDiğer\b", re.IGNORECASE), " "),
    (re.compile(r"\bŞube\b", re.IGNORECASE), " "),
    (re.compile(r"^\s*(?:Para\s+Gönder|Diğer)\s*", re.IGNORECASE), ""),
    (re.compile(r"C/H\s*MAHSUBEN", re.IGNORECASE), " "),
    (re.compile(r"\.Ykb\s*den\s*gelen", re.IGNORECASE), " "),
    (re.compile(r"\s*-\s*"), " - "),
    (re.compile(r"\.{2,}"), "."),
]

DEFAULT_DESCRIPTION = "İşlem"


class RecordFieldParser:
    """
    Parses one stitched record into a Transaction.

    Records without two trailing numeric tokens are rejected rather than
    raising; the caller counts them as segmentation gaps.
    """

    def __init__(self, config: Optional[ParsingConfig] = None):
        """
        Initialize the parser.

        Args:
            config: Parsing section of the application configuration
        """
        self.config = config or ParsingConfig()
        codes = "|".join(re.escape(c) for c in self.config.currency_codes)
        self.tagged_amount = re.compile(
            rf"(?P<value>{AMOUNT_PATTERN})\s*(?P<ccy>{codes})\b"
        )

    def parse(self, record: RawRecord) -> Optional[Transaction]:
        """
        Extract timestamp, description, amount and balance from a record.

        Args:
            record: Stitched record text and its origin line

        Returns:
            Parsed transaction, or None when the record is rejected
        """
        result = self.parse_or_reject(record)
        return result if isinstance(result, Transaction) else None

    def parse_or_reject(self, record: RawRecord) -> Union[Transaction, RejectedRecord]:
        """Parse a record, describing why when it cannot be parsed."""
        text = record.text

        anchor = DATETIME_ANCHOR.match(text)
        if not anchor:
            return self._reject(record, "missing date-time anchor")

        try:
            timestamp = datetime.strptime(
                f"{anchor.group(1)} {anchor.group(2)}", self.config.datetime_format
            )
        except ValueError:
            return self._reject(record, f"invalid date-time {anchor.group(0)!r}")

        block = self._extract_financial_block(text, anchor.end())
        if block is None:
            return self._reject(record, "fewer than two numeric tokens")

        amount, currency, balance, balance_currency, head = block

        description = self.clean_description(DATETIME_ANCHOR.sub("", head, count=1))

        transaction = Transaction(
            timestamp=timestamp,
            description=description,
            debit=-amount if amount < 0 else ZERO,
            credit=amount if amount > 0 else ZERO,
            amount=amount,
            currency=currency,
            balance_after=balance,
            balance_currency=balance_currency,
            source=TransactionSource.PDF,
            source_raw=text,
        )
        if amount == 0:
            transaction.anomalies.append("zero-amount record")
        return transaction

    def parse_many(
        self, records: Sequence[RawRecord]
    ) -> tuple[list[Transaction], list[RejectedRecord]]:
        """
        Parse every record, collecting rejections instead of failing.

        Args:
            records: Records from the segmenter

        Returns:
            Tuple of (transactions, rejected records)
        """
        transactions: list[Transaction] = []
        rejected: list[RejectedRecord] = []

        for record in records:
            result = self.parse_or_reject(record)
            if isinstance(result, Transaction):
                transactions.append(result)
            else:
                rejected.append(result)

        if rejected:
            logger.warning(f"{len(rejected)} record(s) could not be parsed")
        return transactions, rejected

    def _extract_financial_block(
        self, text: str, body_start: int
    ) -> Optional[tuple[Decimal, str, Decimal, str, str]]:
        """
        Locate amount and balance scanning from the right.

        Tried in order: an amount/balance block ending the record, the last
        two currency-tagged amounts anywhere in the record (continuation text
        after them stays in the description), and the last two bare numbers.

        Returns:
            Tuple of (amount, currency, balance, balance currency, description
            text), or None when fewer than two numbers exist
        """
        default_ccy = self.config.default_currency
        body = text[body_start:]

        match = FINANCIAL_BLOCK.search(body)
        if match:
            currency = match.group("currency") or default_ccy
            return (
                parse_amount(match.group("amount")),
                currency,
                parse_amount(match.group("balance")),
                match.group("balance_currency") or currency,
                text[: body_start + match.start()],
            )

        tagged = list(self.tagged_amount.finditer(body))
        if len(tagged) >= 2:
            amount_match, balance_match = tagged[-2], tagged[-1]
            return (
                parse_amount(amount_match.group("value")),
                amount_match.group("ccy"),
                parse_amount(balance_match.group("value")),
                balance_match.group("ccy"),
                text[: body_start + amount_match.start()] + " " + body[balance_match.end():],
            )

        # Last resort: last two bare numbers, default currency
        numbers = list(BARE_AMOUNT.finditer(body))
        if len(numbers) < 2:
            return None
        amount_match, balance_match = numbers[-2], numbers[-1]
        return (
            parse_amount(amount_match.group(0)),
            default_ccy,
            parse_amount(balance_match.group(0)),
            default_ccy,
            text[: body_start + amount_match.start()],
        )

    def clean_description(self, text: str) -> str:
        """
        Strip bank boilerplate and reference-number noise from a description.

        IBANs are kept verbatim; other digit runs of ten or more are dropped.
        """
        desc = text.strip()
        for pattern, replacement in DESCRIPTION_CLEANUP_RULES:
            desc = pattern.sub(replacement, desc)

        desc = IBAN_OR_LONG_NUMBER.sub(
            lambda m: m.group(0) if m.group(0).startswith("TR") else " ", desc
        )
        desc = unicodedata.normalize("NFKC", desc)
        desc = " ".join(desc.split()).strip(" -")
        return desc or DEFAULT_DESCRIPTION

    @staticmethod
    def _reject(record: RawRecord, reason: str) -> RejectedRecord:
        logger.debug(f"Rejected record at line {record.line_index}: {reason}")
        return RejectedRecord(line_index=record.line_index, raw=record.text, reason=reason)
