"""
Transaction enrichment: category, operation, channel, direction and
counterparty extraction from free-text descriptions.
"""

from typing import Iterable, Optional
import logging

from ..models.transaction import Direction, Transaction
from .rules import (
    CHANNEL_RULES,
    DIRECTION_OPERATION_PREFIX,
    DIRECTION_RULES,
    DIRECTION_WORDS,
    IBAN_RE,
    OPERATION_RULES,
    classify_tags,
    first_match,
    match_tags,
)

logger = logging.getLogger(__name__)

MIN_COUNTERPARTY_LENGTH = 2


def extract_counterparty(description: str) -> tuple[Optional[str], Optional[str]]:
    """
    Find the counterparty name and IBAN in a description.

    The name follows a "<direction> <operation> - " prefix and runs to the
    next dash. Without that prefix, the second dash-separated segment is used.
    Names shorter than two characters are treated as absent.

    Args:
        description: Cleaned transaction description

    Returns:
        Tuple of (name, iban), either of which may be None
    """
    description = description or ""

    iban_match = IBAN_RE.search(description)
    iban = iban_match.group(0) if iban_match else None

    name: Optional[str] = None
    prefix = DIRECTION_OPERATION_PREFIX.search(description)
    if prefix:
        rest = description[prefix.end() :]
        name = rest.split("-")[0].strip()
    else:
        parts = [part.strip() for part in description.split("-")]
        parts = [part for part in parts if part]
        if len(parts) >= 2:
            name = parts[1]

    if name is not None and len(name) < MIN_COUNTERPARTY_LENGTH:
        name = None

    return name, iban


class Enricher:
    """Annotates transactions with rule-derived tags and counterparty data."""

    def enrich(self, txn: Transaction) -> Transaction:
        """
        Enrich a transaction in place.

        Operation, channel and direction words are read from the original
        record text, since description cleanup strips channel names. Values
        already set by a source parser are kept.
        """
        evidence = f"{txn.source_raw} {txn.description}" if txn.source_raw else txn.description

        if txn.operation is None:
            txn.operation = first_match(OPERATION_RULES, evidence)
        if txn.channel is None:
            txn.channel = first_match(CHANNEL_RULES, evidence)
        stated_direction = first_match(DIRECTION_RULES, evidence)
        if txn.direction is None:
            txn.direction = stated_direction or self._direction_from_sign(txn)

        # Only a direction the bank wrote out takes part in categorisation
        direction_word = DIRECTION_WORDS[stated_direction] if stated_direction else ""
        tags = match_tags(f"{txn.operation or ''} {direction_word} {txn.description}")
        txn.tags = tags
        txn.category, txn.subcategory = classify_tags(tags)

        name, iban = extract_counterparty(txn.description)
        if txn.counterparty_name is None:
            txn.counterparty_name = name
        if txn.counterparty_iban is None:
            txn.counterparty_iban = iban

        return txn

    def enrich_many(self, transactions: Iterable[Transaction]) -> list[Transaction]:
        enriched = [self.enrich(txn) for txn in transactions]
        logger.debug(f"Enriched {len(enriched)} transaction(s)")
        return enriched

    @staticmethod
    def _direction_from_sign(txn: Transaction) -> Optional[Direction]:
        if txn.credit > 0:
            return Direction.IN
        if txn.debit > 0:
            return Direction.OUT
        return None
