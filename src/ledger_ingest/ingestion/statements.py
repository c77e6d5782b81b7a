"""
Statement processing: raw PDF text in, enriched and reconciled transactions out.
"""

from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import re

from ..config import IngestConfig
from ..enrichment import Enricher
from ..models.reports import StatementParseResult, StatementSummary
from ..models.transaction import AccountInfo, Transaction, ZERO
from ..parsers.amounts import parse_amount
from ..parsers.pdf_text import extract_text
from ..parsers.record_parser import RecordFieldParser
from ..parsers.segmenter import TextSegmenter
from ..quality import Deduplicator, ReconciliationChecker

logger = logging.getLogger(__name__)

HOLDER_RE = re.compile(r"Müşteri Adı Soyadı:\s*(.+)")
IBAN_RE = re.compile(r"IBAN/Hesap No:\s*(TR[\d ]+?)\s*(?:/\s*(\S+))?\s*$")
PERIOD_RE = re.compile(
    r"Tarih Aralığı:\s*(\d{2}/\d{2}/\d{4})\s*-\s*(\d{2}/\d{2}/\d{4})"
)
AVAILABLE_BALANCE_RE = re.compile(r"Kullanılabilir Bakiye:\s*([\d.,\-]+)\s*TL")


class StatementProcessor:
    """
    Runs one statement through segmentation, field parsing, enrichment,
    content hashing and balance reconciliation.
    """

    def __init__(self, config: Optional[IngestConfig] = None):
        """
        Initialize the processor.

        Args:
            config: Application configuration
        """
        self.config = config or IngestConfig()
        self.segmenter = TextSegmenter(self.config.parsing.boilerplate_patterns)
        self.record_parser = RecordFieldParser(self.config.parsing)
        self.enricher = Enricher()
        self.deduplicator = Deduplicator(self.config.parsing.description_hash_prefix)
        self.checker = ReconciliationChecker(self.config.quality)

    def parse_file(self, file_path: Path) -> StatementParseResult:
        """
        Parse a PDF statement.

        Raises:
            StatementReadError: If the PDF cannot be read
        """
        text = extract_text(file_path)
        return self.parse_text(text, source_name=Path(file_path).name)

    def parse_text(self, text: str, source_name: Optional[str] = None) -> StatementParseResult:
        """
        Parse already-extracted statement text.

        Args:
            text: Text layer of the whole statement
            source_name: Label recorded on the result (file name)

        Returns:
            Transactions in timestamp order plus account info and summaries
        """
        account_info = self.extract_account_info(text)

        records = self.segmenter.segment_text(text)
        transactions, rejected = self.record_parser.parse_many(records)
        self.enricher.enrich_many(transactions)
        self.deduplicator.assign_hashes(transactions)
        ordered, reconciliation = self.checker.check(transactions)

        if ordered and account_info.start_balance is None:
            first = ordered[0]
            if first.balance_after is not None:
                account_info.start_balance = first.balance_after - first.amount
        if ordered and account_info.end_balance is None:
            account_info.end_balance = ordered[-1].balance_after

        summary = self.summarize(ordered, len(records), len(rejected))
        summary.duplicate_count = len(reconciliation.duplicate_hashes)
        logger.info(
            f"Parsed {summary.transaction_count}/{summary.segmented_count} records "
            f"({summary.success_rate:.1%}), {summary.anomaly_count} anomalous"
        )

        return StatementParseResult(
            transactions=ordered,
            account_info=account_info,
            summary=summary,
            reconciliation=reconciliation,
            rejected=rejected,
            source_name=source_name,
        )

    @staticmethod
    def extract_account_info(text: str) -> AccountInfo:
        """Read holder, IBAN, period and balance from the statement header lines."""
        info = AccountInfo()

        for raw in text.splitlines():
            line = raw.strip()
            if info.account_holder is None:
                m = HOLDER_RE.search(line)
                if m:
                    info.account_holder = m.group(1).strip()
                    continue
            if info.iban is None:
                m = IBAN_RE.search(line)
                if m:
                    info.iban = m.group(1).replace(" ", "")
                    info.account_number = m.group(2)
                    continue
            if info.start_date is None:
                m = PERIOD_RE.search(line)
                if m:
                    info.start_date = datetime.strptime(m.group(1), "%d/%m/%Y").date()
                    info.end_date = datetime.strptime(m.group(2), "%d/%m/%Y").date()
                    continue
            if info.end_balance is None:
                m = AVAILABLE_BALANCE_RE.search(line)
                if m:
                    info.end_balance = parse_amount(m.group(1))

        return info

    @staticmethod
    def summarize(
        transactions: list[Transaction], segmented: int, rejected: int
    ) -> StatementSummary:
        total_debit = sum((t.debit for t in transactions), ZERO)
        total_credit = sum((t.credit for t in transactions), ZERO)
        return StatementSummary(
            total_debit=total_debit,
            total_credit=total_credit,
            transaction_count=len(transactions),
            segmented_count=segmented,
            rejected_count=rejected,
            anomaly_count=sum(1 for t in transactions if t.is_anomalous),
            category_distribution=dict(Counter(t.category for t in transactions)),
        )
