"""
Ingestion pipeline: statements and notification emails into the transaction store.
"""

from collections import defaultdict
from pathlib import Path
from typing import Optional, Union
import logging

from ..config import IngestConfig
from ..enrichment import Enricher
from ..matching import PaymentMatcher
from ..models.reports import IngestReport, StatementParseResult
from ..models.transaction import EmailMessage, Transaction
from ..parsers.email_parser import EmailParseFailure, EmailTransactionExtractor, FailureLog
from ..quality import Deduplicator, ReconciliationChecker
from ..storage.base import CustomerDirectory, TransactionStore
from .mailbox import IdleMonitor, MailboxClient
from .metrics import IngestMetrics
from .statements import StatementProcessor
from .workers import process_concurrently

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """
    Stores parsed transactions idempotently and then matches the unmatched ones.

    Per-item problems are counted on the returned ``IngestReport``; only
    infrastructure failures (unreadable PDF, mailbox, store) raise.
    """

    def __init__(
        self,
        config: IngestConfig,
        store: TransactionStore,
        directory: Optional[CustomerDirectory] = None,
        metrics: Optional[IngestMetrics] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            config: Application configuration
            store: Transaction store
            directory: Customer directory; matching is skipped without one
            metrics: Shared counters (a private instance when omitted)
        """
        self.config = config
        self.store = store
        self.directory = directory
        self.metrics = metrics or IngestMetrics()

        self.statements = StatementProcessor(config)
        self.extractor = EmailTransactionExtractor(
            config.email,
            FailureLog(config.email.failed_log_path, config.email.failed_body_chars),
        )
        self.enricher = Enricher()
        self.deduplicator = Deduplicator(config.parsing.description_hash_prefix)
        self.checker = ReconciliationChecker(config.quality)
        self.matcher = PaymentMatcher(config.matching)

    def ingest_statement_file(self, file_path: Path) -> tuple[IngestReport, StatementParseResult]:
        """Parse a PDF statement and store its transactions."""
        parsed = self.statements.parse_file(file_path)
        return self._store_statement(parsed), parsed

    def ingest_statement_text(
        self, text: str, source_name: Optional[str] = None
    ) -> tuple[IngestReport, StatementParseResult]:
        """Parse extracted statement text and store its transactions."""
        parsed = self.statements.parse_text(text, source_name)
        return self._store_statement(parsed), parsed

    def _store_statement(self, parsed: StatementParseResult) -> IngestReport:
        report = IngestReport(
            processed=len(parsed.transactions) + len(parsed.rejected),
            failed=len(parsed.rejected),
            anomalous=parsed.summary.anomaly_count,
            failures=[f"line {r.line_index}: {r.reason}" for r in parsed.rejected],
        )
        report.inserted, report.duplicates = self.deduplicator.store_new(
            parsed.transactions, self.store
        )
        logger.info(
            f"{parsed.source_name or 'statement'}: {report.inserted} inserted, "
            f"{report.duplicates} already stored, {report.failed} rejected"
        )
        return self._match(report)

    def extract_email(self, message: EmailMessage) -> Union[Transaction, EmailParseFailure]:
        """Parse, enrich and hash one email."""
        result = self.extractor.extract(message)
        if isinstance(result, Transaction):
            self.enricher.enrich(result)
            self.deduplicator.assign_hash(result)
        return result

    def ingest_emails(self, messages: list[EmailMessage]) -> IngestReport:
        """
        Parse a batch of emails concurrently and store the transactions.

        One malformed email only adds to the failure count.
        """
        email_config = self.config.email
        outcomes = process_concurrently(
            messages,
            self.extract_email,
            limit=email_config.concurrency_limit,
            max_retries=email_config.max_retries,
            retry_delay=email_config.retry_delay_seconds,
            metrics=self.metrics,
        )

        report = IngestReport(processed=len(outcomes))
        transactions: list[Transaction] = []
        for outcome in outcomes:
            if not outcome.ok:
                report.failed += 1
                report.failures.append(f"email {outcome.index}: {outcome.error}")
            elif isinstance(outcome.result, EmailParseFailure):
                report.failed += 1
                report.failures.append(
                    f"{outcome.result.kind.value}: {outcome.result.subject or outcome.result.message_id}"
                )
            else:
                transactions.append(outcome.result)

        ordered = self.reconcile_by_account(transactions)
        report.anomalous = sum(1 for t in ordered if t.is_anomalous)
        report.inserted, report.duplicates = self.deduplicator.store_new(ordered, self.store)
        logger.info(
            f"Email batch: {report.inserted} inserted, {report.duplicates} already stored, "
            f"{report.failed} failed"
        )
        return self._match(report)

    def reconcile_by_account(self, transactions: list[Transaction]) -> list[Transaction]:
        """
        Check running balances separately for each account in a batch.

        Emails of one batch may come from different accounts; their balances
        are independent sequences.
        """
        accounts: dict[str, list[Transaction]] = defaultdict(list)
        for txn in transactions:
            accounts[txn.account_iban or txn.masked_account or ""].append(txn)

        ordered: list[Transaction] = []
        for account_transactions in accounts.values():
            checked, _ = self.checker.check(account_transactions)
            ordered.extend(checked)
        return ordered

    def fetch_emails(self, client: MailboxClient) -> IngestReport:
        """Process every matching email in the mailbox, batch by batch."""
        return client.process_unseen(self.ingest_emails, self.config.email.batch_size)

    def watch(self, client: MailboxClient, interval: Optional[float] = None) -> IdleMonitor:
        """Start a background monitor feeding new emails into this pipeline."""
        monitor = IdleMonitor(
            client,
            self.ingest_emails,
            interval if interval is not None else self.config.email.poll_interval_seconds,
        )
        monitor.start()
        return monitor

    def match_unmatched(self) -> IngestReport:
        if self.directory is None:
            return IngestReport()
        return self.matcher.match_unmatched(self.store, self.directory)

    def _match(self, report: IngestReport) -> IngestReport:
        if self.directory is None:
            return report
        matching = self.match_unmatched()
        report.matched = matching.matched
        report.unmatched = matching.unmatched
        report.failures.extend(matching.failures)
        return report
