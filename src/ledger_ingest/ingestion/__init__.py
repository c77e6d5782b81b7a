"""Ingestion: statement processing, mailbox access and the storing pipeline."""

from .mailbox import IdleMonitor, MailboxClient, parse_raw_email
from .metrics import IngestMetrics, MetricsSnapshot
from .pipeline import IngestionPipeline
from .statements import StatementProcessor
from .workers import WorkOutcome, process_concurrently

__all__ = [
    "IdleMonitor",
    "MailboxClient",
    "parse_raw_email",
    "IngestMetrics",
    "MetricsSnapshot",
    "IngestionPipeline",
    "StatementProcessor",
    "WorkOutcome",
    "process_concurrently",
]
