"""Utility modules."""

from .exceptions import (
    LedgerIngestError,
    StatementReadError,
    MailboxError,
    ConfigurationError,
    StoreError,
    ReportGenerationError,
    MessageDecodeError,
)
from .logging_config import setup_logging

__all__ = [
    "LedgerIngestError",
    "StatementReadError",
    "MailboxError",
    "ConfigurationError",
    "StoreError",
    "ReportGenerationError",
    "MessageDecodeError",
    "setup_logging",
]
