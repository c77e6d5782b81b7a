"""Custom exceptions for the ledger ingestion application."""


class LedgerIngestError(Exception):
    """Base exception for ledger ingestion errors."""

    pass


class StatementReadError(LedgerIngestError):
    """The statement source could not be read or converted to text."""

    pass


class MailboxError(LedgerIngestError):
    """The mailbox could not be opened, searched or fetched."""

    pass


class ConfigurationError(LedgerIngestError):
    """Error in configuration."""

    pass


class StoreError(LedgerIngestError):
    """The transaction store or customer directory failed."""

    pass


class ReportGenerationError(LedgerIngestError):
    """Error generating Excel report."""

    pass


class MessageDecodeError(LedgerIngestError):
    """A single email could not be decoded; other messages are unaffected."""

    pass
