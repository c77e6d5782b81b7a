"""Parsers for statement text and notification emails."""

from .amounts import parse_amount
from .segmenter import TextSegmenter
from .record_parser import RecordFieldParser
from .email_parser import EmailParseFailure, EmailTransactionExtractor, FailureLog, clean_html

__all__ = [
    "parse_amount",
    "TextSegmenter",
    "RecordFieldParser",
    "EmailParseFailure",
    "EmailTransactionExtractor",
    "FailureLog",
    "clean_html",
]
