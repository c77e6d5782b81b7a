"""Rule-based transaction enrichment."""

from .enricher import Enricher, extract_counterparty
from .rules import CATEGORY_RULES, classify_tags, match_tags

__all__ = [
    "Enricher",
    "extract_counterparty",
    "CATEGORY_RULES",
    "classify_tags",
    "match_tags",
]
