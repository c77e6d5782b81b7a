"""Quality control: content hashing and balance reconciliation."""

from .dedup import Deduplicator, canonical_key, content_hash
from .reconciliation import ReconciliationChecker

__all__ = ["Deduplicator", "canonical_key", "content_hash", "ReconciliationChecker"]
