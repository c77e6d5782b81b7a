"""Thread-safe processing counters for ingestion runs."""

from dataclasses import dataclass
import threading


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the counters."""

    total: int = 0
    processed: int = 0
    failed: int = 0
    retries: int = 0
    processing_seconds: float = 0.0

    @property
    def average_seconds(self) -> float:
        done = self.processed + self.failed
        return self.processing_seconds / done if done else 0.0

    @property
    def throughput(self) -> float:
        """Items finished per second of processing time."""
        if self.processing_seconds <= 0:
            return 0.0
        return (self.processed + self.failed) / self.processing_seconds


class IngestMetrics:
    """
    Counters shared by ingestion workers.

    One instance is injected wherever work is done; it is only cleared by an
    explicit ``reset()``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._total = 0
        self._processed = 0
        self._failed = 0
        self._retries = 0
        self._seconds = 0.0

    def record_queued(self, count: int = 1) -> None:
        with self._lock:
            self._total += count

    def record_processed(self, seconds: float = 0.0) -> None:
        with self._lock:
            self._processed += 1
            self._seconds += seconds

    def record_failed(self, seconds: float = 0.0) -> None:
        with self._lock:
            self._failed += 1
            self._seconds += seconds

    def record_retry(self) -> None:
        with self._lock:
            self._retries += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                total=self._total,
                processed=self._processed,
                failed=self._failed,
                retries=self._retries,
                processing_seconds=self._seconds,
            )

    def reset(self) -> None:
        with self._lock:
            self._total = 0
            self._processed = 0
            self._failed = 0
            self._retries = 0
            self._seconds = 0.0
