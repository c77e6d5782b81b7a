from datetime import datetime
from decimal import Decimal
import hashlib

import pytest

from ledger_ingest.models.transaction import Transaction
from ledger_ingest.quality import Deduplicator, ReconciliationChecker, canonical_key, content_hash


def _txn(minute: int, amount: str, balance, description: str = "GELEN FAST - ALİ VELİ") -> Transaction:
    value = Decimal(amount)
    return Transaction(
        timestamp=datetime(2025, 8, 11, 9, minute, 0),
        description=description,
        amount=value,
        debit=-value if value < 0 else Decimal("0"),
        credit=value if value > 0 else Decimal("0"),
        balance_after=Decimal(balance) if balance is not None else None,
    )


def test_canonical_key_layout():
    txn = _txn(15, "1500", "11500")
    assert canonical_key(txn) == "2025-08-11T09:15:00|1500.00|11500.00|GELEN FAST - ALİ VELİ"


def test_missing_balance_hashes_as_zero():
    txn = _txn(15, "-20", None)
    assert canonical_key(txn).split("|")[2] == "0.00"


def test_description_is_truncated_in_the_key():
    first = _txn(15, "10", "10", description="A" * 120 + " first tail")
    second = _txn(15, "10", "10", description="A" * 120 + " other tail")
    assert content_hash(first) == content_hash(second)


def test_hash_is_sha256_and_id_is_its_prefix():
    txn = Deduplicator().assign_hash(_txn(15, "1500", "11500"))

    expected = hashlib.sha256(canonical_key(txn).encode("utf-8")).hexdigest()
    assert txn.content_hash == expected
    assert len(txn.content_hash) == 64
    assert txn.id == expected[:16]


def test_store_new_is_idempotent(store):
    dedup = Deduplicator()
    batch = dedup.assign_hashes([_txn(15, "1500", "11500"), _txn(16, "-500", "11000")])

    assert dedup.store_new(batch, store) == (2, 0)
    again = dedup.assign_hashes([_txn(15, "1500", "11500"), _txn(16, "-500", "11000")])
    assert dedup.store_new(again, store) == (0, 2)
    assert len(store) == 2


def test_consistent_balances_keep_full_confidence():
    ordered, report = ReconciliationChecker().check(
        [_txn(1, "100", "100"), _txn(2, "50", "150"), _txn(3, "-10", "140")]
    )

    assert report.total_anomalies == 0
    assert all(txn.confidence == 1.0 for txn in ordered)


def test_balance_break_degrades_the_later_record():
    ordered, report = ReconciliationChecker().check(
        [_txn(3, "-5", "140"), _txn(1, "100", "100"), _txn(2, "50", "150")]
    )

    assert [txn.balance_after for txn in ordered] == [Decimal("100"), Decimal("150"), Decimal("140")]
    assert report.total_anomalies == 1

    anomaly = report.anomalies[0]
    assert anomaly.position == 2
    assert anomaly.expected_balance == Decimal("145.00")
    assert anomaly.difference == Decimal("5.00")

    assert ordered[2].confidence == pytest.approx(0.8)
    assert ordered[2].anomalies[0].startswith("balance mismatch")
    # Amounts are annotated, never corrected
    assert ordered[2].amount == Decimal("-5")
    assert ordered[0].confidence == 1.0 and ordered[1].confidence == 1.0


def test_difference_within_tolerance_is_accepted():
    _, report = ReconciliationChecker().check([_txn(1, "100", "100"), _txn(2, "50", "150.01")])
    assert report.total_anomalies == 0


def test_records_without_balance_are_skipped():
    _, report = ReconciliationChecker().check(
        [_txn(1, "100", "100"), _txn(2, "50", None), _txn(3, "-10", "90")]
    )
    assert report.total_anomalies == 0


def test_in_batch_duplicate_is_penalised_once():
    dedup = Deduplicator()
    batch = dedup.assign_hashes([_txn(1, "100", "100"), _txn(1, "100", "100")])

    ordered, report = ReconciliationChecker().check(batch)

    assert len(report.duplicate_hashes) == 1
    assert ordered[0].confidence == 1.0
    # The duplicate also breaks the running balance: 0.8 * 0.5
    assert ordered[1].confidence == pytest.approx(0.4)
    assert "duplicate record within batch" in ordered[1].anomalies
