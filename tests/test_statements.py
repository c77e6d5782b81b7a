from datetime import date
from decimal import Decimal

import pytest

from ledger_ingest.ingestion import IngestionPipeline, StatementProcessor
from ledger_ingest.models.transaction import Direction
from ledger_ingest.utils.exceptions import StatementReadError


def test_statement_text_end_to_end(statement_text):
    result = StatementProcessor().parse_text(statement_text, source_name="hesap.pdf")

    assert result.source_name == "hesap.pdf"
    assert [t.description for t in result.transactions] == [
        "FAST GELEN FAST - MEHMET DEMİR - Kira",
        "Fatura Ödemesi ISKI SU FATURASI",
        "GİDEN FAST - AYŞE KAYA - Aidat",
    ]
    assert [t.subcategory for t in result.transactions] == [
        "incoming_fast",
        "invoice",
        "outgoing_fast",
    ]
    assert result.transactions[2].direction is Direction.OUT
    assert result.transactions[2].counterparty_name == "AYŞE KAYA"
    assert result.rejected == []
    assert result.reconciliation.total_anomalies == 0
    assert all(len(t.content_hash) == 64 for t in result.transactions)


def test_account_info_from_header(statement_text):
    info = StatementProcessor().parse_text(statement_text).account_info

    assert info.account_holder == "AHMET YILMAZ"
    assert info.iban == "TR120006701000000012345678"
    assert info.account_number == "12345678"
    assert info.start_date == date(2025, 8, 1)
    assert info.end_date == date(2025, 8, 31)
    assert info.start_balance == Decimal("10000.00")
    assert info.end_balance == Decimal("10450.00")


def test_summary_totals(statement_text):
    summary = StatementProcessor().parse_text(statement_text).summary

    assert summary.total_credit == Decimal("1500.00")
    assert summary.total_debit == Decimal("1050.00")
    assert summary.transaction_count == 3
    assert summary.segmented_count == 3
    assert summary.success_rate == 1.0
    assert summary.anomaly_count == 0
    assert summary.category_distribution == {"incoming": 1, "invoice": 1, "outgoing": 1}


def test_closing_balance_falls_back_to_last_record(statement_text):
    without_header = statement_text.replace("Kullanılabilir Bakiye: 10.450,00 TL\n", "")
    info = StatementProcessor().parse_text(without_header).account_info
    assert info.end_balance == Decimal("10450.00")


def test_broken_balance_is_annotated(statement_text):
    broken = statement_text.replace("11.250,00 TL", "11.200,00 TL")
    result = StatementProcessor().parse_text(broken)

    assert result.summary.anomaly_count == 2
    assert result.transactions[1].confidence == pytest.approx(0.8)
    assert result.transactions[1].amount == Decimal("-250.00")


def test_reingesting_a_statement_inserts_nothing(config, statement_text, store):
    pipeline = IngestionPipeline(config, store)

    first, _ = pipeline.ingest_statement_text(statement_text, "hesap.pdf")
    second, _ = pipeline.ingest_statement_text(statement_text, "hesap.pdf")

    assert (first.inserted, first.duplicates) == (3, 0)
    assert (second.inserted, second.duplicates) == (0, 3)
    assert len(store) == 3


def test_unreadable_pdf_raises(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"not a pdf")

    with pytest.raises(StatementReadError):
        StatementProcessor().parse_file(path)
