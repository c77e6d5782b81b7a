from datetime import datetime
from decimal import Decimal

from ledger_ingest.models.transaction import RawRecord, RejectedRecord, Transaction
from ledger_ingest.parsers.record_parser import RecordFieldParser


def _record(text: str, index: int = 0) -> RawRecord:
    return RawRecord(text=text, line_index=index, lines=[text])


def test_parses_fields_from_the_right():
    parser = RecordFieldParser()
    txn = parser.parse(
        _record(
            "11/08/2025 09:15:00 FAST Internet - Mobil GELEN FAST - MEHMET DEMİR - Kira "
            "1.500,00 TL 11.500,00 TL"
        )
    )

    assert txn is not None
    assert txn.timestamp == datetime(2025, 8, 11, 9, 15, 0)
    assert txn.timestamp_iso == "2025-08-11T09:15:00"
    assert txn.amount == Decimal("1500.00")
    assert txn.credit == Decimal("1500.00")
    assert txn.debit == Decimal("0")
    assert txn.balance_after == Decimal("11500.00")
    assert txn.currency == "TL"
    assert txn.description == "FAST GELEN FAST - MEHMET DEMİR - Kira"


def test_negative_amount_is_a_debit():
    txn = RecordFieldParser().parse(
        _record("11/08/2025 12:30:00 Fatura Ödemesi Diğer ISKI SU FATURASI -250,00 TL 11.250,00 TL")
    )

    assert txn.amount == Decimal("-250.00")
    assert txn.debit == Decimal("250.00")
    assert txn.credit == Decimal("0")
    assert txn.description == "Fatura Ödemesi ISKI SU FATURASI"


def test_text_after_the_amounts_stays_in_the_description():
    txn = RecordFieldParser().parse(
        _record("12/08/2025 10:00:00 POS HARCAMA 120,50 TL 5.000,00 TL MIGROS KADIKÖY")
    )

    assert txn.amount == Decimal("120.50")
    assert txn.balance_after == Decimal("5000.00")
    assert "MIGROS KADIKÖY" in txn.description


def test_amounts_without_currency_use_default():
    txn = RecordFieldParser().parse(_record("12/08/2025 10:00:00 Masraf -15,00 985,00"))

    assert txn.amount == Decimal("-15.00")
    assert txn.balance_after == Decimal("985.00")
    assert txn.currency == "TL"
    assert txn.balance_currency == "TL"


def test_reference_numbers_are_removed_but_ibans_kept():
    parser = RecordFieldParser()
    cleaned = parser.clean_description(
        "GİDEN EFT - TR120006701000000012345678 - Ref 123456789012 Ödeme"
    )
    assert "TR120006701000000012345678" in cleaned
    assert "123456789012" not in cleaned


def test_empty_description_gets_default():
    txn = RecordFieldParser().parse(_record("12/08/2025 10:00:00 Diğer 10,00 TL 20,00 TL"))
    assert txn.description == "İşlem"


def test_zero_amount_is_noted():
    txn = RecordFieldParser().parse(_record("12/08/2025 10:00:00 Bilgi 0,00 TL 20,00 TL"))
    assert txn.amount == Decimal("0")
    assert "zero-amount record" in txn.anomalies


def test_record_without_numbers_is_rejected():
    parser = RecordFieldParser()
    result = parser.parse_or_reject(_record("11/08/2025 17:39:14 Fee X", index=4))

    assert isinstance(result, RejectedRecord)
    assert result.line_index == 4
    assert parser.parse(_record("11/08/2025 17:39:14 Fee X")) is None


def test_invalid_date_is_rejected():
    result = RecordFieldParser().parse_or_reject(_record("31/02/2025 10:00:00 X 1,00 TL 2,00 TL"))
    assert isinstance(result, RejectedRecord)
    assert "invalid date-time" in result.reason


def test_parse_many_splits_results():
    transactions, rejected = RecordFieldParser().parse_many(
        [
            _record("11/08/2025 17:39:14 Fee X"),
            _record("12/08/2025 09:00:00 Fee Y 5,00 TL 95,00 TL", index=1),
        ]
    )
    assert len(transactions) == 1
    assert isinstance(transactions[0], Transaction)
    assert len(rejected) == 1


def test_last_two_bare_numbers_when_no_block_ends_the_record():
    txn = RecordFieldParser().parse(_record("12/08/2025 10:00:00 Masraf -15,00 985,00 ek açıklama"))

    assert txn.amount == Decimal("-15.00")
    assert txn.balance_after == Decimal("985.00")
    assert txn.currency == "TL"
