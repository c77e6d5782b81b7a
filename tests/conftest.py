"""Shared fixtures: a small statement, notification emails and a customer list."""

from datetime import datetime, timedelta
from decimal import Decimal
from pathlib import Path
import logging
import textwrap

import pytest

from ledger_ingest.config import IngestConfig
from ledger_ingest.models.transaction import Customer, EmailMessage, HistoryEntry
from ledger_ingest.storage.memory import InMemoryCustomerDirectory, InMemoryTransactionStore
from ledger_ingest.utils.logging_config import ROOT_LOGGER_NAME

STATEMENT_TEXT = textwrap.dedent(
    """\
    Hesap Hareketleri
    Müşteri Adı Soyadı: AHMET YILMAZ
    IBAN/Hesap No: TR12 0006 7010 0000 0012 3456 78 / 12345678
    Tarih Aralığı: 01/08/2025 - 31/08/2025
    Kullanılabilir Bakiye: 10.450,00 TL
    TarihSaatİşlemKanalAçıklamaİşlem TutarıBakiye
    11/08/2025 09:15:00 FAST Internet - Mobil GELEN FAST - MEHMET DEMİR - Kira 1.500,00 TL 11.500,00 TL
    11/08/2025 12:30:00 Fatura Ödemesi Diğer ISKI SU FATURASI -250,00 TL 11.250,00 TL
    12/08/2025 17:39:14 Para Gönder Internet - Mobil GİDEN FAST - AYŞE KAYA - Aidat
    -800,00 TL 10.450,00 TL
    1/3
    """
)

FAST_INCOMING_BODY = (
    "1234XXXX5678 TL / TR120006701000000012XXXX67 hesabınıza, 15/01/2025 14:30:25 "
    "tarihinde, Ahmet Yılmaz isimli kişiden 1.250,00 TL FAST ödemesi gelmiştir."
)

HAVALE_OUTGOING_BODY = (
    "1234XXXX5678 TL / TR120006701000000012XXXX67 hesabınızdan, 16/01/2025 10:00:00 "
    "tarihinde, Kaya Yapı Ltd. Şti. isimli/unvanlı kişiye 3.000,00 TL HAVALE çıkışı "
    "gerçekleşmiştir. 1234XXXX5678 TL hesabınızın kullanılabilir bakiyesi 7.450,00 TL"
)


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI commands attach handlers to streams that the runner closes afterwards."""
    yield
    logging.getLogger(ROOT_LOGGER_NAME).handlers = []


@pytest.fixture
def statement_text() -> str:
    return STATEMENT_TEXT


@pytest.fixture
def config(tmp_path: Path) -> IngestConfig:
    """Default configuration with the failed-email log kept under tmp_path."""
    cfg = IngestConfig()
    cfg.email.failed_log_path = str(tmp_path / "logs" / "failed-emails.log")
    cfg.storage.database_url = f"sqlite:///{tmp_path / 'ledger.db'}"
    return cfg


@pytest.fixture
def fast_email() -> EmailMessage:
    return EmailMessage(
        subject="Yapı Kredi Asistan-Gelen FAST",
        body_text=FAST_INCOMING_BODY,
        message_id="<fast-1@bank.example>",
        from_address="bilgi@bank.example",
    )


@pytest.fixture
def havale_email() -> EmailMessage:
    return EmailMessage(
        subject="HAVALE bilgilendirme",
        body_text="",
        html=f"<html><style>p {{ color: red; }}</style><body><p>{HAVALE_OUTGOING_BODY}</p></body></html>",
        message_id="<havale-1@bank.example>",
    )


@pytest.fixture
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def reference_time() -> datetime:
    return datetime(2025, 1, 20, 12, 0, 0)


@pytest.fixture
def customers(reference_time: datetime) -> list[Customer]:
    recent = reference_time - timedelta(days=5)
    return [
        Customer(
            id="c-ahmet",
            name="Ahmet Yılmaz",
            recent_transactions=[HistoryEntry(Decimal("1250.00"), recent)],
        ),
        Customer(id="c-kaya", name="KAYA YAPI LTD ŞTİ", name_variations=["Kaya Yapı"]),
        Customer(id="c-factoring", name="ABC FAKTORİNG A.Ş."),
        Customer(id="c-passive", name="Ahmet Yılmaz", is_active=False),
    ]


@pytest.fixture
def directory(customers: list[Customer]) -> InMemoryCustomerDirectory:
    return InMemoryCustomerDirectory(customers)
