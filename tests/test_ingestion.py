from email.message import EmailMessage as MimeMessage
import imaplib
import threading
import time

import pytest

from ledger_ingest.config import EmailConfig
from ledger_ingest.ingestion import (
    IdleMonitor,
    IngestionPipeline,
    IngestMetrics,
    MailboxClient,
    parse_raw_email,
    process_concurrently,
)
from ledger_ingest.ingestion.mailbox import search_criteria
from ledger_ingest.models.reports import IngestReport
from ledger_ingest.models.transaction import EmailMessage
from ledger_ingest.utils.exceptions import MailboxError, MessageDecodeError

from conftest import FAST_INCOMING_BODY, HAVALE_OUTGOING_BODY


def _raw(subject: str, body: str, html: bool = False, message_id: str = "<m@bank.example>") -> bytes:
    msg = MimeMessage()
    msg["Subject"] = subject
    msg["From"] = "bilgi@bank.example"
    msg["Message-ID"] = message_id
    msg["Date"] = "Wed, 15 Jan 2025 14:31:00 +0300"
    if html:
        msg.set_content(f"<html><body><p>{body}</p></body></html>", subtype="html")
    else:
        msg.set_content(body)
    return msg.as_bytes()


BOGUS_CHARSET_RAW = (
    b"Subject: FAST\r\n"
    b"From: bilgi@bank.example\r\n"
    b"Message-ID: <bogus@x>\r\n"
    b'Content-Type: text/plain; charset="x-bogus"\r\n'
    b"Content-Transfer-Encoding: 8bit\r\n"
    b"\r\n"
    b"\xfe\xff garbled\r\n"
)


class FakeImap:
    """Just enough of imaplib.IMAP4 for UID SEARCH and UID FETCH."""

    def __init__(self, messages: dict[bytes, bytes], search_errors: int = 0):
        self.messages = messages
        self.searches: list[str] = []
        self.fetched: list[bytes] = []
        self.logged_out = False
        self.search_errors = search_errors

    def login(self, user, password):
        return "OK", [b"LOGIN completed"]

    def select(self, mailbox):
        return "OK", [str(len(self.messages)).encode()]

    def uid(self, command, *args):
        if command == "SEARCH":
            if self.search_errors:
                self.search_errors -= 1
                raise imaplib.IMAP4.error("server busy")
            self.searches.append(args[1])
            return "OK", [b" ".join(self.messages)]
        uid = args[0]
        self.fetched.append(uid)
        raw = self.messages[uid]
        return "OK", [(uid + b" (RFC822 {%d}" % len(raw), raw), b")"]

    def logout(self):
        self.logged_out = True
        return "BYE", [b"Logging out"]


@pytest.fixture
def mailbox_config() -> EmailConfig:
    return EmailConfig(host="imap.bank.example", user="ops", password="secret", batch_size=1)


@pytest.fixture
def imap() -> FakeImap:
    return FakeImap(
        {
            b"7": _raw("Yapı Kredi Asistan-Gelen FAST", FAST_INCOMING_BODY, message_id="<a@x>"),
            b"9": _raw("HAVALE", HAVALE_OUTGOING_BODY, html=True, message_id="<b@x>"),
        }
    )


def test_results_keep_input_order():
    outcomes = process_concurrently(range(20), lambda n: n * n, limit=4)
    assert [o.result for o in outcomes] == [n * n for n in range(20)]
    assert all(o.ok for o in outcomes)


def test_failing_item_does_not_stop_the_batch():
    def worker(n):
        if n == 2:
            raise ValueError("bad item")
        return n

    metrics = IngestMetrics()
    outcomes = process_concurrently(range(5), worker, limit=2, metrics=metrics)

    assert [o.ok for o in outcomes] == [True, True, False, True, True]
    assert isinstance(outcomes[2].error, ValueError)
    snapshot = metrics.snapshot()
    assert (snapshot.total, snapshot.processed, snapshot.failed) == (5, 4, 1)


def test_transient_failures_are_retried():
    calls: dict[int, int] = {}
    lock = threading.Lock()

    def flaky(n):
        with lock:
            calls[n] = calls.get(n, 0) + 1
            first = calls[n] == 1
        if first:
            raise TimeoutError("slow server")
        return n

    metrics = IngestMetrics()
    outcomes = process_concurrently(range(3), flaky, limit=3, max_retries=1, metrics=metrics)

    assert all(o.ok and o.attempts == 2 for o in outcomes)
    assert metrics.snapshot().retries == 3


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        process_concurrently([1], lambda n: n, limit=0)


def test_empty_input():
    assert process_concurrently([], lambda n: n) == []


def test_metrics_snapshot_and_reset():
    metrics = IngestMetrics()
    metrics.record_queued(3)
    metrics.record_processed(0.5)
    metrics.record_processed(1.0)
    metrics.record_failed(0.5)

    snapshot = metrics.snapshot()
    assert snapshot.average_seconds == pytest.approx(2.0 / 3)
    assert snapshot.throughput == pytest.approx(1.5)

    metrics.reset()
    assert metrics.snapshot().total == 0
    # Snapshots are copies
    assert snapshot.processed == 2


def test_search_criteria():
    assert search_criteria(["FAST", "HAVALE", "EFT"]) == (
        'UNSEEN OR OR SUBJECT "FAST" SUBJECT "HAVALE" SUBJECT "EFT"'
    )
    assert search_criteria(["FAST"], unseen_only=False) == 'SUBJECT "FAST"'
    assert search_criteria([], unseen_only=False) == "ALL"


def test_parse_raw_html_email():
    message = parse_raw_email(_raw("HAVALE", HAVALE_OUTGOING_BODY, html=True))

    assert message.subject == "HAVALE"
    assert message.html is not None
    assert "HAVALE çıkışı" in message.body_text
    assert message.date.year == 2025
    assert message.message_id == "<m@bank.example>"


def test_connect_requires_credentials():
    with pytest.raises(MailboxError):
        MailboxClient(EmailConfig()).connect()


def test_connection_errors_become_mailbox_errors(mailbox_config):
    def refuse():
        raise ConnectionRefusedError("no route")

    with pytest.raises(MailboxError):
        MailboxClient(mailbox_config, refuse).connect()


def test_process_unseen_in_batches(mailbox_config, imap):
    batches: list[list[EmailMessage]] = []

    def handler(batch):
        batches.append(batch)
        return IngestReport(processed=len(batch), inserted=len(batch))

    with MailboxClient(mailbox_config, lambda: imap) as client:
        report = client.process_unseen(handler, batch_size=mailbox_config.batch_size)

    assert [len(b) for b in batches] == [1, 1]
    assert report.inserted == 2
    assert imap.searches[0].startswith("UNSEEN")
    assert imap.logged_out


def test_pipeline_ingests_emails(config, store, directory, fast_email, havale_email):
    junk = EmailMessage(subject="Kampanya", body_text="Yeni kart fırsatları")
    pipeline = IngestionPipeline(config, store, directory)

    report = pipeline.ingest_emails([fast_email, junk, havale_email])

    assert (report.processed, report.inserted, report.failed) == (3, 2, 1)
    assert report.matched + report.unmatched == 2
    assert pipeline.metrics.snapshot().processed == 3
    assert {t.transaction_type for t in store.all()} == {"FAST", "HAVALE"}

    again = pipeline.ingest_emails([fast_email])
    assert (again.inserted, again.duplicates) == (0, 1)


def test_fetch_emails_through_the_pipeline(config, store, imap):
    config.email.host, config.email.user, config.email.password = "imap.bank.example", "ops", "x"
    pipeline = IngestionPipeline(config, store)

    with MailboxClient(config.email, lambda: imap) as client:
        report = pipeline.fetch_emails(client)

    assert report.inserted == 2
    amounts = sorted(t.amount for t in store.all())
    assert [str(a) for a in amounts] == ["-3000.00", "1250.00"]


def test_idle_monitor_handles_each_message_once(mailbox_config, imap):
    handled: list[str] = []

    def handler(batch):
        handled.extend(m.message_id for m in batch)
        return IngestReport(processed=len(batch))

    client = MailboxClient(mailbox_config, lambda: imap)
    client.connect()
    monitor = IdleMonitor(client, handler, interval=0.01)

    assert monitor.poll_once() == 2
    assert monitor.poll_once() == 0
    assert handled == ["<a@x>", "<b@x>"]
    assert monitor.report.processed == 2


def test_idle_monitor_stops(mailbox_config, imap):
    client = MailboxClient(mailbox_config, lambda: imap)
    client.connect()
    monitor = IdleMonitor(client, lambda batch: IngestReport(), interval=0.01)

    monitor.start()
    assert monitor.running
    monitor.stop(timeout=2)
    assert not monitor.running


def test_undecodable_message_is_reported():
    with pytest.raises(MessageDecodeError):
        parse_raw_email(BOGUS_CHARSET_RAW)


def test_undecodable_message_does_not_stop_the_batch(mailbox_config):
    imap = FakeImap(
        {
            b"1": BOGUS_CHARSET_RAW,
            b"2": _raw("Asistan-Gelen FAST", FAST_INCOMING_BODY, message_id="<ok@x>"),
        }
    )
    received: list[str] = []

    def handler(batch):
        received.extend(m.message_id for m in batch)
        return IngestReport(processed=len(batch), inserted=len(batch))

    with MailboxClient(mailbox_config, lambda: imap) as client:
        report = client.process_unseen(handler, batch_size=10)
        assert not client.lock.locked()

    assert received == ["<ok@x>"]
    assert (report.processed, report.inserted, report.failed) == (2, 1, 1)
    assert report.failures[0].startswith("uid 1:")


def test_idle_monitor_skips_undecodable_message(mailbox_config):
    imap = FakeImap(
        {
            b"1": BOGUS_CHARSET_RAW,
            b"2": _raw("Asistan-Gelen FAST", FAST_INCOMING_BODY, message_id="<ok@x>"),
        }
    )
    client = MailboxClient(mailbox_config, lambda: imap)
    client.connect()
    monitor = IdleMonitor(client, lambda batch: IngestReport(processed=len(batch)), interval=0.01)

    assert monitor.poll_once() == 1
    assert monitor.poll_once() == 0
    assert (monitor.report.processed, monitor.report.failed) == (2, 1)
    assert not client.lock.locked()


def test_idle_monitor_survives_failing_polls(mailbox_config):
    imap = FakeImap(
        {b"7": _raw("Asistan-Gelen FAST", FAST_INCOMING_BODY, message_id="<a@x>")},
        search_errors=1,
    )
    delivered = threading.Event()
    calls: list[int] = []

    def handler(batch):
        calls.append(len(batch))
        if len(calls) == 1:
            raise RuntimeError("store briefly unavailable")
        delivered.set()
        return IngestReport(processed=len(batch))

    # The first message is consumed by the failing handler; a new one arrives later
    client = MailboxClient(mailbox_config, lambda: imap)
    client.connect()
    monitor = IdleMonitor(client, handler, interval=0.01)
    monitor.start()
    try:
        for _ in range(200):
            if calls:
                break
            time.sleep(0.01)
        imap.messages[b"8"] = _raw("Asistan-Gelen FAST", FAST_INCOMING_BODY, message_id="<b@x>")
        assert delivered.wait(2)
        assert monitor.running
    finally:
        monitor.stop(timeout=2)


def test_email_balances_are_reconciled_per_account(config, store):
    def notification(iban: str, amount: str, balance: str) -> EmailMessage:
        return EmailMessage(
            subject="Asistan-Gelen FAST",
            body_text=(
                f"1234XXXX5678 TL / {iban} hesabınıza, 15/01/2025 14:30:25 tarihinde, "
                f"Ahmet Yılmaz isimli kişiden {amount} TL FAST ödemesi gelmiştir. "
                f"1234XXXX5678 TL hesabınızın kullanılabilir bakiyesi {balance} TL"
            ),
        )

    pipeline = IngestionPipeline(config, store)
    report = pipeline.ingest_emails(
        [
            notification("TR110006701000000012XXXX11", "1.250,00", "5.000,00"),
            notification("TR220006701000000012XXXX22", "1.000,00", "90.000,00"),
        ]
    )

    assert (report.inserted, report.anomalous) == (2, 0)
    assert all(t.confidence == 1.0 and not t.anomalies for t in store.all())
