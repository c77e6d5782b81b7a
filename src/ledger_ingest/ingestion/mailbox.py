"""
IMAP access to the bank-notification mailbox.

The mailbox lock serialises access to the single IMAP connection. Batch
fetches hold it for the whole fetch-and-parse window; the idle monitor takes
it once per new message.
"""

from collections.abc import Callable
from datetime import datetime
from email import message_from_bytes, policy
from email.utils import parsedate_to_datetime
from typing import Any, Optional
import imaplib
import logging
import threading

from ..config import EmailConfig
from ..models.reports import IngestReport
from ..models.transaction import EmailMessage
from ..parsers.email_parser import clean_html
from ..utils.exceptions import MailboxError, MessageDecodeError

logger = logging.getLogger(__name__)

BatchHandler = Callable[[list[EmailMessage]], IngestReport]


def parse_raw_email(raw: bytes) -> EmailMessage:
    """
    Decode an RFC 822 message into subject, bodies and envelope data.

    Raises:
        MessageDecodeError: If a body part uses an unknown charset or
            cannot be decoded
    """
    msg = message_from_bytes(raw, policy=policy.default)

    try:
        html_part = msg.get_body(preferencelist=("html",))
        text_part = msg.get_body(preferencelist=("plain",))
        html = html_part.get_content() if html_part is not None else None
        text = text_part.get_content() if text_part is not None else clean_html(html or "")
    except (LookupError, UnicodeError, ValueError) as e:
        raise MessageDecodeError(
            f"Cannot decode message {msg['message-id'] or msg['subject']!r}: {e}"
        ) from e

    date: Optional[datetime] = None
    if msg["date"]:
        try:
            date = parsedate_to_datetime(str(msg["date"]))
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Date header {msg['date']!r}")

    return EmailMessage(
        subject=str(msg["subject"] or ""),
        body_text=text,
        message_id=str(msg["message-id"]) if msg["message-id"] else None,
        from_address=str(msg["from"]) if msg["from"] else None,
        date=date,
        html=html,
    )


def search_criteria(keywords: list[str], unseen_only: bool = True) -> str:
    """IMAP SEARCH string: subject contains any keyword (and unseen)."""
    terms = [f'SUBJECT "{k}"' for k in keywords]
    subject = "OR " * (len(terms) - 1) + " ".join(terms) if terms else ""
    parts = (["UNSEEN"] if unseen_only else []) + ([subject] if subject else [])
    return " ".join(parts) or "ALL"


class MailboxClient:
    """Single IMAP connection plus the lock guarding it."""

    def __init__(
        self,
        config: EmailConfig,
        connection_factory: Optional[Callable[[], Any]] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Mailbox settings
            connection_factory: Returns an ``imaplib.IMAP4``-like object;
                defaults to ``IMAP4_SSL`` on the configured host
        """
        self.config = config
        self.lock = threading.Lock()
        self._factory = connection_factory or self._ssl_connection
        self._conn: Any = None

    def _ssl_connection(self) -> imaplib.IMAP4_SSL:
        return imaplib.IMAP4_SSL(
            self.config.host, self.config.port, timeout=self.config.timeout_seconds
        )

    def connect(self) -> None:
        """
        Open the connection, log in and select the mailbox.

        Raises:
            MailboxError: If settings are missing or the server refuses
        """
        if not (self.config.host and self.config.user and self.config.password):
            raise MailboxError("EMAIL_HOST, EMAIL_USER and EMAIL_PASS must be set")

        logger.info(f"Connecting to {self.config.host}:{self.config.port}")
        try:
            conn = self._factory()
            conn.login(self.config.user, self.config.password)
            status, _ = conn.select(self.config.mailbox)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Cannot open mailbox: {e}") from e
        if status != "OK":
            raise MailboxError(f"Cannot select mailbox {self.config.mailbox}")
        self._conn = conn

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            logger.debug(f"Logout failed: {e}")
        finally:
            self._conn = None

    def __enter__(self) -> "MailboxClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connection(self) -> Any:
        if self._conn is None:
            raise MailboxError("mailbox is not connected")
        return self._conn

    def search(self) -> list[bytes]:
        """UIDs of notification emails matching the configured criteria."""
        criteria = search_criteria(self.config.subject_keywords, self.config.unseen_only)
        try:
            status, data = self.connection.uid("SEARCH", None, criteria)
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Search failed: {e}") from e
        if status != "OK":
            raise MailboxError(f"Search failed: {status}")
        return data[0].split() if data and data[0] else []

    def fetch(self, uid: bytes) -> Optional[EmailMessage]:
        """
        Fetch and decode one message; None when the server has no body.

        Raises:
            MailboxError: If the server request fails
            MessageDecodeError: If the message itself cannot be decoded
        """
        try:
            status, data = self.connection.uid("FETCH", uid, "(RFC822)")
        except (imaplib.IMAP4.error, OSError) as e:
            raise MailboxError(f"Fetch of {uid!r} failed: {e}") from e
        if status != "OK":
            logger.warning(f"Fetch of {uid!r} returned {status}")
            return None
        for part in data or []:
            if isinstance(part, tuple) and len(part) > 1:
                return parse_raw_email(part[1])
        return None

    def process_unseen(self, handler: BatchHandler, batch_size: int = 10) -> IngestReport:
        """
        Fetch matching emails in batches and hand each batch to ``handler``.

        The mailbox lock is held until every batch has been processed.
        """
        report = IngestReport()
        with self.lock:
            uids = self.search()
            logger.info(f"{len(uids)} notification email(s) to process")
            for start in range(0, len(uids), batch_size):
                batch: list[EmailMessage] = []
                for uid in uids[start : start + batch_size]:
                    try:
                        message = self.fetch(uid)
                    except MessageDecodeError as e:
                        record_undecodable(report, uid, e)
                        continue
                    if message is not None:
                        batch.append(message)
                if batch:
                    report.merge(handler(batch))
        return report


def record_undecodable(report: IngestReport, uid: bytes, error: MessageDecodeError) -> None:
    """Count a message that could not be decoded as one failed item."""
    logger.warning(f"Skipping message {uid!r}: {error}")
    report.processed += 1
    report.failed += 1
    report.failures.append(f"uid {uid.decode(errors='replace')}: {error}")


class IdleMonitor:
    """
    Background poller for newly arrived notification emails.

    New messages go through the same handler as batch fetches. ``stop()``
    ends the loop at the next wait.
    """

    def __init__(
        self,
        client: MailboxClient,
        handler: BatchHandler,
        interval: float = 30.0,
    ):
        self.client = client
        self.handler = handler
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._seen: set[bytes] = set()
        self.report = IngestReport()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="idle-monitor", daemon=True)
        self._thread.start()
        logger.info(f"Watching mailbox every {self.interval:g}s")

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        logger.info("Mailbox watch stopped")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def poll_once(self) -> int:
        """Process messages not seen before; returns how many were handled."""
        with self.client.lock:
            uids = [u for u in self.client.search() if u not in self._seen]

        handled = 0
        for uid in uids:
            if self._stop.is_set():
                break
            with self.client.lock:
                self._seen.add(uid)
                try:
                    message = self.client.fetch(uid)
                except MessageDecodeError as e:
                    record_undecodable(self.report, uid, e)
                    continue
                if message is None:
                    continue
                self.report.merge(self.handler([message]))
            handled += 1
        return handled

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except MailboxError as e:
                logger.error(f"Mailbox poll failed: {e}")
            except Exception as e:
                # The monitor outlives a failing poll; the next one retries
                logger.exception(f"Unexpected error while polling mailbox: {e}")
            if self._stop.wait(self.interval):
                break
