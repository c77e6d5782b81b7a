"""
Bank notification email parser.

Converts FAST / HAVALE / EFT notification emails into normalized
transactions. The notification wording is fixed per transfer rail, so each
rail has one named-capture template; the first template that matches wins.
"""

from dataclasses import dataclass
from datetime import datetime
from email.header import decode_header, make_header
from pathlib import Path
from typing import Optional, Union
import html
import json
import logging
import re
import threading

from ..models.transaction import (
    Direction,
    EmailMessage,
    FailureKind,
    Transaction,
    TransactionSource,
    ZERO,
)
from ..config import EmailConfig
from .amounts import parse_amount

logger = logging.getLogger(__name__)

_DT = r"(?P<dt>\d{2}/\d{2}/\d{4}(?:\s\d{2}:\d{2}(?::\d{2})?)?)"
_HEAD = (
    r"(?P<mask>\d+X+\d+) TL / (?P<iban>TR[\dX]{24}) hesab(?:ınıza|ınızdan),\s*"
    + _DT
    + r" tarihinde,\s*(?P<party>.+?) isimli(?:/unvanlı)? kiş(?:iye|iden)\s*"
    r"(?P<amt>[\d.]+,\d{2}) TL "
)
_FLAGS = re.IGNORECASE | re.DOTALL

# Evaluated in order; the first match decides the transaction type
EMAIL_TEMPLATES: list[tuple[str, re.Pattern]] = [
    ("FAST", re.compile(_HEAD + r"FAST ödemesi (?:gelmiştir|gönderilmiştir)\.", _FLAGS)),
    (
        "HAVALE",
        re.compile(
            _HEAD
            + r"HAVALE (?:çıkışı gerçekleşmiştir|çıkışı|ödemesi gönderilmiştir"
            r"|ödemesi gelmiştir|gönderilmiştir|gelmiştir)\.",
            _FLAGS,
        ),
    ),
    (
        "EFT",
        re.compile(
            _HEAD
            + r"EFT (?:girişi gerçekleşmiştir|girişi|ödemesi gelmiştir|ödemesi gönderilmiştir)\.",
            _FLAGS,
        ),
    ),
]

BALANCE_TEMPLATE = re.compile(
    r"(?P<mask>\d+X+\d+) TL hesabınızın kullanılabilir bakiyesi (?P<bal>[\d.]+,\d{2}) TL",
    _FLAGS,
)

SUBJECT_DIRECTION_MARKERS: list[tuple[str, Direction]] = [
    ("asistan-gelen", Direction.IN),
    ("asistan-giden", Direction.OUT),
]
BODY_DIRECTION_RULES: list[tuple[Direction, re.Pattern]] = [
    (Direction.IN, re.compile(r"hesabınıza|gelmiştir|girişi|kişiden", re.IGNORECASE)),
    (Direction.OUT, re.compile(r"hesabınızdan|gönderilmiştir|çıkışı|kişiye", re.IGNORECASE)),
]
DIRECTION_WORDS = {Direction.IN: "GELEN", Direction.OUT: "GİDEN"}

# Entities seen in bank HTML that html.unescape does not know
NONSTANDARD_ENTITIES = {
    "&ş;": "ş",
    "&Ş;": "Ş",
    "&ğ;": "ğ",
    "&Ğ;": "Ğ",
    "&İ;": "İ",
    "&ı;": "ı",
}

_SOFT_BREAK_RE = re.compile(r"=\r?\n")
_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_DATE_PARTS_RE = re.compile(r"[/ :]")


@dataclass
class EmailParseFailure:
    """Terminal, non-retryable outcome for one email."""

    kind: FailureKind
    reason: str
    subject: str = ""
    message_id: Optional[str] = None


class DirectionUnresolvedError(ValueError):
    """Neither the subject nor the body states the transfer direction."""


def clean_html(content: str) -> str:
    """
    Reduce an HTML (or plain) email body to a single line of text.

    Quoted-printable soft breaks are unfolded, style and script blocks and
    all tags are removed, entities are decoded and whitespace is collapsed.
    """
    out = _SOFT_BREAK_RE.sub("", content or "")
    out = _STYLE_RE.sub("", out)
    out = _SCRIPT_RE.sub("", out)
    out = _TAG_RE.sub(" ", out)
    for entity, char in NONSTANDARD_ENTITIES.items():
        out = out.replace(entity, char)
    out = html.unescape(out).replace("\u00a0", " ")
    return " ".join(out.split())


def decode_subject(subject: str) -> str:
    """Decode RFC 2047 encoded-words in a subject line."""
    if not subject:
        return ""
    try:
        return str(make_header(decode_header(subject)))
    except (UnicodeDecodeError, LookupError, ValueError):
        return subject


def parse_email_datetime(value: str) -> Optional[datetime]:
    """Parse "dd/mm/yyyy[ hh:mm[:ss]]" as found in notification bodies."""
    if not value:
        return None
    try:
        parts = [int(p) for p in _DATE_PARTS_RE.split(value.strip()) if p]
    except ValueError:
        return None
    if len(parts) < 3:
        return None
    day, month, year = parts[:3]
    hour, minute, second = (parts[3:] + [0, 0, 0])[:3]
    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError:
        return None


class FailureLog:
    """
    Append-only JSON-lines log of emails that could not be parsed.

    Written for manual triage; the application never reads it back.
    """

    def __init__(self, path: Union[str, Path], body_chars: int = 1000):
        self.path = Path(path)
        self.body_chars = body_chars
        self._lock = threading.Lock()

    def record(self, message: EmailMessage, body: str, reason: str) -> None:
        entry = {
            "date": datetime.now().isoformat(),
            "subject": message.subject,
            "messageId": message.message_id,
            "from": message.from_address,
            "reason": reason,
            "body": body[: self.body_chars],
        }
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, ensure_ascii=False) + "\n")
        except OSError as e:
            logger.error(f"Could not write failed-email log {self.path}: {e}")


class EmailTransactionExtractor:
    """
    Extracts a transaction from one bank notification email.

    Failures are returned as ``EmailParseFailure`` values so a batch can keep
    going past a malformed message.
    """

    def __init__(
        self,
        config: Optional[EmailConfig] = None,
        failure_log: Optional[FailureLog] = None,
    ):
        """
        Initialize the extractor.

        Args:
            config: Email section of the application configuration
            failure_log: Where unparseable emails are recorded (optional)
        """
        self.config = config or EmailConfig()
        self.failure_log = failure_log

    def extract(self, message: EmailMessage) -> Union[Transaction, EmailParseFailure]:
        """
        Parse an email into a transaction.

        Args:
            message: Subject, body and envelope data of the email

        Returns:
            The transaction, or a failure describing why none was produced
        """
        body = clean_html(message.html or message.body_text or "")

        transaction_type, match = self._match_template(body)
        if match is None:
            logger.warning(
                f"Unrecognised notification format: subject={message.subject!r}"
            )
            return self._fail(
                message, body, FailureKind.TEMPLATE_MISMATCH, "no FAST/HAVALE/EFT template matched"
            )

        try:
            direction = self.detect_direction(message.subject, body)
        except DirectionUnresolvedError as e:
            logger.warning(f"{e}: subject={message.subject!r}")
            return self._fail(message, body, FailureKind.DIRECTION_UNRESOLVED, str(e))

        groups = match.groupdict()
        value = parse_amount(groups["amt"])
        amount = value if direction is Direction.IN else -value
        party = " ".join(groups["party"].split())

        balance_match = BALANCE_TEMPLATE.search(body)
        balance = parse_amount(balance_match.group("bal")) if balance_match else None

        timestamp = parse_email_datetime(groups["dt"]) or message.date or datetime.now()

        return Transaction(
            timestamp=timestamp,
            description=f"{DIRECTION_WORDS[direction]} {transaction_type} - {party}",
            debit=value if direction is Direction.OUT else ZERO,
            credit=value if direction is Direction.IN else ZERO,
            amount=amount,
            currency="TL",
            balance_after=balance,
            balance_currency="TL" if balance is not None else None,
            source=TransactionSource.EMAIL,
            operation=transaction_type,
            direction=direction,
            counterparty_name=party,
            transaction_type=transaction_type,
            message_id=message.message_id,
            account_iban=groups["iban"],
            masked_account=groups["mask"],
            source_raw=body,
        )

    def detect_direction(self, subject: str, body: str) -> Direction:
        """
        Decide whether money came in or went out.

        The subject's assistant markers are authoritative; otherwise the
        body's phrasing decides. Direction is never guessed.

        Raises:
            DirectionUnresolvedError: If neither source indicates a direction
        """
        decoded = decode_subject(subject).lower()
        for marker, direction in SUBJECT_DIRECTION_MARKERS:
            if marker in decoded:
                return direction

        for direction, pattern in BODY_DIRECTION_RULES:
            if pattern.search(body):
                return direction

        raise DirectionUnresolvedError("direction could not be determined")

    @staticmethod
    def _match_template(body: str) -> tuple[Optional[str], Optional[re.Match]]:
        for transaction_type, pattern in EMAIL_TEMPLATES:
            match = pattern.search(body)
            if match:
                return transaction_type, match
        return None, None

    def _fail(
        self, message: EmailMessage, body: str, kind: FailureKind, reason: str
    ) -> EmailParseFailure:
        if self.failure_log is not None:
            self.failure_log.record(message, body, f"{kind.value}: {reason}")
        return EmailParseFailure(
            kind=kind, reason=reason, subject=message.subject, message_id=message.message_id
        )
