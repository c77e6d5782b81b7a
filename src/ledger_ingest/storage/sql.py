"""SQLAlchemy-backed transaction store (SQLite by default)."""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
import logging

from sqlalchemy import (
    CHAR,
    JSON,
    Boolean,
    DateTime,
    Float,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..models.transaction import Direction, Transaction, TransactionSource
from ..utils.exceptions import StoreError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class LedgerRow(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[str] = mapped_column(String(16), primary_key=True)
    content_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    debit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    credit: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    balance_after: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)
    balance_currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    source: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    subcategory: Mapped[str] = mapped_column(String(32), nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    operation: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    channel: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    direction: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)
    counterparty_name: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    counterparty_iban: Mapped[Optional[str]] = mapped_column(String(34), nullable=True)
    transaction_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    account_iban: Mapped[Optional[str]] = mapped_column(String(34), nullable=True)
    masked_account: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    anomalies: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    source_raw: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_matched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    matched_customer_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    match_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)


_COPIED_FIELDS = [
    "timestamp",
    "description",
    "debit",
    "credit",
    "amount",
    "currency",
    "balance_after",
    "balance_currency",
    "category",
    "subcategory",
    "operation",
    "channel",
    "counterparty_name",
    "counterparty_iban",
    "transaction_type",
    "message_id",
    "account_iban",
    "masked_account",
    "confidence",
    "source_raw",
    "is_matched",
    "matched_customer_id",
    "match_confidence",
]


def to_row(txn: Transaction) -> LedgerRow:
    values: dict[str, Any] = {name: getattr(txn, name) for name in _COPIED_FIELDS}
    return LedgerRow(
        id=txn.id or txn.content_hash[:16],
        content_hash=txn.content_hash,
        source=txn.source.value,
        direction=txn.direction.value if txn.direction else None,
        tags=list(txn.tags),
        anomalies=list(txn.anomalies),
        **values,
    )


def from_row(row: LedgerRow) -> Transaction:
    values: dict[str, Any] = {name: getattr(row, name) for name in _COPIED_FIELDS}
    return Transaction(
        id=row.id,
        content_hash=row.content_hash,
        source=TransactionSource(row.source),
        direction=Direction(row.direction) if row.direction else None,
        tags=list(row.tags or []),
        anomalies=list(row.anomalies or []),
        **values,
    )


class SqlTransactionStore:
    """
    Transaction store on a relational database.

    The unique ``content_hash`` column is what makes re-ingestion idempotent;
    the existence check only avoids relying on the constraint for the
    common case.
    """

    def __init__(self, database_url: str = "sqlite:///ledger.db"):
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        try:
            self.engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Cannot open transaction store {database_url}: {e}") from e
        self._session_maker = sessionmaker(bind=self.engine, expire_on_commit=False, class_=Session)
        logger.debug(f"Transaction store ready at {database_url}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_maker()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def insert_if_absent(self, txn: Transaction) -> bool:
        if not txn.content_hash:
            raise StoreError("transaction has no content hash")
        try:
            with self.session_scope() as session:
                exists = session.scalar(
                    select(LedgerRow.id).where(LedgerRow.content_hash == txn.content_hash)
                )
                if exists is not None:
                    return False
                session.add(to_row(txn))
            return True
        except IntegrityError:
            # Lost a race against a concurrent insert of the same content
            return False
        except SQLAlchemyError as e:
            raise StoreError(f"Insert failed: {e}") from e

    def update_match(
        self, txn_id: str, customer_id: Optional[str], confidence: float
    ) -> None:
        try:
            with self.session_scope() as session:
                row = session.get(LedgerRow, txn_id)
                if row is None:
                    raise StoreError(f"unknown transaction id {txn_id}")
                row.is_matched = customer_id is not None
                row.matched_customer_id = customer_id
                row.match_confidence = confidence
        except SQLAlchemyError as e:
            raise StoreError(f"Match update failed: {e}") from e

    def get(self, txn_id: str) -> Optional[Transaction]:
        with self.session_scope() as session:
            row = session.get(LedgerRow, txn_id)
            return from_row(row) if row is not None else None

    def list_unmatched(self) -> list[Transaction]:
        with self.session_scope() as session:
            rows = session.scalars(
                select(LedgerRow).where(LedgerRow.is_matched.is_(False)).order_by(LedgerRow.timestamp)
            )
            return [from_row(r) for r in rows]

    def all(self) -> list[Transaction]:
        with self.session_scope() as session:
            rows = session.scalars(select(LedgerRow).order_by(LedgerRow.timestamp))
            return [from_row(r) for r in rows]
