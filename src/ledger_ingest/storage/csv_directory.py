"""
Customer directory read from CSV exports.

``customers.csv`` columns: ``id``, ``name``, and optionally ``original_name``,
``name_variations`` (``|``-separated or a JSON list) and ``is_active``.
An optional history CSV with ``customer_id``, ``amount`` and ``date``
columns supplies recent transaction amounts for amount-pattern matching.
"""

from collections import defaultdict
from pathlib import Path
from typing import Optional
import json
import logging

import pandas as pd

from ..models.transaction import Customer, HistoryEntry
from ..parsers.amounts import parse_amount
from ..utils.exceptions import StoreError

logger = logging.getLogger(__name__)

FALSE_VALUES = {"0", "false", "no", "hayır", "pasif", "n"}


def parse_variations(value: str) -> list[str]:
    """Split a name-variations cell into names."""
    value = (value or "").strip()
    if not value:
        return []
    if value.startswith("["):
        try:
            return [str(v).strip() for v in json.loads(value) if str(v).strip()]
        except json.JSONDecodeError:
            logger.warning(f"Unreadable name variations {value!r}, splitting on '|'")
    return [v.strip() for v in value.split("|") if v.strip()]


class CsvCustomerDirectory:
    """Loads customers once, on first use."""

    def __init__(self, customers_path: Path, history_path: Optional[Path] = None):
        """
        Initialize the directory.

        Args:
            customers_path: CSV file of customers
            history_path: CSV file of past customer payments (optional)
        """
        self.customers_path = Path(customers_path)
        self.history_path = Path(history_path) if history_path else None
        self._customers: Optional[list[Customer]] = None

    def list_customers(self) -> list[Customer]:
        if self._customers is None:
            self._customers = self._load()
        return list(self._customers)

    def _load(self) -> list[Customer]:
        logger.info(f"Loading customers from {self.customers_path}")
        df = self._read(self.customers_path)
        missing = {"id", "name"} - set(df.columns)
        if missing:
            raise StoreError(f"{self.customers_path} lacks column(s): {', '.join(sorted(missing))}")

        history = self._load_history() if self.history_path else {}

        customers: list[Customer] = []
        for _, row in df.iterrows():
            customer_id = row["id"].strip()
            if not customer_id:
                continue
            active = row.get("is_active", "")
            customers.append(
                Customer(
                    id=customer_id,
                    name=row["name"].strip(),
                    original_name=(row.get("original_name", "") or "").strip() or None,
                    name_variations=parse_variations(row.get("name_variations", "")),
                    is_active=str(active).strip().lower() not in FALSE_VALUES,
                    recent_transactions=history.get(customer_id, []),
                )
            )

        logger.info(f"Loaded {len(customers)} customers")
        return customers

    def _load_history(self) -> dict[str, list[HistoryEntry]]:
        df = self._read(self.history_path)
        history: dict[str, list[HistoryEntry]] = defaultdict(list)

        for idx, row in df.iterrows():
            try:
                stamp = pd.to_datetime(row["date"], dayfirst=True)
            except (KeyError, ValueError) as e:
                logger.warning(f"Skipping history row {idx}: {e}")
                continue
            if pd.isna(stamp):
                logger.warning(f"Skipping history row {idx}: no date")
                continue
            occurred_at = stamp.to_pydatetime()
            history[row["customer_id"].strip()].append(
                HistoryEntry(amount=abs(parse_amount(row["amount"])), occurred_at=occurred_at)
            )

        return dict(history)

    @staticmethod
    def _read(path: Path) -> pd.DataFrame:
        try:
            return pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8")
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read CSV file: {e}")
            raise StoreError(f"Failed to read CSV file {path}: {e}") from e
