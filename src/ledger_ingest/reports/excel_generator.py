"""
Excel export of the transaction ledger.
Creates multi-sheet workbooks with formatted output.
"""

from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging
import re

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Border, Side
from openpyxl.worksheet.worksheet import Worksheet

from ..config import IngestConfig
from ..models.transaction import AccountInfo, Transaction, ZERO
from ..utils.exceptions import ReportGenerationError

logger = logging.getLogger(__name__)

# Style definitions
HEADER_FILL = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True)
MATCH_FILL = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
ANOMALY_FILL = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
UNMATCHED_FILL = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

_TIMESTAMP_FIELD_RE = re.compile(r"[_-]?\{(?:date|time)\}")

TRANSACTION_HEADERS = [
    "Timestamp",
    "Description",
    "Debit",
    "Credit",
    "Amount",
    "Currency",
    "Balance",
    "Category",
    "Subcategory",
    "Operation",
    "Channel",
    "Direction",
    "Counterparty",
    "Counterparty IBAN",
    "Source",
    "Confidence",
    "Content Hash",
]


class ExcelReportGenerator:
    """Generates Excel ledger workbooks with multiple sheets."""

    def __init__(self, config: IngestConfig):
        """
        Initialize the report generator.

        Args:
            config: Application configuration
        """
        self.config = config
        self.output_config = config.output.excel
        self.sheet_config = config.output.sheets

    def default_filename(self, now: Optional[datetime] = None) -> str:
        """Output name from the template; date/time fields are dropped when disabled."""
        template = self.output_config.filename_template
        if not self.output_config.include_timestamp:
            return _TIMESTAMP_FIELD_RE.sub("", template)
        now = now or datetime.now()
        return template.format(
            date=now.strftime("%Y%m%d"), time=now.strftime("%H%M%S")
        )

    def generate_report(
        self,
        transactions: list[Transaction],
        output_path: Path,
        account_info: Optional[AccountInfo] = None,
        source_name: Optional[str] = None,
    ) -> Path:
        """
        Write the ledger workbook.

        Args:
            transactions: Transactions to export, in display order
            output_path: Path for output file
            account_info: Statement header data shown on the summary (optional)
            source_name: Statement or store the ledger came from (optional)

        Returns:
            Path to generated report

        Raises:
            ReportGenerationError: If the workbook cannot be written
        """
        logger.info(f"Generating Excel report: {output_path}")

        wb = Workbook()

        # Remove default sheet
        if wb.active:
            wb.remove(wb.active)

        sheets = self.sheet_config
        if sheets.summary.enabled:
            self._create_summary_sheet(wb, transactions, account_info, source_name)
        if sheets.transactions.enabled:
            self._create_transactions_sheet(wb, transactions)
        if sheets.anomalies.enabled:
            self._create_anomalies_sheet(wb, [t for t in transactions if t.is_anomalous])
        if sheets.matches.enabled:
            self._create_matches_sheet(wb, transactions)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            wb.save(output_path)
        except OSError as e:
            logger.error(f"Failed to save report: {e}")
            raise ReportGenerationError(f"Failed to save report {output_path}: {e}") from e
        logger.info(f"Report saved: {output_path}")

        return output_path

    def _create_summary_sheet(
        self,
        wb: Workbook,
        transactions: list[Transaction],
        account_info: Optional[AccountInfo],
        source_name: Optional[str],
    ) -> None:
        """Create the summary sheet with key figures."""
        ws = wb.create_sheet(self.sheet_config.summary.name)

        ws["A1"] = "Transaction Ledger Summary"
        ws["A1"].font = Font(size=16, bold=True)
        ws.merge_cells("A1:D1")

        info = account_info or AccountInfo()
        period = ""
        if info.start_date and info.end_date:
            period = f"{info.start_date} to {info.end_date}"

        sections: list[tuple[str, list[tuple[str, object]]]] = [
            (
                "Account",
                [
                    ("Source:", source_name or ""),
                    ("Account Holder:", info.account_holder or ""),
                    ("IBAN:", info.iban or ""),
                    ("Statement Period:", period),
                    ("Opening Balance:", _money(info.start_balance)),
                    ("Closing Balance:", _money(info.end_balance)),
                    ("Generated At:", datetime.now().strftime("%Y-%m-%d %H:%M:%S")),
                ],
            ),
            (
                "Totals",
                [
                    ("Transactions:", len(transactions)),
                    ("Total Debit:", _money(sum((t.debit for t in transactions), ZERO))),
                    ("Total Credit:", _money(sum((t.credit for t in transactions), ZERO))),
                    ("Anomalous:", sum(1 for t in transactions if t.is_anomalous)),
                    ("Matched:", sum(1 for t in transactions if t.is_matched)),
                ],
            ),
            (
                "Categories",
                sorted(Counter(t.category for t in transactions).items()),
            ),
        ]

        row = 3
        for title, entries in sections:
            ws[f"A{row}"] = title
            ws[f"A{row}"].font = Font(bold=True)
            row += 1
            for label, value in entries:
                ws[f"A{row}"] = label
                ws[f"B{row}"] = value
                row += 1
            row += 1

        ws.column_dimensions["A"].width = 30
        ws.column_dimensions["B"].width = 40

    def _create_transactions_sheet(self, wb: Workbook, transactions: list[Transaction]) -> None:
        """Create the full ledger sheet."""
        ws = wb.create_sheet(self.sheet_config.transactions.name)
        self._write_headers(ws, TRANSACTION_HEADERS)

        for row_num, txn in enumerate(transactions, start=2):
            row_data = [
                txn.timestamp_iso,
                txn.description,
                float(txn.debit),
                float(txn.credit),
                float(txn.amount),
                txn.currency,
                float(txn.balance_after) if txn.balance_after is not None else "",
                txn.category,
                txn.subcategory,
                txn.operation or "",
                txn.channel or "",
                txn.direction.value if txn.direction else "",
                txn.counterparty_name or "",
                txn.counterparty_iban or "",
                txn.source.value,
                round(txn.confidence, 4),
                txn.content_hash,
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                if txn.is_anomalous:
                    cell.fill = ANOMALY_FILL

        self._auto_fit_columns(ws)

    def _create_anomalies_sheet(self, wb: Workbook, anomalous: list[Transaction]) -> None:
        """Create the sheet of records carrying quality notes."""
        ws = wb.create_sheet(self.sheet_config.anomalies.name)
        self._write_headers(
            ws, ["Timestamp", "Description", "Amount", "Balance", "Confidence", "Notes"]
        )

        for row_num, txn in enumerate(anomalous, start=2):
            row_data = [
                txn.timestamp_iso,
                txn.description,
                float(txn.amount),
                float(txn.balance_after) if txn.balance_after is not None else "",
                round(txn.confidence, 4),
                "; ".join(txn.anomalies),
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = ANOMALY_FILL

        self._auto_fit_columns(ws)

    def _create_matches_sheet(self, wb: Workbook, transactions: list[Transaction]) -> None:
        """Create the customer matching sheet."""
        ws = wb.create_sheet(self.sheet_config.matches.name)
        self._write_headers(
            ws,
            ["Timestamp", "Counterparty", "Amount", "Status", "Customer ID", "Match Confidence"],
        )

        for row_num, txn in enumerate(transactions, start=2):
            row_data = [
                txn.timestamp_iso,
                txn.counterparty_name or "",
                float(txn.amount),
                "Matched" if txn.is_matched else "Unmatched",
                txn.matched_customer_id or "",
                f"{txn.match_confidence:.2f}" if txn.is_matched else "",
            ]
            for col, value in enumerate(row_data, start=1):
                cell = ws.cell(row=row_num, column=col, value=value)
                cell.border = THIN_BORDER
                cell.fill = MATCH_FILL if txn.is_matched else UNMATCHED_FILL

        self._auto_fit_columns(ws)

    @staticmethod
    def _write_headers(ws: Worksheet, headers: list[str]) -> None:
        for col, header in enumerate(headers, start=1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = THIN_BORDER

    def _auto_fit_columns(self, ws: Worksheet) -> None:
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = column_cells[0].column_letter

            for cell in column_cells:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))

            ws.column_dimensions[column].width = min(max_length + 2, 50)


def _money(value) -> str:
    return f"{value:,.2f}" if value is not None else ""
