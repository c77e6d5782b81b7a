from datetime import datetime

from openpyxl import load_workbook

from ledger_ingest.config import IngestConfig
from ledger_ingest.ingestion import StatementProcessor
from ledger_ingest.reports.excel_generator import ExcelReportGenerator


def test_ledger_workbook(tmp_path, statement_text):
    parsed = StatementProcessor().parse_text(statement_text.replace("11.250,00 TL", "11.200,00 TL"))
    parsed.transactions[0].is_matched = True
    parsed.transactions[0].matched_customer_id = "c-ahmet"
    parsed.transactions[0].match_confidence = 0.77

    path = ExcelReportGenerator(IngestConfig()).generate_report(
        parsed.transactions, tmp_path / "out" / "ledger.xlsx", parsed.account_info, "hesap.pdf"
    )

    wb = load_workbook(path)
    assert wb.sheetnames == ["Summary", "Transactions", "Anomalies", "Matches"]

    ledger = wb["Transactions"]
    assert ledger.max_row == 4
    assert ledger["A2"].value == "2025-08-11T09:15:00"
    assert ledger["E3"].value == -250.0

    assert wb["Anomalies"].max_row == 3
    assert wb["Matches"]["D2"].value == "Matched"
    assert wb["Matches"]["E2"].value == "c-ahmet"
    assert wb["Matches"]["D3"].value == "Unmatched"

    summary_values = [row[1] for row in wb["Summary"].iter_rows(values_only=True)]
    assert "AHMET YILMAZ" in summary_values
    assert "10,000.00" in summary_values


def test_disabled_sheets_are_left_out(tmp_path):
    config = IngestConfig()
    config.output.sheets.anomalies.enabled = False
    config.output.sheets.matches.enabled = False

    path = ExcelReportGenerator(config).generate_report([], tmp_path / "empty.xlsx")

    assert load_workbook(path).sheetnames == ["Summary", "Transactions"]


def test_default_filename():
    generator = ExcelReportGenerator(IngestConfig())
    name = generator.default_filename(datetime(2025, 8, 31, 18, 5, 0))
    assert name == "ledger_export_20250831_180500.xlsx"


def test_filename_without_timestamp():
    config = IngestConfig()
    config.output.excel.include_timestamp = False
    assert ExcelReportGenerator(config).default_filename() == "ledger_export.xlsx"
