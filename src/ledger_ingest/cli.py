"""
Command-line interface for the bank ledger ingestion tool.
"""

from pathlib import Path
from typing import Optional
import logging
import sys
import time

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .config import IngestConfig, generate_default_config, load_config
from .ingestion.mailbox import MailboxClient, parse_raw_email
from .ingestion.pipeline import IngestionPipeline
from .ingestion.statements import StatementProcessor
from .models.reports import IngestReport, StatementParseResult
from .models.transaction import Transaction
from .parsers.email_parser import EmailTransactionExtractor, FailureLog
from .reports.excel_generator import ExcelReportGenerator
from .storage import CsvCustomerDirectory, SqlTransactionStore
from .utils.exceptions import LedgerIngestError
from .utils.logging_config import parse_level, setup_logging

console = Console()

PREVIEW_ROWS = 20


def _load(config_path: Optional[Path], verbose: bool) -> IngestConfig:
    ingest_config = load_config(config_path)
    level = logging.DEBUG if verbose else parse_level(ingest_config.logging.level)
    log_file = Path(ingest_config.logging.file) if ingest_config.logging.file else None
    setup_logging(level, log_file, ingest_config.logging.format)
    return ingest_config


def _pipeline(
    ingest_config: IngestConfig,
    db: Optional[str],
    customers: Optional[Path],
    history: Optional[Path],
) -> IngestionPipeline:
    store = SqlTransactionStore(db or ingest_config.storage.database_url)
    directory = CsvCustomerDirectory(customers, history) if customers else None
    return IngestionPipeline(ingest_config, store, directory)


def _fail(e: Exception, verbose: bool) -> None:
    console.print(f"[red]Error: {e}[/red]")
    if verbose:
        console.print_exception()
    sys.exit(1)


config_option = click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file (YAML)",
)
verbose_option = click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
db_option = click.option("--db", help="Database URL (overrides storage.database_url)")
customers_option = click.option(
    "--customers",
    type=click.Path(exists=True, path_type=Path),
    help="Customer CSV used for payment matching",
)
history_option = click.option(
    "--history",
    type=click.Path(exists=True, path_type=Path),
    help="CSV of past customer payments (customer_id, amount, date)",
)


@click.group()
@click.version_option(version="0.1.0")
def main():
    """Bank statement and notification email ingestion tool."""
    pass


@main.command("parse-pdf")
@click.argument("pdf_file", type=click.Path(exists=True, path_type=Path))
@config_option
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write an Excel ledger")
@verbose_option
def parse_pdf(pdf_file: Path, config: Optional[Path], output: Optional[Path], verbose: bool):
    """
    Parse a PDF statement and display its transactions without storing them.

    PDF_FILE: Path to the exported account statement
    """
    ingest_config = _load(config, verbose)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task("Parsing statement...", total=None)
            result = StatementProcessor(ingest_config).parse_file(pdf_file)
            progress.update(task, completed=True)

        _display_transactions(result.transactions, f"Statement: {pdf_file.name}")
        _display_statement_summary(result)

        if output is not None:
            path = ExcelReportGenerator(ingest_config).generate_report(
                result.transactions, output, result.account_info, result.source_name
            )
            console.print(f"\n[green]Report generated: {path}[/green]")
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("parse-email")
@click.argument("eml_file", type=click.Path(exists=True, path_type=Path))
@config_option
@verbose_option
def parse_email(eml_file: Path, config: Optional[Path], verbose: bool):
    """
    Parse one saved notification email (.eml) and display the transaction.

    EML_FILE: Path to the RFC 822 message file
    """
    ingest_config = _load(config, verbose)
    extractor = EmailTransactionExtractor(
        ingest_config.email,
        FailureLog(ingest_config.email.failed_log_path, ingest_config.email.failed_body_chars),
    )

    try:
        message = parse_raw_email(eml_file.read_bytes())
    except LedgerIngestError as e:
        _fail(e, verbose)
    result = extractor.extract(message)
    if not isinstance(result, Transaction):
        console.print(f"[red]{result.kind.value}: {result.reason}[/red]")
        sys.exit(1)

    table = Table(title=f"Email: {message.subject}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Type", result.transaction_type or "-")
    table.add_row("Direction", result.direction.value if result.direction else "-")
    table.add_row("Timestamp", result.timestamp_iso)
    table.add_row("Amount", f"{result.amount:,.2f} {result.currency}")
    table.add_row("Counterparty", result.counterparty_name or "-")
    table.add_row("Account IBAN", result.account_iban or "-")
    table.add_row(
        "Balance", f"{result.balance_after:,.2f}" if result.balance_after is not None else "-"
    )
    console.print(table)


@main.command("ingest-pdf")
@click.argument("pdf_files", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@config_option
@db_option
@customers_option
@history_option
@verbose_option
def ingest_pdf(
    pdf_files: tuple[Path, ...],
    config: Optional[Path],
    db: Optional[str],
    customers: Optional[Path],
    history: Optional[Path],
    verbose: bool,
):
    """
    Parse PDF statements and store their transactions.

    Already stored transactions are skipped. With --customers, unmatched
    transactions are matched afterwards.
    """
    ingest_config = _load(config, verbose)

    try:
        pipeline = _pipeline(ingest_config, db, customers, history)
        total = IngestReport()
        for pdf_file in pdf_files:
            report, _ = pipeline.ingest_statement_file(pdf_file)
            console.print(
                f"{pdf_file.name}: {report.inserted} new, {report.duplicates} already stored, "
                f"{report.failed} rejected"
            )
            total.merge(report)
            total.matched, total.unmatched = report.matched, report.unmatched
        _display_ingest_report(total)
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("fetch-emails")
@config_option
@db_option
@customers_option
@history_option
@verbose_option
def fetch_emails(
    config: Optional[Path],
    db: Optional[str],
    customers: Optional[Path],
    history: Optional[Path],
    verbose: bool,
):
    """Fetch unread bank notification emails and store their transactions."""
    ingest_config = _load(config, verbose)

    try:
        pipeline = _pipeline(ingest_config, db, customers, history)
        with MailboxClient(ingest_config.email) as client:
            report = pipeline.fetch_emails(client)
        _display_ingest_report(report)
        _display_metrics(pipeline)
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("watch-emails")
@config_option
@db_option
@customers_option
@history_option
@click.option("--interval", type=float, default=None, help="Seconds between mailbox polls")
@verbose_option
def watch_emails(
    config: Optional[Path],
    db: Optional[str],
    customers: Optional[Path],
    history: Optional[Path],
    interval: Optional[float],
    verbose: bool,
):
    """Keep polling the mailbox for new notification emails until interrupted."""
    ingest_config = _load(config, verbose)

    try:
        pipeline = _pipeline(ingest_config, db, customers, history)
        with MailboxClient(ingest_config.email) as client:
            monitor = pipeline.watch(client, interval)
            console.print("[cyan]Watching mailbox, press Ctrl+C to stop[/cyan]")
            try:
                while monitor.running:
                    time.sleep(1)
            except KeyboardInterrupt:
                pass
            finally:
                monitor.stop()
        _display_ingest_report(monitor.report)
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("match")
@config_option
@db_option
@click.option(
    "--customers",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Customer CSV used for payment matching",
)
@history_option
@verbose_option
def match(
    config: Optional[Path],
    db: Optional[str],
    customers: Path,
    history: Optional[Path],
    verbose: bool,
):
    """Match stored, unmatched transactions to customers."""
    ingest_config = _load(config, verbose)

    try:
        pipeline = _pipeline(ingest_config, db, customers, history)
        report = pipeline.match_unmatched()
        console.print(f"Matched {report.matched}, unmatched {report.unmatched}")
        for failure in report.failures:
            console.print(f"[yellow]{failure}[/yellow]")
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("export")
@config_option
@db_option
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Output Excel file path")
@verbose_option
def export(config: Optional[Path], db: Optional[str], output: Optional[Path], verbose: bool):
    """Export the stored ledger to an Excel workbook."""
    ingest_config = _load(config, verbose)

    try:
        store = SqlTransactionStore(db or ingest_config.storage.database_url)
        transactions = store.all()
        generator = ExcelReportGenerator(ingest_config)
        if output is None:
            output = Path(generator.default_filename())
        path = generator.generate_report(transactions, output, source_name="ledger store")
        console.print(f"[green]Report generated: {path} ({len(transactions)} transactions)[/green]")
    except LedgerIngestError as e:
        _fail(e, verbose)


@main.command("init-config")
@click.option(
    "-o", "--output", type=click.Path(path_type=Path), default=Path("config.yaml")
)
def init_config(output: Path):
    """Generate a sample configuration file."""
    generate_default_config(output)
    console.print(f"[green]Configuration file generated: {output}[/green]")


def _display_transactions(transactions: list[Transaction], title: str) -> None:
    table = Table(title=title)
    table.add_column("Timestamp")
    table.add_column("Description")
    table.add_column("Amount", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Category")
    table.add_column("Conf.", justify="right")

    for txn in transactions[:PREVIEW_ROWS]:
        table.add_row(
            txn.timestamp_iso,
            txn.description[:40] + "..." if len(txn.description) > 40 else txn.description,
            f"{txn.amount:,.2f}",
            f"{txn.balance_after:,.2f}" if txn.balance_after is not None else "-",
            txn.category,
            f"{txn.confidence:.2f}",
        )

    console.print(table)
    if len(transactions) > PREVIEW_ROWS:
        console.print(f"\n... and {len(transactions) - PREVIEW_ROWS} more transactions")


def _display_statement_summary(result: StatementParseResult) -> None:
    summary = result.summary
    table = Table(title="Statement Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    info = result.account_info
    if info.account_holder:
        table.add_row("Account Holder", info.account_holder)
    if info.iban:
        table.add_row("IBAN", info.iban)
    table.add_row("Records", str(summary.segmented_count))
    table.add_row("Transactions", str(summary.transaction_count))
    table.add_row("Rejected", str(summary.rejected_count))
    table.add_row("Anomalous", str(summary.anomaly_count))
    table.add_row("Duplicates", str(summary.duplicate_count))
    table.add_row("Total Debit", f"{summary.total_debit:,.2f}")
    table.add_row("Total Credit", f"{summary.total_credit:,.2f}")
    table.add_row("Success Rate", f"{summary.success_rate:.1%}")
    for category, count in sorted(summary.category_distribution.items()):
        table.add_row(f"  {category}", str(count))

    console.print(table)


def _display_ingest_report(report: IngestReport) -> None:
    table = Table(title="Ingestion Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Processed", str(report.processed))
    table.add_row("Inserted", str(report.inserted))
    table.add_row("Already Stored", str(report.duplicates))
    table.add_row("Failed", str(report.failed))
    table.add_row("Anomalous", str(report.anomalous))
    table.add_row("Matched", str(report.matched))
    table.add_row("Unmatched", str(report.unmatched))

    console.print(table)
    for failure in report.failures[:PREVIEW_ROWS]:
        console.print(f"[yellow]{failure}[/yellow]")


def _display_metrics(pipeline: IngestionPipeline) -> None:
    snapshot = pipeline.metrics.snapshot()
    console.print(
        f"Processed {snapshot.processed}/{snapshot.total}, failed {snapshot.failed}, "
        f"retries {snapshot.retries}, avg {snapshot.average_seconds:.3f}s"
    )


if __name__ == "__main__":
    main()
