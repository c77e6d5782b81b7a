from email.message import EmailMessage as MimeMessage

from click.testing import CliRunner
from openpyxl import load_workbook
import pytest

from ledger_ingest.cli import main
from ledger_ingest.ingestion import IngestionPipeline
from ledger_ingest.storage import SqlTransactionStore

from conftest import FAST_INCOMING_BODY


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def _eml(path, subject, body):
    msg = MimeMessage()
    msg["Subject"] = subject
    msg["From"] = "bilgi@bank.example"
    msg["Message-ID"] = "<cli@bank.example>"
    msg.set_content(body)
    path.write_bytes(msg.as_bytes())
    return path


def test_init_config(runner, tmp_path):
    target = tmp_path / "conf" / "config.yaml"
    result = runner.invoke(main, ["init-config", "-o", str(target)])

    assert result.exit_code == 0
    assert target.exists()


def test_parse_email(runner, tmp_path):
    eml = _eml(tmp_path / "fast.eml", "Asistan-Gelen FAST", FAST_INCOMING_BODY)
    result = runner.invoke(main, ["parse-email", str(eml)])

    assert result.exit_code == 0
    assert "FAST" in result.output
    assert "Ahmet Yılmaz" in result.output


def test_parse_email_failure_exits_nonzero(runner, tmp_path):
    eml = _eml(tmp_path / "promo.eml", "Kampanya", "Yeni kart fırsatları")
    result = runner.invoke(main, ["parse-email", str(eml)])

    assert result.exit_code == 1
    assert "template_mismatch" in result.output
    assert (tmp_path / "logs" / "failed-emails.log").exists()


def test_export(runner, tmp_path, config, statement_text):
    db_url = f"sqlite:///{tmp_path / 'cli.db'}"
    IngestionPipeline(config, SqlTransactionStore(db_url)).ingest_statement_text(statement_text)
    output = tmp_path / "ledger.xlsx"

    result = runner.invoke(main, ["export", "--db", db_url, "-o", str(output)])

    assert result.exit_code == 0
    assert load_workbook(output)["Transactions"].max_row == 4


def test_match_requires_customers(runner):
    result = runner.invoke(main, ["match"])
    assert result.exit_code == 2


def test_parse_email_with_unknown_charset(runner, tmp_path):
    eml = tmp_path / "bad.eml"
    eml.write_bytes(
        b"Subject: FAST\r\n"
        b'Content-Type: text/plain; charset="x-bogus"\r\n'
        b"Content-Transfer-Encoding: 8bit\r\n"
        b"\r\n"
        b"\xfe\xff garbled\r\n"
    )

    result = runner.invoke(main, ["parse-email", str(eml)])

    assert result.exit_code == 1
    assert "Error" in result.output
    assert not isinstance(result.exception, LookupError)
