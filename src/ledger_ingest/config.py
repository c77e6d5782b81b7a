"""Configuration loader and validation for ingestion settings."""

from pathlib import Path
from typing import Any, Optional
import logging
import os

import yaml
from pydantic import BaseModel, Field, ValidationError

from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ParsingConfig(BaseModel):
    """Configuration for statement text parsing."""

    default_currency: str = "TL"
    currency_codes: list[str] = Field(
        default_factory=lambda: ["TL", "TRY", "USD", "EUR", "GBP"]
    )
    datetime_format: str = "%d/%m/%Y %H:%M:%S"
    description_hash_prefix: int = 120
    # Lines matching any of these are statement chrome, not transaction text
    boilerplate_patterns: list[str] = Field(
        default_factory=lambda: [
            r"^Hesap Hareketleri",
            r"^Yapı ve Kredi Bankası",
            r"^www\.yapikredi\.com\.tr",
            r"^Ticaret Sicil Numarası",
            r"^Mersis No:",
            r"^İşletmenin Merkezi",
            r"^Blok 34330",
            r"^T: \(",
            r"^F: \(",
            r"^(?:Tarih Aralığı|Müşteri Adı|Müşteri Numarası|Hesap Adı|IBAN/Hesap No|Kullanılabilir Bakiye)\b",
            r"TarihSaatİşlemKanalAçıklamaİşlem TutarıBakiye",
            r"^----BLOKE BAKİYESİ",
            r"^----Diğer Bekleyen İşlemler",
        ]
    )


class EmailConfig(BaseModel):
    """Configuration for the notification mailbox."""

    host: Optional[str] = None
    port: int = 993
    user: Optional[str] = None
    password: Optional[str] = None
    mailbox: str = "INBOX"
    subject_keywords: list[str] = Field(
        default_factory=lambda: ["FAST", "HAVALE", "EFT", "asistan"]
    )
    unseen_only: bool = True
    batch_size: int = 10
    concurrency_limit: int = 5
    timeout_seconds: float = 5.0
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    poll_interval_seconds: float = 30.0
    failed_log_path: str = "logs/failed-emails.log"
    failed_body_chars: int = 1000


class QualityConfig(BaseModel):
    """Configuration for reconciliation and duplicate checks."""

    balance_tolerance: float = 0.01
    balance_anomaly_factor: float = 0.8
    duplicate_factor: float = 0.5


class MatchingConfig(BaseModel):
    """Configuration for customer payment matching."""

    acceptance_floor: float = 0.7
    name_weight: float = 0.5
    amount_weight: float = 0.3
    iban_weight: float = 0.2
    iban_enabled: bool = False
    name_similarity_threshold: float = 0.8
    first_word_confidence: float = 0.7
    initials_confidence: float = 0.6
    exact_amount_confidence: float = 0.9
    average_amount_confidence: float = 0.7
    sequential_amount_confidence: float = 0.8
    exact_amount_tolerance: float = 0.01
    amount_tolerance_percent: float = 10.0
    history_days: int = 30
    history_limit: int = 10
    excluded_name_markers: list[str] = Field(default_factory=lambda: ["FAKTORİNG"])
    corporate_suffixes: list[str] = Field(
        default_factory=lambda: [
            "ltd",
            "şti",
            "sti",
            "aş",
            "as",
            "san",
            "ve",
            "tic",
            "limited",
            "şirketi",
            "endüstriyel",
            "kontrol",
            "sistemleri",
        ]
    )


class StorageConfig(BaseModel):
    """Configuration for the transaction store."""

    database_url: str = "sqlite:///ledger.db"


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "ledger_export_{date}_{time}.xlsx"
    include_timestamp: bool = True


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    transactions: SheetConfig = Field(
        default_factory=lambda: SheetConfig(name="Transactions")
    )
    anomalies: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Anomalies"))
    matches: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Matches"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None


class IngestConfig(BaseModel):
    """Main configuration model for ingestion."""

    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
    email: EmailConfig = Field(default_factory=EmailConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


# Environment variables that override mailbox settings
ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "EMAIL_HOST": ("host", str),
    "EMAIL_PORT": ("port", int),
    "EMAIL_USER": ("user", str),
    "EMAIL_PASS": ("password", str),
    "EMAIL_BATCH_SIZE": ("batch_size", int),
    "EMAIL_CONCURRENCY_LIMIT": ("concurrency_limit", int),
    "EMAIL_TIMEOUT": ("timeout_seconds", float),
    "EMAIL_MAX_RETRIES": ("max_retries", int),
    "EMAIL_RETRY_DELAY": ("retry_delay_seconds", float),
}


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return IngestConfig().model_dump(mode="json", exclude={"config_file_path"})


def load_config(config_path: Optional[Path] = None) -> IngestConfig:
    """
    Load configuration from a YAML file or use defaults.

    Environment variables listed in ``ENV_OVERRIDES`` take precedence over
    both the defaults and the file, so mailbox credentials never need to be
    written to disk.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        IngestConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file or an override is invalid
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    config_dict["email"] = _apply_env_overrides(config_dict.get("email", {}))

    try:
        return IngestConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _apply_env_overrides(email_config: dict) -> dict:
    """Overlay mailbox settings taken from the environment."""
    result = dict(email_config)
    for env_name, (key, cast) in ENV_OVERRIDES.items():
        raw = os.environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            result[key] = cast(raw)
        except ValueError as e:
            raise ConfigurationError(f"{env_name} must be {cast.__name__}: {raw!r}") from e
    return result


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    config_dict = get_default_config()
    # Credentials belong in the environment
    for key in ("host", "user", "password"):
        config_dict["email"].pop(key, None)

    yaml_content = """# Bank ledger ingestion configuration
# Mailbox credentials are read from EMAIL_HOST, EMAIL_PORT, EMAIL_USER, EMAIL_PASS

"""
    yaml_content += yaml.dump(
        config_dict, default_flow_style=False, sort_keys=False, allow_unicode=True
    )

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
