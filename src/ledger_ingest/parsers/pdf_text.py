"""Text-layer extraction from PDF account statements."""

from pathlib import Path
import logging

import pdfplumber

from ..utils.exceptions import StatementReadError

logger = logging.getLogger(__name__)


def extract_text(file_path: Path) -> str:
    """
    Read the text layer of every page, joined with newlines.

    Args:
        file_path: Path to the PDF statement

    Returns:
        Extracted text

    Raises:
        StatementReadError: If the file cannot be opened or read
    """
    logger.info(f"Extracting text from PDF: {file_path}")
    try:
        with pdfplumber.open(file_path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        logger.error(f"Failed to read PDF: {e}")
        raise StatementReadError(f"Failed to read PDF {file_path}: {e}") from e

    text = "\n".join(pages)
    logger.info(f"Read {len(pages)} page(s), {len(text)} characters")
    return text
