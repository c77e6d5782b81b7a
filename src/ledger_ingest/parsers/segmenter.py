"""
Stateful segmentation of extracted statement text into transaction records.

A PDF text layer breaks one logical transaction over several physical lines.
Every transaction starts with a ``dd/mm/yyyy hh:mm:ss`` stamp, so lines are
stitched onto the open record until the next stamp appears.
"""

from typing import Iterable, Optional
import logging
import re

from ..models.transaction import RawRecord

logger = logging.getLogger(__name__)

# "11/08/2025 17:39:14" and the glued "11/08/202517:39:14" both start a record
DATETIME_ANCHOR = re.compile(r"^(\d{2}/\d{2}/\d{4})\s*(\d{2}:\d{2}:\d{2})")
PAGE_FOOTER = re.compile(r"^\d+/\d+$")

_SPACES_RE = re.compile(r"[ \t]+")
_WRAPPED_WORD_RE = re.compile(r"(\w)-$")


class TextSegmenter:
    """
    Splits statement text into candidate transaction records.

    Page footers and the configured boilerplate banner lines are dropped
    before segmentation. Lines that appear before the first date-time anchor
    have no record to join and are discarded.
    """

    def __init__(self, boilerplate_patterns: Optional[Iterable[str]] = None):
        """
        Initialize the segmenter.

        Args:
            boilerplate_patterns: Regexes for header/banner lines to discard
        """
        self.boilerplate = [re.compile(p) for p in (boilerplate_patterns or [])]

    def clean_line(self, raw: str) -> str:
        """Trim a physical line and squeeze runs of spaces and tabs."""
        return _SPACES_RE.sub(" ", raw).strip()

    def is_noise(self, line: str) -> bool:
        """True for page footers and statement chrome."""
        if PAGE_FOOTER.match(line):
            return True
        return any(pattern.search(line) for pattern in self.boilerplate)

    def is_record_start(self, line: str) -> bool:
        return DATETIME_ANCHOR.match(line) is not None

    def numbered_lines(self, text: str) -> list[tuple[int, str]]:
        """Non-empty, trimmed, non-noise lines with their index in ``text``."""
        numbered: list[tuple[int, str]] = []
        for index, raw in enumerate(text.splitlines()):
            line = self.clean_line(raw)
            if line and not self.is_noise(line):
                numbered.append((index, line))
        return numbered

    def split_lines(self, text: str) -> list[str]:
        """Split raw text into non-empty, trimmed, non-noise lines."""
        return [line for _, line in self.numbered_lines(text)]

    def segment(self, lines: Iterable[str]) -> list[RawRecord]:
        """
        Group lines into records, one per transaction.

        Args:
            lines: Physical lines of statement text

        Returns:
            Records in statement order, each with the index of its anchor line
        """
        return self._segment_numbered(enumerate(lines))

    def segment_text(self, text: str) -> list[RawRecord]:
        """Segment a whole text layer; line indices refer to ``text``."""
        return self._segment_numbered(self.numbered_lines(text))

    def _segment_numbered(self, numbered: Iterable[tuple[int, str]]) -> list[RawRecord]:
        records: list[RawRecord] = []
        current: Optional[RawRecord] = None
        dropped = 0

        for index, raw in numbered:
            line = self.clean_line(raw)
            if not line or self.is_noise(line):
                continue

            if self.is_record_start(line):
                current = RawRecord(text=line, line_index=index, lines=[line])
                records.append(current)
            elif current is not None:
                current.lines.append(line)
                current.text = self._join(current.text, line)
            else:
                dropped += 1

        if dropped:
            logger.debug(f"Dropped {dropped} line(s) before the first record anchor")
        logger.debug(f"Segmented {len(records)} record(s)")
        return records

    @staticmethod
    def _join(text: str, continuation: str) -> str:
        # "Elektro-" + "nik" was one word broken by the layout
        if _WRAPPED_WORD_RE.search(text) and continuation[:1].islower():
            return text[:-1] + continuation
        return f"{text} {continuation}"
