"""
Locale-aware monetary amount parsing.

Statement and notification amounts use Turkish formatting ("1.234,56"),
occasionally with non-breaking-space thousands, a dropped trailing decimal
digit ("2.365.792,5") or a currency symbol glued on. Everything is parsed into
exact ``Decimal`` values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union
import re

ZERO = Decimal("0")
CENT = Decimal("0.01")

_CURRENCY_RE = re.compile(r"[₺$€£]|\b(?:TL|TRY|USD|EUR|GBP)\b", re.IGNORECASE)
_NOISE_RE = re.compile(r"[^\d.,\s]")
_SINGLE_DECIMAL_RE = re.compile(r",(\d)$")
_SEPARATORS_RE = re.compile(r"[.,\s]")

AmountInput = Union[str, int, float, Decimal, None]


def parse_amount(value: AmountInput) -> Decimal:
    """
    Parse a locale-formatted amount into a Decimal.

    Rules, in order: currency symbols and non-breaking spaces are stripped; a
    single digit after a trailing comma is padded to two; when both ``.`` and
    ``,`` occur, the last ``,`` is the decimal separator and everything before
    it is thousands grouping; a lone ``,`` is decimal; with several ``.`` and no
    ``,`` the last ``.`` is decimal. A ``-`` anywhere makes the result negative.

    Unparseable input returns ``Decimal("0")``. A zero result therefore does
    not prove the input was a valid zero.

    Args:
        value: Raw amount text (numbers pass through unchanged)

    Returns:
        Parsed amount
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            return ZERO

    raw = str(value)
    negative = "-" in raw

    s = raw.replace("\u00a0", " ").replace("\u202f", " ")
    s = _CURRENCY_RE.sub("", s)
    s = _NOISE_RE.sub("", s).strip()
    s = _SINGLE_DECIMAL_RE.sub(r",\g<1>0", s)

    last_comma = s.rfind(",")
    last_dot = s.rfind(".")

    if last_comma > last_dot:
        integer, fraction = s[:last_comma], s[last_comma + 1 :]
    elif last_dot >= 0:
        # No comma after the last dot: the last dot is the decimal point
        integer, fraction = s[:last_dot], s[last_dot + 1 :]
    else:
        integer, fraction = s, ""

    integer = _SEPARATORS_RE.sub("", integer)
    fraction = fraction.strip()

    if not integer and not fraction:
        return ZERO
    if (integer and not integer.isdigit()) or (fraction and not fraction.isdigit()):
        return ZERO

    try:
        result = Decimal(f"{integer or '0'}.{fraction}" if fraction else integer)
    except InvalidOperation:
        return ZERO

    if negative and result != 0:
        result = -result
    return result


def quantize_money(value: Decimal) -> Decimal:
    """Round an amount to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Render an amount with exactly two decimals, as used in content hashes."""
    return f"{quantize_money(value):.2f}"
