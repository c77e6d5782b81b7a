"""
Ordered rule tables used to tag transactions.

Each table is a list of ``(tag, pattern)`` pairs evaluated top to bottom, so
the rule set can be read, extended and tested without touching control flow.
"""

import re

from ..models.transaction import Direction

_FLAGS = re.IGNORECASE

# Every rule that matches contributes its tag
CATEGORY_RULES: list[tuple[str, re.Pattern]] = [
    ("fee_bsmv", re.compile(r"\bBSMV\b", _FLAGS)),
    ("fee_eft", re.compile(r"ELEKTRON[İI]K\s+FON\s+TRANSFER[İI].*ÜCRET[İI]", _FLAGS)),
    ("incoming_fast", re.compile(r"\bGELEN\s+FAST\b", _FLAGS)),
    ("outgoing_fast", re.compile(r"\bG[İI]DEN\s+FAST\b", _FLAGS)),
    ("incoming_eft", re.compile(r"\bGELEN\s+EFT\b", _FLAGS)),
    ("outgoing_eft", re.compile(r"\bG[İI]DEN\s+EFT\b", _FLAGS)),
    ("pos_spend", re.compile(r"\bPOS\b", _FLAGS)),
    ("invoice", re.compile(r"Fatura|\bISKI\b|\bSU\b|Elektrik|Do[gğ]algaz|Telekom", _FLAGS)),
    ("incoming_havale", re.compile(r"\bGELEN\s+HAVALE\b", _FLAGS)),
    ("outgoing_havale", re.compile(r"\bG[İI]DEN\s+HAVALE\b", _FLAGS)),
]

# Category precedence: the first class with a matching tag wins
CATEGORY_CLASSES: list[tuple[str, str]] = [
    ("incoming", "incoming_"),
    ("outgoing", "outgoing_"),
    ("fee", "fee_"),
    ("pos", "pos_"),
    ("invoice", "invoice"),
]

OTHER = "other"

# First match wins
OPERATION_RULES: list[tuple[str, re.Pattern]] = [
    ("FAST", re.compile(r"\bFAST\b")),
    ("EFT", re.compile(r"\bEFT\b")),
    ("HAVALE", re.compile(r"\bHAVALE\b")),
    ("POS", re.compile(r"\bPOS\b", _FLAGS)),
    ("Fatura", re.compile(r"Fatura\s+Ödemesi|\bFatura\b", _FLAGS)),
    ("Para Gönder", re.compile(r"Para\s+Gönder", _FLAGS)),
]

CHANNEL_RULES: list[tuple[str, re.Pattern]] = [
    ("Internet - Mobil", re.compile(r"Internet\s*-\s*Mobil", _FLAGS)),
    ("Diğer", re.compile(r"\bDiğer\b", _FLAGS)),
    ("Şube", re.compile(r"\bŞube\b", _FLAGS)),
]

DIRECTION_RULES: list[tuple[Direction, re.Pattern]] = [
    (Direction.IN, re.compile(r"\bGELEN\b", _FLAGS)),
    (Direction.OUT, re.compile(r"\bG[İI]DEN\b", _FLAGS)),
]

DIRECTION_WORDS = {Direction.IN: "GELEN", Direction.OUT: "GİDEN"}

IBAN_RE = re.compile(r"\bTR\d{24}\b")
DIRECTION_OPERATION_PREFIX = re.compile(
    r"(G[İI]DEN|GELEN)\s+(FAST|EFT|HAVALE)\s*-\s*", _FLAGS
)


def match_tags(text: str) -> list[str]:
    """Return the tag of every category rule matching ``text``, in rule order."""
    return [tag for tag, pattern in CATEGORY_RULES if pattern.search(text)]


def classify_tags(tags: list[str]) -> tuple[str, str]:
    """
    Pick (category, subcategory) from matched tags by class precedence.

    The subcategory is the first tag, in rule order, of the winning class.
    """
    for category, prefix in CATEGORY_CLASSES:
        for tag in tags:
            if tag.startswith(prefix):
                return category, tag
    return OTHER, OTHER


def first_match(rules, text: str):
    """Return the label of the first rule whose pattern occurs in ``text``."""
    for label, pattern in rules:
        if pattern.search(text):
            return label
    return None
