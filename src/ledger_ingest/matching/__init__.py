"""Customer payment matching."""

from .engine import PaymentMatcher
from .strategies import (
    AmountPatternStrategy,
    IbanMatchStrategy,
    MatchingStrategy,
    NameMatchStrategy,
    StrategyScore,
)

__all__ = [
    "PaymentMatcher",
    "MatchingStrategy",
    "NameMatchStrategy",
    "AmountPatternStrategy",
    "IbanMatchStrategy",
    "StrategyScore",
]
