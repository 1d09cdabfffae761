"""
Ledger limits - hardcoded, cannot be changed at runtime.

Amounts are integers in the token's smallest unit (USDC at 7 decimals:
1_0000000 == $1). The ledger models signed 128-bit amounts, so every
composition of amounts goes through checked_add / checked_sub.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Final

from .errors import ArithmeticOverflowError


I128_MAX: Final[int] = 2**127 - 1
I128_MIN: Final[int] = -(2**127)


@dataclass(frozen=True)
class LedgerLimits:
    """Frozen dataclass = immutable at runtime."""

    # --- FEES ---
    MAX_FEE: Final[int] = 5_000_000                  # $0.50 cap at 7 decimals

    # --- TOKEN ---
    TOKEN_DECIMALS: Final[int] = 7                   # Stellar USDC
    MAX_ALLOWANCE_LEDGERS: Final[int] = 3_110_400    # ~180 days of 5s ledgers


LIMITS = LedgerLimits()


class Role(Enum):
    """Permission tags grantable per account."""
    ADMIN = "ADMIN"
    OPERATOR = "OPERATOR"
    TREASURER = "TREASR"


ROLE_MAP = {r.value: r for r in Role}


def checked_add(*amounts: int) -> int:
    """Sum amounts, raising ArithmeticOverflowError if the result leaves i128."""
    total = 0
    for amount in amounts:
        total += amount
        if total > I128_MAX or total < I128_MIN:
            raise ArithmeticOverflowError("Amount overflow")
    return total


def checked_sub(a: int, b: int) -> int:
    result = a - b
    if result > I128_MAX or result < I128_MIN:
        raise ArithmeticOverflowError("Amount overflow")
    return result
