"""String enums shared by the ORM models and API schemas."""

from enum import Enum


class AssetType(str, Enum):
    STOCK = "stock"
    FUND = "fund"
    METAL = "metal"
    CRYPTO = "crypto"
    BOND = "bond"
    CASH = "cash"


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"


class AccountType(str, Enum):
    """Account tier. ``nisa_*`` are the tax-advantaged tranches."""

    GENERAL = "general"
    NISA_TSUMITATE = "nisa_tsumitate"
    NISA_GROWTH = "nisa_growth"

    @classmethod
    def parse(cls, value: str | None) -> "AccountType":
        """Parse a stored value, reading the legacy ``normal`` as general."""
        if not value or value == "normal":
            return cls.GENERAL
        try:
            return cls(value)
        except ValueError:
            return cls.GENERAL

    @property
    def is_nisa(self) -> bool:
        return self is not AccountType.GENERAL
