"""NISA contribution quota calculator.

Pure functions over holdings and their transactions; nothing is fetched or
stored. Usage counts buy transactions at their transaction-time amount
(``quantity * price``), never current market value.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from models.enums import AccountType, TransactionType

ZERO = Decimal("0")

TSUMITATE_ANNUAL_CAP = Decimal("1200000")
GROWTH_ANNUAL_CAP = Decimal("2400000")
TOTAL_ANNUAL_CAP = Decimal("3600000")
LIFETIME_CAP = Decimal("18000000")
GROWTH_LIFETIME_CAP = Decimal("12000000")

ANNUAL_CAPS: dict[AccountType, Optional[Decimal]] = {
    AccountType.GENERAL: None,
    AccountType.NISA_TSUMITATE: TSUMITATE_ANNUAL_CAP,
    AccountType.NISA_GROWTH: GROWTH_ANNUAL_CAP,
}

LIFETIME_CAPS: dict[AccountType, Optional[Decimal]] = {
    AccountType.GENERAL: None,
    AccountType.NISA_TSUMITATE: LIFETIME_CAP,
    AccountType.NISA_GROWTH: GROWTH_LIFETIME_CAP,
}


def _clamp(raw: Decimal, cap: Optional[Decimal]) -> Decimal:
    if cap is None:
        return raw
    return min(raw, cap)


def _remaining(raw: Decimal, cap: Optional[Decimal]) -> Optional[Decimal]:
    if cap is None:
        return None
    return max(cap - raw, ZERO)


def _ratio(raw: Decimal, cap: Optional[Decimal]) -> Optional[Decimal]:
    if not cap:
        return None
    return min(raw / cap, Decimal("1"))


@dataclass(frozen=True)
class UsageFigure:
    """A raw contribution total against an optional cap."""

    raw: Decimal
    cap: Optional[Decimal]

    @property
    def displayed(self) -> Decimal:
        """``raw`` clamped at the cap, for progress displays."""
        return _clamp(self.raw, self.cap)

    @property
    def remaining(self) -> Optional[Decimal]:
        return _remaining(self.raw, self.cap)

    @property
    def ratio(self) -> Optional[Decimal]:
        return _ratio(self.raw, self.cap)

    @property
    def is_over(self) -> bool:
        return self.cap is not None and self.raw > self.cap


@dataclass(frozen=True)
class TrancheUsage:
    tranche: AccountType
    annual: UsageFigure
    lifetime: UsageFigure


@dataclass(frozen=True)
class QuotaUsage:
    """Contribution usage per tranche plus the NISA-wide totals.

    Raw totals are kept as-is so over-contribution stays visible;
    ``displayed*`` values never exceed their cap.
    """

    year: int
    tranches: dict[AccountType, TrancheUsage]
    nisa_annual: UsageFigure
    nisa_lifetime: UsageFigure

    def raw(self, tranche: AccountType) -> Decimal:
        return self.tranches[AccountType(tranche)].annual.raw

    def displayed(self, tranche: AccountType) -> Decimal:
        return self.tranches[AccountType(tranche)].annual.displayed

    def cap(self, tranche: AccountType) -> Optional[Decimal]:
        return self.tranches[AccountType(tranche)].annual.cap

    def raw_lifetime(self, tranche: AccountType) -> Decimal:
        return self.tranches[AccountType(tranche)].lifetime.raw

    def displayed_lifetime(self, tranche: AccountType) -> Decimal:
        return self.tranches[AccountType(tranche)].lifetime.displayed


def contribution_total(holdings: Iterable, year: Optional[int] = None) -> Decimal:
    """Sum of buy amounts, restricted to ``year`` when given."""
    total = ZERO
    for holding in holdings:
        for tx in holding.transactions:
            if tx.type != TransactionType.BUY.value:
                continue
            if year is not None and tx.trade_date.year != year:
                continue
            total += Decimal(str(tx.quantity)) * Decimal(str(tx.price))
    return total


def calculate(holdings: Iterable, year: Optional[int] = None) -> QuotaUsage:
    """Compute contribution usage per tranche.

    Args:
        holdings: Holdings with ``tier`` and ``transactions``
        year: Calendar year for the annual figures (default: current year)
    """
    year = year or date.today().year
    by_tranche: dict[AccountType, list] = {tranche: [] for tranche in AccountType}
    for holding in holdings:
        by_tranche[holding.tier].append(holding)

    tranches = {}
    for tranche, members in by_tranche.items():
        tranches[tranche] = TrancheUsage(
            tranche=tranche,
            annual=UsageFigure(contribution_total(members, year), ANNUAL_CAPS[tranche]),
            lifetime=UsageFigure(contribution_total(members), LIFETIME_CAPS[tranche]),
        )

    nisa = [t for t in tranches.values() if t.tranche.is_nisa]
    return QuotaUsage(
        year=year,
        tranches=tranches,
        nisa_annual=UsageFigure(sum((t.annual.raw for t in nisa), ZERO), TOTAL_ANNUAL_CAP),
        nisa_lifetime=UsageFigure(sum((t.lifetime.raw for t in nisa), ZERO), LIFETIME_CAP),
    )
