"""Holding ledger - replays a holding's transactions up to a date."""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from models.enums import TransactionType

ZERO = Decimal("0")

# Same-day ordering: buys settle before dividends and sells
_TYPE_ORDER = {
    TransactionType.BUY.value: 0,
    TransactionType.DIVIDEND.value: 1,
    TransactionType.SELL.value: 2,
}


@dataclass
class LedgerPosition:
    """Quantity and average-cost basis of a holding after a replay."""

    quantity: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    dividends: Decimal = ZERO

    @property
    def average_cost(self) -> Decimal:
        if self.quantity <= 0:
            return ZERO
        return self.cost_basis / self.quantity

    @property
    def realized_total(self) -> Decimal:
        """Realized trading P&L plus dividend income."""
        return self.realized_pnl + self.dividends

    @property
    def is_open(self) -> bool:
        return self.quantity > 0


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def replay(transactions: Iterable, as_of: Optional[date] = None) -> LedgerPosition:
    """Replay transactions dated on or before ``as_of`` (all when None).

    - buy: quantity up; cost up by ``quantity * price + fee``
    - sell: cost down by ``quantity * average cost`` (the sell fee does not
      touch the remaining cost); realizes ``proceeds - cost removed - fee``
    - dividend: ``quantity * price`` added to dividend income

    Overselling clamps the position at zero.
    """
    position = LedgerPosition()
    ordered = sorted(
        (t for t in transactions if as_of is None or t.trade_date <= as_of),
        key=lambda t: (t.trade_date, _TYPE_ORDER.get(t.type, 3)),
    )

    for tx in ordered:
        quantity = _as_decimal(tx.quantity)
        price = _as_decimal(tx.price)
        fee = _as_decimal(tx.fee)

        if tx.type == TransactionType.BUY.value:
            position.cost_basis += quantity * price + fee
            position.quantity += quantity
        elif tx.type == TransactionType.SELL.value:
            if position.quantity > 0:
                sold = min(quantity, position.quantity)
                avg = position.average_cost
                removed = sold * avg
                position.realized_pnl += sold * price - removed - fee
                position.cost_basis -= removed
                position.quantity -= sold
            if position.quantity <= 0:
                position.quantity = ZERO
                position.cost_basis = ZERO
        elif tx.type == TransactionType.DIVIDEND.value:
            position.dividends += quantity * price

    return position
