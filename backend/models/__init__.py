"""SQLAlchemy ORM models."""

from .daily_holding_value import DailyHoldingValue
from .daily_snapshot import AGGREGATE_SCOPE, DailySnapshot, scope_key_for
from .enums import AccountType, AssetType, TransactionType
from .holding import Holding
from .portfolio import Portfolio
from .transaction import Transaction
from .user_preference import UserPreference
from .utils import generate_uuid

__all__ = ["AGGREGATE_SCOPE", "AccountType", "AssetType", "DailyHoldingValue", "DailySnapshot", "Holding", "Portfolio", "Transaction", "TransactionType", "UserPreference", "generate_uuid", "scope_key_for"]
