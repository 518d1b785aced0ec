"""Shared parsing utilities for provider clients.

Centralises the payload decoding every market data integration needs:
Unix timestamps, ``{raw, fmt}`` wrapped numbers, safe Decimal conversion,
and the tagged ``ScanValue`` used for heterogeneous scanner rows.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any, places: int = 6) -> Decimal | None:
    """Convert a JSON number (or numeric string) to a rounded Decimal.

    Returns None for None, booleans, NaN/inf, the ``"-"`` placeholder
    some providers use for missing cells, and anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return Decimal(str(round(float(value), places)))
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text or text == "-":
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        if not parsed.is_finite():
            return None
        return parsed
    return None


def unwrap_raw(value: Any) -> Any:
    """Return the authoritative ``raw`` member of a ``{raw, fmt}`` field.

    Plain values pass through unchanged. ``fmt`` is display text and is
    never used for computation.
    """
    if isinstance(value, dict):
        return value.get("raw")
    return value


def raw_decimal(payload: dict, key: str, places: int = 6) -> Decimal | None:
    return to_decimal(unwrap_raw(payload.get(key)), places)


def raw_int(payload: dict, key: str) -> int | None:
    value = unwrap_raw(payload.get(key))
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_unix_timestamp(value) -> datetime | None:
    """Parse a Unix epoch timestamp to a UTC-aware datetime.

    Args:
        value: An int, float, string-encoded number, or None.

    Returns:
        A timezone-aware UTC datetime, or None if the value cannot be parsed.
    """
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (ValueError, TypeError, OSError):
        return None


def local_trade_date(timestamp, gmtoffset: int | None) -> date | None:
    """Convert a bar timestamp to the exchange-local trading date.

    Yahoo stamps daily bars at the session open in UTC; applying the
    exchange ``gmtoffset`` keeps Tokyo and Hong Kong bars on the right day.
    """
    dt = parse_unix_timestamp(timestamp)
    if dt is None:
        return None
    if gmtoffset:
        dt = datetime.fromtimestamp(int(timestamp) + int(gmtoffset), tz=timezone.utc)
    return dt.date()


@dataclass(frozen=True)
class ScanValue:
    """Tagged value decoded from a mixed string/number JSON array cell."""

    kind: str  # "string" | "number" | "null"
    value: Any = None

    @classmethod
    def decode(cls, raw: Any) -> "ScanValue":
        if raw is None:
            return cls("null")
        if isinstance(raw, bool):
            return cls("number", int(raw))
        if isinstance(raw, (int, float)):
            return cls("number", raw)
        if isinstance(raw, str):
            return cls("string", raw)
        return cls("string", str(raw))

    def as_string(self) -> str | None:
        if self.kind == "string":
            return self.value
        if self.kind == "number":
            return str(self.value)
        return None

    def as_number(self) -> Decimal | None:
        if self.kind == "number":
            return to_decimal(self.value)
        if self.kind == "string":
            return to_decimal(self.value)
        return None


def decode_scan_row(cells: list[Any]) -> list[ScanValue]:
    """Decode a heterogeneous scanner row into tagged values."""
    return [ScanValue.decode(cell) for cell in cells]
