"""Typed exception hierarchy for market data errors.

Lets callers tell a bad request from a transport failure, an empty result,
a failed crumb handshake and a schema mismatch, and decide per case whether
to fall back, absorb or surface the error.
"""


class MarketDataError(Exception):
    """Base exception for all market-data errors.

    Carries the provider name so callers can identify which provider failed.
    """

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)


class InvalidRequestError(MarketDataError):
    """Malformed symbol, ranking or URL; never sent upstream."""

    pass


class DataUnavailableError(MarketDataError):
    """The upstream answered with nothing usable (transport or payload)."""

    pass


class UnreachableError(DataUnavailableError):
    """Transport failure: timeout, DNS, connection refused, or non-2xx HTTP."""

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """Timeouts, 429 (rate limit) and 5xx errors are generally retriable."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


class DecodeFailedError(DataUnavailableError):
    """Response body does not match the expected schema."""

    pass


class NoDataError(MarketDataError):
    """Well-formed response with an empty result."""

    pass


class AuthenticationFailedError(MarketDataError):
    """Cookie/crumb handshake failed or the crumb was rejected (401/403)."""

    pass


class RateUnavailableError(Exception):
    """No fresh FX rate for one or more currency pairs."""

    def __init__(self, pairs: list[tuple[str, str]], message: str | None = None):
        self.pairs = pairs
        if message is None:
            joined = ", ".join(f"{f}/{t}" for f, t in pairs)
            message = f"FX rate unavailable for {joined}"
        super().__init__(message)


class PartialAggregateWarning(UserWarning):
    """Some holdings were left out of a snapshot for lack of a price or rate."""

    def __init__(self, excluded_symbols: list[str]):
        self.excluded_symbols = excluded_symbols
        super().__init__(
            f"Snapshot excludes {len(excluded_symbols)} holding(s): "
            + ", ".join(excluded_symbols)
        )
