"""
Custom exception hierarchy for walletgraph.

Each exception maps to a specific CLI exit code and JSON error_code field.
cli.py catches all WalletGraphError subclasses and formats them as JSON output.

Inside the graph core nothing here crosses a component boundary: detail and
history fetch failures are caught by the session and expressed as an absent
cache entry instead.

Exit code mapping:
  1 — WalletGraphError (generic CLI error)
  2 — APIError (invalid key, rate limit, upstream error)
  3 — NetworkError (timeout, connection refused)
  4 — DataError (invalid address, transaction not found)
  5 — ConfigError (malformed config or invalid values)
"""


class WalletGraphError(Exception):
    """Base exception for all walletgraph errors."""

    exit_code: int = 1
    error_code: str = "unknown_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class APIError(WalletGraphError):
    """Explorer API returned an error response."""

    exit_code = 2
    error_code = "api_error"


class InvalidAPIKeyError(APIError):
    """API key was rejected by the explorer."""

    error_code = "invalid_api_key"


class RateLimitError(APIError):
    """API rate limit exceeded."""

    error_code = "rate_limited"

    def __init__(self, message: str, retry_after: int = 60, **kwargs) -> None:
        super().__init__(message, details={"retry_after_seconds": retry_after})
        self.retry_after = retry_after


class NetworkError(WalletGraphError):
    """Network connectivity issue — timeout or connection failure."""

    exit_code = 3
    error_code = "network_error"


class NetworkTimeoutError(NetworkError):
    """Request timed out."""

    error_code = "network_timeout"


class ConnectionFailedError(NetworkError):
    """Could not connect to API endpoint."""

    error_code = "connection_failed"


class DataError(WalletGraphError):
    """Data validation or not-found error."""

    exit_code = 4
    error_code = "data_error"


class InvalidAddressError(DataError):
    """Address is not a well-formed Starknet address."""

    error_code = "invalid_address"


class TransactionNotFoundError(DataError):
    """Explorer has no detail for the requested transaction hash."""

    error_code = "transaction_not_found"


class ConfigError(WalletGraphError):
    """Config file is malformed or holds invalid values."""

    exit_code = 5
    error_code = "config_error"


class ConfigInvalidError(ConfigError):
    """Config file exists but contains invalid TOML or invalid values."""

    error_code = "config_invalid"
