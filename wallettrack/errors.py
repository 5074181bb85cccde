from __future__ import annotations


class WalletTrackError(Exception):
    """Base class for errors reported to engine callers."""


class ValidationError(WalletTrackError, ValueError):
    """Raised when a transaction is rejected at ingestion."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFoundError(WalletTrackError, LookupError):
    """Raised when removing a transaction id that is not in the ledger."""


class ConfigError(WalletTrackError, ValueError):
    """Raised for an unknown or malformed display currency code."""


class UnknownViewError(WalletTrackError, ValueError):
    """Raised when selecting a view name that does not exist."""


class MalformedRecordError(WalletTrackError, ValueError):
    """Raised internally when an admitted record cannot be aggregated."""

    def __init__(self, message: str, transaction_id: str | None = None) -> None:
        super().__init__(message)
        self.transaction_id = transaction_id
