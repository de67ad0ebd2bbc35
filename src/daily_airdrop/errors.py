from __future__ import annotations


class AirdropError(RuntimeError):
    pass


class ConfigError(AirdropError):
    """Required settings are missing or invalid. Fatal at startup."""


class LockError(ConfigError):
    """Another instance already owns the data directory."""


class FetchError(AirdropError):
    """The allow-list could not be downloaded or decoded."""


class BalanceError(AirdropError):
    """Chain state (balances, token metadata) could not be read."""


class TransferError(AirdropError):
    """A single transfer failed to submit or confirm."""


class NotificationError(AirdropError):
    pass
