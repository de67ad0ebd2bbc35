from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from dotenv import load_dotenv

from . import project_constants as defaults
from .errors import ConfigError

REQUIRED_ENV = ("RPC_URL", "PRIVATE_KEY", "TOKEN_ADDRESS")


@dataclass(frozen=True)
class DistributionPolicy:
    amount_per_recipient: Decimal = Decimal(defaults.AMOUNT_PER_RECIPIENT)
    min_native_balance: Decimal = Decimal(defaults.MIN_NATIVE_BALANCE)
    daily_cap_min: int = defaults.DAILY_CAP_MIN
    daily_cap_max: int = defaults.DAILY_CAP_MAX
    pre_send_delay: Tuple[float, float] = defaults.PRE_SEND_DELAY
    post_send_delay: Tuple[float, float] = defaults.POST_SEND_DELAY
    confirmations: int = defaults.CONFIRMATIONS
    confirmation_timeout_s: float = defaults.CONFIRMATION_TIMEOUT_S
    notify_attempts: int = defaults.NOTIFY_ATTEMPTS
    notify_backoff_base_s: float = defaults.NOTIFY_BACKOFF_BASE_S
    midnight_jitter_max_s: float = defaults.MIDNIGHT_JITTER_MAX_S
    explorer_tx_url: str = defaults.EXPLORER_TX_URL
    native_symbol: str = defaults.NATIVE_SYMBOL

    def __post_init__(self) -> None:
        if self.amount_per_recipient <= 0:
            raise ConfigError("AMOUNT_PER_RECIPIENT must be positive.")
        if self.min_native_balance < 0:
            raise ConfigError("MIN_NATIVE_BALANCE must not be negative.")
        if not 0 <= self.daily_cap_min <= self.daily_cap_max:
            raise ConfigError(
                f"Invalid daily cap range [{self.daily_cap_min}, {self.daily_cap_max}]."
            )
        for name, (low, high) in (
            ("PRE_SEND_DELAY", self.pre_send_delay),
            ("POST_SEND_DELAY", self.post_send_delay),
        ):
            if not 0 <= low <= high:
                raise ConfigError(f"Invalid {name} range [{low}, {high}].")
        if self.confirmations < 1:
            raise ConfigError("CONFIRMATIONS must be at least 1.")
        if self.confirmation_timeout_s <= 0:
            raise ConfigError("CONFIRMATION_TIMEOUT_S must be positive.")
        if self.notify_attempts < 1:
            raise ConfigError("NOTIFY_ATTEMPTS must be at least 1.")
        if self.midnight_jitter_max_s < 0:
            raise ConfigError("MIDNIGHT_JITTER_MAX_S must not be negative.")


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    private_key: str
    token_address: str
    chain_id: Optional[int] = None
    telegram_bot_token: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    allowlist_url: str = defaults.ALLOWLIST_URL
    data_dir: str = "."
    log_dir: str = "."
    http_timeout_s: float = defaults.HTTP_TIMEOUT_S
    sent_file: str = defaults.SENT_FILE
    pending_file: str = defaults.PENDING_FILE
    policy: DistributionPolicy = field(default_factory=DistributionPolicy)

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token and self.telegram_chat_id)

    def presence_report(self) -> dict:
        """Which settings are present, without revealing their values."""
        return {
            "RPC_URL": bool(self.rpc_url),
            "PRIVATE_KEY": bool(self.private_key),
            "TOKEN_ADDRESS": bool(self.token_address),
            "TELEGRAM_BOT_TOKEN": bool(self.telegram_bot_token),
            "TELEGRAM_CHAT_ID": bool(self.telegram_chat_id),
        }

    @staticmethod
    def from_env(
        rpc_url_override: str | None = None,
        data_dir_override: str | None = None,
    ) -> "Settings":
        load_dotenv()

        values = {name: _env(name) for name in REQUIRED_ENV}
        # If user provides --rpc-url, trust it.
        if rpc_url_override:
            values["RPC_URL"] = rpc_url_override
        missing = [name for name, value in values.items() if not value]
        if missing:
            raise ConfigError(
                f"Missing {', '.join(missing)}. Put it in .env or export it."
            )

        policy = DistributionPolicy(
            amount_per_recipient=_decimal("AMOUNT_PER_RECIPIENT", defaults.AMOUNT_PER_RECIPIENT),
            min_native_balance=_decimal("MIN_NATIVE_BALANCE", defaults.MIN_NATIVE_BALANCE),
            daily_cap_min=_int("DAILY_CAP_MIN", defaults.DAILY_CAP_MIN),
            daily_cap_max=_int("DAILY_CAP_MAX", defaults.DAILY_CAP_MAX),
            pre_send_delay=(
                _float("PRE_SEND_DELAY_MIN", defaults.PRE_SEND_DELAY[0]),
                _float("PRE_SEND_DELAY_MAX", defaults.PRE_SEND_DELAY[1]),
            ),
            post_send_delay=(
                _float("POST_SEND_DELAY_MIN", defaults.POST_SEND_DELAY[0]),
                _float("POST_SEND_DELAY_MAX", defaults.POST_SEND_DELAY[1]),
            ),
            confirmations=_int("CONFIRMATIONS", defaults.CONFIRMATIONS),
            confirmation_timeout_s=_float("CONFIRMATION_TIMEOUT_S", defaults.CONFIRMATION_TIMEOUT_S),
            notify_attempts=_int("NOTIFY_ATTEMPTS", defaults.NOTIFY_ATTEMPTS),
            notify_backoff_base_s=_float("NOTIFY_BACKOFF_BASE_S", defaults.NOTIFY_BACKOFF_BASE_S),
            midnight_jitter_max_s=_float("MIDNIGHT_JITTER_MAX_S", defaults.MIDNIGHT_JITTER_MAX_S),
            explorer_tx_url=_env("EXPLORER_TX_URL") or defaults.EXPLORER_TX_URL,
            native_symbol=_env("NATIVE_SYMBOL") or defaults.NATIVE_SYMBOL,
        )

        return Settings(
            rpc_url=values["RPC_URL"],
            private_key=values["PRIVATE_KEY"],
            token_address=values["TOKEN_ADDRESS"],
            chain_id=_int("CHAIN_ID", 0) or None,
            telegram_bot_token=_env("TELEGRAM_BOT_TOKEN") or None,
            telegram_chat_id=_env("TELEGRAM_CHAT_ID") or None,
            allowlist_url=_env("ALLOWLIST_URL") or defaults.ALLOWLIST_URL,
            data_dir=data_dir_override or _env("DATA_DIR") or ".",
            log_dir=_env("LOG_DIR") or ".",
            http_timeout_s=_float("HTTP_TIMEOUT_S", defaults.HTTP_TIMEOUT_S),
            policy=policy,
        )


def _env(name: str) -> str:
    return os.getenv(name, "").strip()


def _int(name: str, default: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from None


def _float(name: str, default: float) -> float:
    raw = _env(name)
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from None


def _decimal(name: str, default: str) -> Decimal:
    raw = _env(name) or default
    try:
        return Decimal(raw)
    except InvalidOperation:
        raise ConfigError(f"{name} must be a decimal number, got {raw!r}.") from None
