from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, Optional

import httpx

from .errors import NotificationError

log = logging.getLogger("notify")

TELEGRAM_API = "https://api.telegram.org"
_PARSE_ERROR = "can't parse entities"


def strip_markup(text: str) -> str:
    """Drop Telegram Markdown so the text can go out as plain text."""
    text = re.sub(r"[*_`\[\]]", "", text)
    return re.sub(r"[()]", " ", text)


def format_tx_link(tx_hash: str, explorer_tx_url: str) -> str:
    return f"[{tx_hash}]({explorer_tx_url}{tx_hash})"


class NullNotifier:
    """Log-only mode."""

    enabled = False

    def send(self, text: str) -> bool:
        return False

    def verify(self) -> bool:
        return False

    def close(self) -> None:
        pass


class TelegramNotifier:
    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        attempts: int = 3,
        backoff_base_s: float = 2.0,
        timeout_s: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.attempts = attempts
        self.backoff_base_s = backoff_base_s
        self._sleep = sleep
        self.client = httpx.Client(timeout=timeout_s, transport=transport)
        if not self.enabled:
            log.info("Telegram notifications disabled: bot token or chat id missing")

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def close(self) -> None:
        self.client.close()

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage"
        try:
            resp = self.client.post(url, json=payload)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationError(f"Telegram API call error: {e}") from e
        if not isinstance(data, dict):
            raise NotificationError(f"Unexpected Telegram response (HTTP {resp.status_code})")
        return data

    def send_once(self, text: str) -> None:
        data = self._post({"chat_id": self.chat_id, "text": text, "parse_mode": "Markdown"})
        if data.get("ok"):
            return
        description = str(data.get("description", ""))
        if _PARSE_ERROR in description:
            log.info("Retrying without Markdown formatting...")
            data = self._post({"chat_id": self.chat_id, "text": strip_markup(text)})
            if data.get("ok"):
                return
            description = str(data.get("description", ""))
        raise NotificationError(f"Telegram API error: {description or data}")

    def send(self, text: str) -> bool:
        """Deliver ``text``; never raises. False when disabled or all attempts failed."""
        if not self.enabled:
            return False

        for attempt in range(1, self.attempts + 1):
            try:
                self.send_once(text)
                return True
            except NotificationError as e:
                log.warning("Telegram notification attempt %d failed: %s", attempt, e)
            if attempt < self.attempts:
                wait = self.backoff_base_s**attempt
                log.info("Retrying in %.0f seconds... (attempt %d/%d)", wait, attempt + 1, self.attempts)
                self._sleep(wait)

        log.error("Failed to send Telegram notification after %d attempts", self.attempts)
        return False

    def verify(self) -> bool:
        if not self.enabled:
            log.info("Telegram is not configured; running in log-only mode")
            return False
        log.info("Using chat id: %s", self.chat_id)
        try:
            self.send_once("✅ Bot verification message - System starting")
        except NotificationError as e:
            log.warning("Telegram configuration verification failed: %s", e)
            return False
        log.info("Telegram bot configuration verified")
        return True
