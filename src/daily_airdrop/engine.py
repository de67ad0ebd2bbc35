"""
One distribution cycle: plan, select, then pace/send/record each recipient.

Progress is persisted as it happens. The sent list is rewritten after every
confirmed transfer and the pending list after every outcome, so a process
that dies mid-cycle neither pays anybody twice nor forgets a retry.
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, List, Optional

from .address_store import AddressStore
from .config import DistributionPolicy
from .eligibility import resolve_recipients
from .errors import BalanceError, FetchError
from .notify import format_tx_link
from .planner import (
    draw_delay,
    has_gas_reserve,
    plan_batch_size,
    select_batch,
    to_raw,
    to_tokens,
)

log = logging.getLogger("engine")

NATIVE_DECIMALS = 18


class CycleState(Enum):
    IDLE = "idle"
    PLANNING = "planning"
    SELECTING = "selecting"
    PACING = "pacing"
    SENDING = "sending"
    RECORDING = "recording"
    FINALIZING = "finalizing"


class CycleStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    LOW_BALANCE = "low_balance"
    ABORTED = "aborted"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TransferRecord:
    recipient: str
    amount: int
    ok: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CycleSummary:
    status: CycleStatus
    planned: int = 0
    records: List[TransferRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def attempted(self) -> int:
        return len(self.records)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.records if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if not r.ok)


@dataclass(frozen=True)
class TokenInfo:
    decimals: int
    name: str = "Unknown Token"
    symbol: str = ""

    @property
    def label(self) -> str:
        return self.symbol or "Token"


def fmt_amount(value: Decimal) -> str:
    text = f"{value:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


class DistributionEngine:
    def __init__(
        self,
        policy: DistributionPolicy,
        chain: Any,
        allow_list: Any,
        store: AddressStore,
        notifier: Any,
        rng: Optional[random.Random] = None,
        sleep: Optional[Callable[[float], Any]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.policy = policy
        self.chain = chain
        self.allow_list = allow_list
        self.store = store
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.stop_event = stop_event or threading.Event()
        self._sleep = sleep or self.stop_event.wait
        self.state = CycleState.IDLE

    def _report(self, text: str, chat: Optional[str] = None, level: int = logging.INFO) -> None:
        log.log(level, text)
        self.notifier.send(chat or text)

    def _token_info(self) -> TokenInfo:
        decimals = self.chain.token_decimals()
        try:
            info = TokenInfo(
                decimals=decimals,
                name=self.chain.token_name(),
                symbol=self.chain.token_symbol(),
            )
        except BalanceError as e:
            log.warning("⚠️ Could not read token name: %s", e)
            return TokenInfo(decimals=decimals)
        self._report(
            f"✅ Token detected: {info.name} ({info.symbol})",
            chat=f"✅ Token detected: *{info.name}* ({info.symbol})",
        )
        return info

    def run_cycle(self) -> CycleSummary:
        self.state = CycleState.PLANNING
        try:
            summary = self._run()
        finally:
            self.state = CycleState.IDLE
        log.info(
            "Cycle %s: planned=%d attempted=%d succeeded=%d failed=%d",
            summary.status.value,
            summary.planned,
            summary.attempted,
            summary.succeeded,
            summary.failed,
        )
        return summary

    def _run(self) -> CycleSummary:
        policy = self.policy
        try:
            token = self._token_info()
            native_balance = self.chain.native_balance()
            token_balance = self.chain.token_balance()
        except BalanceError as e:
            self._report(f"❌ Error: {e}", level=logging.ERROR)
            return CycleSummary(CycleStatus.ABORTED, error=str(e))

        native_text = fmt_amount(to_tokens(native_balance, NATIVE_DECIMALS))
        token_text = fmt_amount(to_tokens(token_balance, token.decimals))
        log.info("%s balance: %s %s", policy.native_symbol, native_text, policy.native_symbol)
        log.info("%s balance: %s %s", token.label, token_text, token.symbol)
        self.notifier.send(
            "📊 *Wallet Balance*\n"
            f"• {policy.native_symbol} balance: `{native_text}` {policy.native_symbol}\n"
            f"• {token.label} balance: `{token_text}` {token.symbol}"
        )

        if not has_gas_reserve(native_balance, to_raw(policy.min_native_balance, NATIVE_DECIMALS)):
            self._report(
                f"⚠️ {policy.native_symbol} balance too low to pay for gas",
                level=logging.WARNING,
            )
            return CycleSummary(CycleStatus.LOW_BALANCE)

        amount = to_raw(policy.amount_per_recipient, token.decimals)
        if token_balance < amount:
            self._report(
                f"⚠️ {token.label} balance too low for distribution",
                level=logging.WARNING,
            )
            return CycleSummary(CycleStatus.LOW_BALANCE)

        try:
            eligible = self.allow_list.fetch_eligible()
        except FetchError as e:
            log.warning("%s", e)
            eligible = []
        if not eligible:
            self._report("⚠️ No eligible addresses found.", level=logging.WARNING)
            return CycleSummary(CycleStatus.SKIPPED)

        sent = self.store.load(AddressStore.SENT)
        pending_prev = self.store.load(AddressStore.PENDING)
        recipients = resolve_recipients(eligible, sent, pending_prev)
        if not recipients:
            self._report("✓ All eligible addresses have already received tokens.")
            return CycleSummary(CycleStatus.SKIPPED)

        self._report(f"🔍 {len(recipients)} addresses have not received tokens yet.")

        batch_size = plan_batch_size(
            recipient_count=len(recipients),
            token_balance=token_balance,
            per_recipient_amount=amount,
            min_cap=policy.daily_cap_min,
            max_cap=policy.daily_cap_max,
            rng=self.rng,
        )
        total = fmt_amount(policy.amount_per_recipient * batch_size)
        self._report(f"📊 Sending {batch_size} transfers ({total} {token.symbol}) today.")

        self.state = CycleState.SELECTING
        selected = select_batch(recipients, batch_size, self.rng)
        return self._distribute(selected, amount, token, sent, pending_prev)

    def _distribute(
        self,
        selected: List[str],
        amount: int,
        token: TokenInfo,
        sent: List[str],
        pending_prev: List[str],
    ) -> CycleSummary:
        policy = self.policy
        summary = CycleSummary(CycleStatus.COMPLETED, planned=len(selected))
        amount_text = fmt_amount(policy.amount_per_recipient)
        paid: set = set()
        failed: List[str] = []

        for index, recipient in enumerate(selected, start=1):
            if self.stop_event.is_set():
                break

            self.state = CycleState.PACING
            wait = draw_delay(policy.pre_send_delay, self.rng)
            log.info("⏱ Waiting %d seconds before sending to %s...", int(wait), recipient)
            self._sleep(wait)
            if self.stop_event.is_set():
                break

            self.state = CycleState.SENDING
            log.info("🔄 Sending %s %s to %s...", amount_text, token.symbol, recipient)
            try:
                pending = self.chain.transfer(recipient, amount)
                receipt = pending.wait_for_confirmations(
                    policy.confirmations, policy.confirmation_timeout_s
                )
            except Exception as e:
                self.state = CycleState.RECORDING
                failed.append(recipient)
                summary.records.append(
                    TransferRecord(recipient, amount, ok=False, error=str(e))
                )
                self._report(
                    f"❌ {index}. Transfer failed ({recipient}) - {e}",
                    level=logging.ERROR,
                )
                self._checkpoint_pending(pending_prev, paid, failed)
                continue

            self.state = CycleState.RECORDING
            sent.append(recipient)
            self.store.save(AddressStore.SENT, sent)
            paid.add(recipient)
            self._checkpoint_pending(pending_prev, paid, failed)
            summary.records.append(
                TransferRecord(recipient, amount, ok=True, tx_hash=receipt.tx_hash)
            )
            self._report(
                f"✅ {index}. Transfer succeeded ({recipient}) - {amount_text} {token.symbol}"
                f" - TX Hash: {receipt.tx_hash}",
                chat=(
                    f"✅ {index}. Transfer succeeded\n"
                    f"• Recipient: `{recipient}`\n"
                    f"• Amount: {amount_text} {token.symbol}\n"
                    f"• TX Hash: {format_tx_link(receipt.tx_hash, policy.explorer_tx_url)}"
                ),
            )

            self.state = CycleState.PACING
            self._sleep(draw_delay(policy.post_send_delay, self.rng))

        if self.stop_event.is_set() and summary.attempted < summary.planned:
            summary.status = CycleStatus.STOPPED

        self.state = CycleState.FINALIZING
        if summary.status is CycleStatus.STOPPED:
            # Unattempted retries stay queued.
            self._checkpoint_pending(pending_prev, paid, failed)
            headline = "⏹ Distribution stopped before finishing."
        else:
            self.store.save(AddressStore.PENDING, failed)
            headline = "✓ Today's transfers finished."
        self._report(
            f"{headline} Attempted: {summary.attempted}, "
            f"Succeeded: {summary.succeeded}, Failed: {summary.failed}"
        )
        return summary

    def _checkpoint_pending(self, pending_prev: List[str], paid: set, failed: List[str]) -> None:
        keep = [a for a in pending_prev if a not in paid]
        self.store.save(AddressStore.PENDING, keep + failed)
