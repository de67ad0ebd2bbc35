from __future__ import annotations

import argparse
import logging
import os
import threading
from typing import Any, Tuple

from .address_store import AddressStore, InstanceLock
from .chain import ChainClient
from .config import Settings
from .eligibility import AllowListClient, resolve_recipients
from .engine import DistributionEngine
from .errors import ConfigError, FetchError
from .logging_utils import setup_logging
from .notify import NullNotifier, TelegramNotifier
from .project_constants import LAST_CYCLE_FILE, LOCK_FILE
from .scheduler import DailyScheduler, install_signal_handlers, record_cycle, utc_now

log = logging.getLogger("cli")


def load_settings(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env(
        rpc_url_override=args.rpc_url, data_dir_override=args.data_dir
    )
    setup_logging(args.verbose, log_dir=settings.log_dir)
    log.info("=== Configuration Check ===")
    for name, present in settings.presence_report().items():
        log.info("%-18s set: %s", name, present)
    return settings


def build_notifier(settings: Settings) -> Any:
    if not settings.telegram_enabled:
        log.warning("Telegram is not configured; notifications go to the log only")
        return NullNotifier()
    return TelegramNotifier(
        settings.telegram_bot_token,
        settings.telegram_chat_id,
        attempts=settings.policy.notify_attempts,
        backoff_base_s=settings.policy.notify_backoff_base_s,
        timeout_s=settings.http_timeout_s,
    )


def build_engine(
    settings: Settings, notifier: Any, stop_event: threading.Event
) -> Tuple[DistributionEngine, AllowListClient]:
    allow_list = AllowListClient(settings.allowlist_url, timeout_s=settings.http_timeout_s)
    store = AddressStore(settings.data_dir, settings.sent_file, settings.pending_file)
    engine = DistributionEngine(
        policy=settings.policy,
        chain=ChainClient.from_settings(settings),
        allow_list=allow_list,
        store=store,
        notifier=notifier,
        stop_event=stop_event,
    )
    return engine, allow_list


def check_notifier(notifier: Any) -> bool:
    """Verify a configured notifier; an unconfigured one was already reported."""
    if not notifier.enabled:
        return False
    if notifier.verify():
        return True
    log.warning(
        "Telegram configuration is not valid. "
        "The job keeps running without chat notifications."
    )
    return False


def cmd_run(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    with InstanceLock(os.path.join(settings.data_dir, LOCK_FILE)):
        notifier = build_notifier(settings)
        engine, allow_list = build_engine(settings, notifier, stop_event)
        try:
            check_notifier(notifier)
            scheduler = DailyScheduler(
                engine,
                notifier,
                settings.policy,
                last_cycle_path=os.path.join(settings.data_dir, LAST_CYCLE_FILE),
                stop_event=stop_event,
            )
            scheduler.run_forever(skip_if_ran_today=not args.force)
        finally:
            allow_list.close()
            notifier.close()

    log.info("Shutdown complete")
    logging.shutdown()
    return 0


def cmd_once(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    with InstanceLock(os.path.join(settings.data_dir, LOCK_FILE)):
        notifier = build_notifier(settings)
        engine, allow_list = build_engine(settings, notifier, stop_event)
        try:
            summary = engine.run_cycle()
        finally:
            allow_list.close()
            notifier.close()
        record_cycle(
            os.path.join(settings.data_dir, LAST_CYCLE_FILE), summary, utc_now().date()
        )

    print("========================================")
    print(f"Status    : {summary.status.value}")
    print(f"Planned   : {summary.planned}")
    print(f"Attempted : {summary.attempted}")
    print(f"Succeeded : {summary.succeeded}")
    print(f"Failed    : {summary.failed}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Counts only; never touches the chain."""
    settings = load_settings(args)
    store = AddressStore(settings.data_dir, settings.sent_file, settings.pending_file)
    sent = store.load(AddressStore.SENT)
    pending = store.load(AddressStore.PENDING)

    allow_list = AllowListClient(settings.allowlist_url, timeout_s=settings.http_timeout_s)
    try:
        eligible = allow_list.fetch_eligible()
    except FetchError as e:
        log.error("%s", e)
        eligible = []
    finally:
        allow_list.close()

    print("--- AIRDROP STATUS ---")
    print(f"Eligible  : {len(eligible)}")
    print(f"Sent      : {len(sent)}")
    print(f"Pending   : {len(pending)}")
    print(f"Awaiting  : {len(resolve_recipients(eligible, sent, pending))}")
    return 0


def cmd_check_telegram(args: argparse.Namespace) -> int:
    settings = load_settings(args)
    notifier = build_notifier(settings)
    try:
        ok = notifier.verify()
    finally:
        notifier.close()
    print("✅ Telegram OK" if ok else "❌ Telegram verification failed")
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="daily-airdrop",
        description="Daily randomized ERC-20 distribution to an allow-list.",
    )
    p.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    p.add_argument("--rpc-url", default=None, help="Override RPC URL (else use env).")
    p.add_argument(
        "--data-dir", default=None, help="Directory for sent/pending lists (else DATA_DIR or cwd)."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    r = sub.add_parser("run", help="Run one cycle per UTC day until stopped.")
    r.add_argument(
        "--force",
        action="store_true",
        help="Run a cycle at startup even if one already ran today.",
    )
    r.set_defaults(func=cmd_run)

    o = sub.add_parser("once", help="Run a single distribution cycle now.")
    o.set_defaults(func=cmd_once)

    s = sub.add_parser("status", help="Show allow-list, sent and pending counts.")
    s.set_defaults(func=cmd_status)

    t = sub.add_parser("check-telegram", help="Send a verification message.")
    t.set_defaults(func=cmd_check_telegram)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    setup_logging(args.verbose)
    try:
        code = args.func(args)
    except ConfigError as e:
        log.error("⚠️ ERROR: %s", e)
        code = 1
    raise SystemExit(code)
