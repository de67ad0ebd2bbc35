from __future__ import annotations

import logging
import random
import signal
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .address_store import read_last_cycle, write_last_cycle
from .config import DistributionPolicy
from .engine import CycleStatus, CycleSummary, DistributionEngine

log = logging.getLogger("scheduler")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_utc_midnight(now: datetime) -> datetime:
    now = now.astimezone(timezone.utc)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return today + timedelta(days=1)


def seconds_until_next_run(now: datetime, jitter_max_s: float, rng: random.Random) -> float:
    delta = (next_utc_midnight(now) - now).total_seconds()
    return max(0.0, delta) + rng.uniform(0.0, jitter_max_s)


def record_cycle(path: str, summary: CycleSummary, day: date) -> bool:
    """Remember that a cycle ran on ``day``. Aborted cycles are not recorded."""
    if summary.status is CycleStatus.ABORTED:
        return False
    try:
        write_last_cycle(path, day)
    except OSError:
        log.exception("Could not write last-cycle record %s", path)
        return False
    return True


def install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum: int, frame: Any) -> None:
        log.info("Received %s, finishing the current step and shutting down...", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


class DailyScheduler:
    def __init__(
        self,
        engine: DistributionEngine,
        notifier: Any,
        policy: DistributionPolicy,
        last_cycle_path: str,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], Any]] = None,
    ) -> None:
        self.engine = engine
        self.notifier = notifier
        self.policy = policy
        self.last_cycle_path = last_cycle_path
        self.rng = rng or random.Random()
        self.clock = clock
        self.stop_event = stop_event or threading.Event()
        self._wait = wait or self.stop_event.wait
        self.cycles_run = 0

    def run_cycle_safely(self) -> None:
        """Run one cycle; nothing raised by it stops the loop."""
        try:
            summary = self.engine.run_cycle()
        except Exception as e:
            log.exception("Unexpected error during distribution cycle")
            self.notifier.send(f"❌ Error: {e}")
            return
        finally:
            self.cycles_run += 1
        record_cycle(self.last_cycle_path, summary, self.clock().date())

    def _wait_for_next_day(self) -> None:
        now = self.clock()
        wait = seconds_until_next_run(now, self.policy.midnight_jitter_max_s, self.rng)
        wake_at = now + timedelta(seconds=wait)
        log.info("⏳ Done for today. Waiting until %s...", next_utc_midnight(now).isoformat())
        log.debug("Next wake-up at %s (%.0f s)", wake_at.isoformat(), wait)
        self._wait(wait)

    def run_forever(self, skip_if_ran_today: bool = True) -> None:
        if skip_if_ran_today and read_last_cycle(self.last_cycle_path) == self.clock().date():
            log.info("A cycle already ran today (UTC); waiting for the next day")
            self._wait_for_next_day()

        while not self.stop_event.is_set():
            self.run_cycle_safely()
            if self.stop_event.is_set():
                break
            self.notifier.send("📅 Today's transfers finished. Waiting until tomorrow.")
            self._wait_for_next_day()

        log.info("Scheduler stopped")
