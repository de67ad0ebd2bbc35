from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

from daily_airdrop import cli
from daily_airdrop.address_store import read_last_cycle, save_addresses
from daily_airdrop.engine import CycleStatus, CycleSummary
from daily_airdrop.errors import FetchError
from daily_airdrop.notify import NullNotifier
from daily_airdrop.scheduler import utc_now

A = "0x" + "a" * 40
B = "0x" + "b" * 40
C = "0x" + "c" * 40


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("RPC_URL", "PRIVATE_KEY", "TOKEN_ADDRESS", "TELEGRAM_BOT_TOKEN",
                 "TELEGRAM_CHAT_ID", "DATA_DIR", "LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def test_missing_config_exits_with_1(workdir, monkeypatch) -> None:
    monkeypatch.setattr(sys, "argv", ["daily-airdrop", "once"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1


def test_status_prints_counts(workdir, monkeypatch, capsys) -> None:
    monkeypatch.setenv("RPC_URL", "https://rpc.example")
    monkeypatch.setenv("PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("TOKEN_ADDRESS", "0x" + "22" * 20)
    save_addresses(str(workdir / "kyc_addresses_sent.txt"), [A])
    save_addresses(str(workdir / "kyc_addresses_pending.txt"), [A])

    class FakeAllowList:
        def __init__(self, url, timeout_s=15.0):
            pass

        def fetch_eligible(self):
            return [A, B, C]

        def close(self):
            pass

    monkeypatch.setattr(cli, "AllowListClient", FakeAllowList)
    monkeypatch.setattr(sys, "argv", ["daily-airdrop", "status"])
    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "Eligible  : 3" in out
    assert "Awaiting  : 3" in out


def test_status_survives_fetch_error(workdir, monkeypatch, capsys) -> None:
    monkeypatch.setenv("RPC_URL", "https://rpc.example")
    monkeypatch.setenv("PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("TOKEN_ADDRESS", "0x" + "22" * 20)

    class DownAllowList:
        def __init__(self, url, timeout_s=15.0):
            pass

        def fetch_eligible(self):
            raise FetchError("unreachable")

        def close(self):
            pass

    monkeypatch.setattr(cli, "AllowListClient", DownAllowList)
    monkeypatch.setattr(sys, "argv", ["daily-airdrop", "status"])
    with pytest.raises(SystemExit) as exc:
        cli.main()

    assert exc.value.code == 0
    assert "Eligible  : 0" in capsys.readouterr().out


def test_check_telegram_without_config_fails(workdir, monkeypatch) -> None:
    monkeypatch.setenv("RPC_URL", "https://rpc.example")
    monkeypatch.setenv("PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("TOKEN_ADDRESS", "0x" + "22" * 20)
    monkeypatch.setattr(sys, "argv", ["daily-airdrop", "check-telegram"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 1


class StubEngine:
    def __init__(self, status: CycleStatus) -> None:
        self.status = status
        self.runs = 0

    def run_cycle(self) -> CycleSummary:
        self.runs += 1
        return CycleSummary(self.status, planned=2)


class StubAllowList:
    def close(self) -> None:
        pass


def _run_once(workdir: Path, monkeypatch, status: CycleStatus) -> StubEngine:
    monkeypatch.setenv("RPC_URL", "https://rpc.example")
    monkeypatch.setenv("PRIVATE_KEY", "0x" + "11" * 32)
    monkeypatch.setenv("TOKEN_ADDRESS", "0x" + "22" * 20)
    engine = StubEngine(status)
    monkeypatch.setattr(
        cli, "build_engine", lambda settings, notifier, stop: (engine, StubAllowList())
    )
    monkeypatch.setattr(cli, "install_signal_handlers", lambda stop: None)
    monkeypatch.setattr(sys, "argv", ["daily-airdrop", "once"])
    with pytest.raises(SystemExit) as exc:
        cli.main()
    assert exc.value.code == 0
    return engine


def test_once_records_the_day_so_run_waits_for_tomorrow(workdir, monkeypatch, capsys) -> None:
    engine = _run_once(workdir, monkeypatch, CycleStatus.COMPLETED)

    assert engine.runs == 1
    assert read_last_cycle(str(workdir / "last_cycle.txt")) == utc_now().date()
    assert "Status    : completed" in capsys.readouterr().out


def test_once_does_not_record_aborted_cycle(workdir, monkeypatch) -> None:
    _run_once(workdir, monkeypatch, CycleStatus.ABORTED)

    assert read_last_cycle(str(workdir / "last_cycle.txt")) is None


class StubNotifier:
    def __init__(self, enabled: bool, valid: bool) -> None:
        self.enabled = enabled
        self.valid = valid
        self.verify_calls = 0

    def verify(self) -> bool:
        self.verify_calls += 1
        return self.valid


def test_check_notifier_is_quiet_when_telegram_unconfigured(caplog) -> None:
    notifier = StubNotifier(enabled=False, valid=False)
    with caplog.at_level(logging.WARNING):
        assert cli.check_notifier(notifier) is False
        assert cli.check_notifier(NullNotifier()) is False
    assert notifier.verify_calls == 0
    assert "not valid" not in caplog.text


def test_check_notifier_warns_on_rejected_config(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert cli.check_notifier(StubNotifier(enabled=True, valid=True)) is True
        assert "not valid" not in caplog.text
        assert cli.check_notifier(StubNotifier(enabled=True, valid=False)) is False
    assert "Telegram configuration is not valid" in caplog.text
