from __future__ import annotations

import errno
import logging
import os
import tempfile
from datetime import date
from typing import Dict, Iterable, List

from .errors import LockError

log = logging.getLogger("store")


def _normalize_lines(lines: Iterable[str]) -> List[str]:
    out: List[str] = []
    seen = set()
    for line in lines:
        addr = line.strip().lower()
        if not addr or addr.startswith("#"):
            continue
        if addr in seen:
            continue
        seen.add(addr)
        out.append(addr)
    return out


def load_addresses(path: str) -> List[str]:
    """Read one address per line. A missing file is an empty list."""
    if not os.path.exists(path):
        return []
    with open(path, "r", encoding="utf-8") as f:
        return _normalize_lines(f)


def _atomic_write(path: str, text: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        # The target keeps its previous contents.
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def save_addresses(path: str, addresses: Iterable[str]) -> None:
    """Overwrite ``path`` with the normalized, deduplicated addresses."""
    lines = _normalize_lines(addresses)
    _atomic_write(path, "".join(f"{addr}\n" for addr in lines))


class AddressStore:
    SENT = "sent"
    PENDING = "pending"

    def __init__(self, data_dir: str, sent_file: str, pending_file: str) -> None:
        self.data_dir = data_dir
        self._paths: Dict[str, str] = {
            self.SENT: os.path.join(data_dir, sent_file),
            self.PENDING: os.path.join(data_dir, pending_file),
        }

    def path(self, name: str) -> str:
        try:
            return self._paths[name]
        except KeyError:
            raise ValueError(f"Unknown address list {name!r}.") from None

    def load(self, name: str) -> List[str]:
        return load_addresses(self.path(name))

    def save(self, name: str, addresses: Iterable[str]) -> None:
        path = self.path(name)
        save_addresses(path, addresses)
        log.debug("Saved %s list to %s", name, path)


def read_last_cycle(path: str) -> date | None:
    if not os.path.exists(path):
        return None
    with open(path, "r", encoding="utf-8") as f:
        raw = f.read().strip()
    try:
        return date.fromisoformat(raw)
    except ValueError:
        log.warning("Ignoring unreadable last-cycle record %s: %r", path, raw)
        return None


def write_last_cycle(path: str, day: date) -> None:
    _atomic_write(path, day.isoformat() + "\n")


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        return e.errno == errno.EPERM
    return True


class InstanceLock:
    """
    Exclusive lock file holding the owner's PID.

    A lock left behind by a dead process is taken over.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._held = False

    def acquire(self) -> None:
        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = self._read_owner()
                if owner is not None and _pid_alive(owner):
                    raise LockError(
                        f"Another instance (pid {owner}) holds {self.path}."
                    ) from None
                log.warning("Removing stale lock %s (pid %s)", self.path, owner)
                try:
                    os.unlink(self.path)
                except FileNotFoundError:
                    pass
                continue
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(str(os.getpid()))
            self._held = True
            return
        raise LockError(f"Could not acquire {self.path}.")

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    def _read_owner(self) -> int | None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return int(f.read().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self) -> "InstanceLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
