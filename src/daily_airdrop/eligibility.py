from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional

import httpx

from .errors import FetchError

log = logging.getLogger("eligibility")

_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_address(raw: str) -> str:
    return raw.strip().lower()


def parse_address_list(text: str) -> List[str]:
    """
    Parse a newline-delimited allow-list.
    Entries are trimmed and lowercased; blanks, duplicates and anything that
    is not a 20-byte hex address are dropped.
    """
    out: List[str] = []
    seen = set()
    rejected = 0
    for line in text.splitlines():
        addr = normalize_address(line)
        if not addr:
            continue
        if not _ADDRESS_RE.match(addr):
            rejected += 1
            continue
        if addr in seen:
            continue
        seen.add(addr)
        out.append(addr)
    if rejected:
        log.warning("Dropped %d malformed allow-list entries", rejected)
    return out


def resolve_recipients(
    eligible: Iterable[str],
    sent: Iterable[str],
    pending_prev: Iterable[str],
) -> List[str]:
    """
    (eligible - sent) | (eligible & pending_prev), in allow-list order.

    A pending address is offered again even if it also appears in ``sent``.
    """
    sent_set = {normalize_address(a) for a in sent}
    pending_set = {normalize_address(a) for a in pending_prev}

    out: List[str] = []
    seen = set()
    for raw in eligible:
        addr = normalize_address(raw)
        if not addr or addr in seen:
            continue
        seen.add(addr)
        if addr not in sent_set or addr in pending_set:
            out.append(addr)
    return out


class AllowListClient:
    def __init__(
        self,
        url: str,
        timeout_s: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def fetch_eligible(self) -> List[str]:
        log.info("Downloading allow-list...")
        try:
            resp = self.client.get(self.url)
            resp.raise_for_status()
            text = resp.text
        except httpx.HTTPError as e:
            raise FetchError(f"Could not download allow-list: {e}") from e
        except UnicodeDecodeError as e:
            raise FetchError(f"Allow-list is not valid text: {e}") from e

        addresses = parse_address_list(text)
        log.info("Allow-list entries: %d", len(addresses))
        return addresses
