from __future__ import annotations

import random
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple


def to_raw(amount: Decimal, decimals: int) -> int:
    return int(amount * (Decimal(10) ** decimals))


def to_tokens(raw_amount: int, decimals: int) -> Decimal:
    return Decimal(raw_amount) / (Decimal(10) ** decimals)


def draw_daily_cap(min_cap: int, max_cap: int, rng: random.Random) -> int:
    if min_cap < 0 or min_cap > max_cap:
        raise ValueError(f"Invalid cap range [{min_cap}, {max_cap}].")
    return rng.randint(min_cap, max_cap)


def plan_batch_size(
    recipient_count: int,
    token_balance: int,
    per_recipient_amount: int,
    min_cap: int,
    max_cap: int,
    rng: Optional[random.Random] = None,
) -> int:
    """
    Number of transfers for this cycle: the smallest of what the balance
    covers, how many recipients are left, and a randomized daily cap.
    """
    if per_recipient_amount <= 0:
        raise ValueError("per_recipient_amount must be positive.")
    if token_balance < per_recipient_amount or recipient_count <= 0:
        return 0
    affordable = token_balance // per_recipient_amount
    cap = draw_daily_cap(min_cap, max_cap, rng or random.Random())
    return max(0, min(affordable, recipient_count, cap))


def has_gas_reserve(native_balance: int, min_native_balance: int) -> bool:
    return native_balance >= min_native_balance


def select_batch(
    recipients: Sequence[str], batch_size: int, rng: random.Random
) -> List[str]:
    # Selection is positional; only the execution order is randomized.
    selected = list(recipients[: max(0, batch_size)])
    rng.shuffle(selected)
    return selected


def draw_delay(bounds: Tuple[float, float], rng: random.Random) -> float:
    low, high = bounds
    return rng.uniform(low, high)
