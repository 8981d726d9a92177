# hims_ledger/services/money.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

Q0 = Decimal("1")
ZERO = Decimal("0")


def D(x: Any) -> Decimal:
    if isinstance(x, Decimal):
        return x if x.is_finite() else ZERO
    if isinstance(x, bool):
        return ZERO
    try:
        v = Decimal(str(x if x is not None else 0).strip() or "0")
    except (InvalidOperation, ValueError):
        return ZERO
    return v if v.is_finite() else ZERO


def money0(x: Any) -> Decimal:
    return D(x).quantize(Q0, rounding=ROUND_HALF_UP)


def dsum(values: Iterable[Any]) -> Decimal:
    total = ZERO
    for v in values:
        total += D(v)
    return total


def _group_indian(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    parts = []
    while len(head) > 2:
        parts.insert(0, head[-2:])
        head = head[:-2]
    if head:
        parts.insert(0, head)
    return ",".join(parts) + "," + tail


def format_inr(x: Any, symbol: str = "₹") -> str:
    """
    en-IN currency display with zero minor units.
    Example: 100000 -> "₹1,00,000", -500 -> "-₹500"
    """
    v = money0(x)
    sign = "-" if v < 0 else ""
    digits = str(abs(int(v)))
    return f"{sign}{symbol}{_group_indian(digits)}"
