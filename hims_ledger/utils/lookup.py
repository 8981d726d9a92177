# FILE: hims_ledger/utils/lookup.py
"""
Ordered accessor chains over loosely-shaped dicts.

A chain is a tuple of ``(label, accessor)`` pairs; each accessor takes a
mapping and returns a value or ``None``. ``first_match`` tries them in order,
so fallback policy lives in data, not in nested ``if`` blocks.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence, Tuple

Accessor = Callable[[Mapping[str, Any]], Optional[str]]
Chain = Sequence[Tuple[str, Accessor]]

# values that mean "nothing here"
_BLANKS = {"", "n/a", "none", "null", "undefined", "receipt-not-found",
           "receipt-not-generated"}


def as_text(v: Any) -> Optional[str]:
    if v is None or isinstance(v, (bool, dict, list, tuple)):
        return None
    s = str(v).strip()
    return None if s.lower() in _BLANKS else s


def as_map(v: Any) -> Optional[Mapping[str, Any]]:
    return v if isinstance(v, Mapping) else None


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)([A-Z])", r"_\1", key).lower()


def key_variants(key: str) -> Tuple[str, ...]:
    """receiptNumber -> (receiptNumber, ReceiptNumber, receipt_number)"""
    out = [key, key[:1].upper() + key[1:], _snake(key)]
    seen = []
    for k in out:
        if k not in seen:
            seen.append(k)
    return tuple(seen)


def get_any(obj: Any, key: str) -> Any:
    m = as_map(obj)
    if m is None:
        return None
    for k in key_variants(key):
        if k in m and m[k] is not None:
            return m[k]
    return None


def field(key: str) -> Accessor:
    def _get(obj: Mapping[str, Any]) -> Optional[str]:
        return as_text(get_any(obj, key))

    return _get


def nested(*path: str) -> Accessor:
    """nested("rawData", "order", "orderId")"""

    def _get(obj: Mapping[str, Any]) -> Optional[str]:
        cur: Any = obj
        for key in path[:-1]:
            cur = get_any(cur, key)
            if cur is None:
                return None
        return as_text(get_any(cur, path[-1]))

    return _get


def children(obj: Any) -> Iterator[Mapping[str, Any]]:
    m = as_map(obj)
    if m is None:
        return
    for v in m.values():
        if isinstance(v, Mapping):
            yield v


def first_match(chain: Chain, obj: Any) -> Tuple[Optional[str], Optional[str]]:
    """(value, label) of the first accessor that yields something."""
    m = as_map(obj)
    if m is None:
        return None, None
    for label, accessor in chain:
        value = accessor(m)
        if value:
            return value, label
    return None, None
