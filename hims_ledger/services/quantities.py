# hims_ledger/services/quantities.py
"""
Quantity and display description for one bill row.

Priority per kind:
  admission  -> stayDuration / stayDays -> "<N> day(s)" suffix -> 1
  service    -> billingQuantity / quantity (> 1) -> "(xN)" suffix -> 1
  pathology  -> 1 (stored price is the order total)
  other      -> 1
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional

from hims_ledger.schemas.ledger import event_view
from hims_ledger.services.money import D, ZERO
from hims_ledger.utils.lookup import as_text, get_any

_DAYS_RE = re.compile(r"(\d+)\s*(?:calendar\s+)?day(?:s|\(s\))?\)?\s*$", re.IGNORECASE)
_XN_RE = re.compile(r"\s*\(\s*[xX×]\s*(\d+)\s*\)\s*$")

ONE = Decimal("1")


@dataclass(frozen=True)
class ExtractedQuantity:
    quantity: Decimal
    description: str


def resolve_kind(item: Any, kind: Optional[str] = None) -> str:
    if kind:
        return kind.lower()
    m = event_view(item)
    k = as_text(get_any(m, "type")) or as_text(get_any(m, "sourceKind"))
    if k:
        return k.lower()
    if get_any(m, "category") is not None or get_any(m, "serviceName") is not None:
        return "service"
    return "other"


def _positive_int(v: Any) -> Optional[Decimal]:
    if v is None:
        return None
    q = D(v)
    if q <= 0 or q != q.to_integral_value():
        return None
    return Decimal(int(q))


def _amount(m: Mapping[str, Any]) -> Decimal:
    for key in ("amount", "price", "totalPrice", "calculatedAmount"):
        v = get_any(m, key)
        if v is not None:
            return D(v)
    return ZERO


def _explicit_zero(m: Mapping[str, Any]) -> bool:
    for key in ("billingQuantity", "quantity"):
        v = get_any(m, key)
        if v is not None and not isinstance(v, bool) and D(v) == 0 and str(v).strip() != "":
            return _amount(m) == 0
    return False


def _admission(m: Mapping[str, Any], description: str) -> ExtractedQuantity:
    for key in ("stayDuration", "stayDays"):
        q = _positive_int(get_any(m, key))
        if q is not None:
            return ExtractedQuantity(q, description)
    match = _DAYS_RE.search(description)
    if match and int(match.group(1)) > 0:
        return ExtractedQuantity(Decimal(match.group(1)), description)
    return ExtractedQuantity(ONE, description)


def _service(m: Mapping[str, Any], description: str) -> ExtractedQuantity:
    if _explicit_zero(m):
        return ExtractedQuantity(ZERO, _XN_RE.sub("", description))
    for key in ("billingQuantity", "quantity"):
        q = _positive_int(get_any(m, key))
        if q is not None and q > 1:
            return ExtractedQuantity(q, _XN_RE.sub("", description))
    match = _XN_RE.search(description)
    if match and int(match.group(1)) > 0:
        return ExtractedQuantity(Decimal(match.group(1)),
                                 description[:match.start()].rstrip())
    return ExtractedQuantity(ONE, description)


def extract(item: Any, kind: Optional[str] = None) -> ExtractedQuantity:
    m = event_view(item)
    description = (as_text(get_any(m, "description"))
                   or as_text(get_any(m, "serviceName"))
                   or as_text(get_any(m, "title"))
                   or "")
    k = resolve_kind(item, kind)
    if k == "admission":
        return _admission(m, description)
    if k == "service":
        return _service(m, description)
    return ExtractedQuantity(ONE, description)


def unit_rate(amount: Any, quantity: Any) -> Decimal:
    q = D(quantity)
    if q == 0:
        return ZERO
    return D(amount) / q
