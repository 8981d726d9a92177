# hims_ledger/services/summary.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Optional

from hims_ledger.schemas.ledger import (
    CREDIT_TYPES,
    BillLineItem,
    BillSummary,
    LedgerEvent,
    event_view,
)
from hims_ledger.services.money import D, ZERO, dsum
from hims_ledger.utils.lookup import as_text, get_any

logger = logging.getLogger(__name__)


def _type_of(item: Any) -> str:
    if isinstance(item, LedgerEvent):
        return item.type
    m = event_view(item)
    return (as_text(get_any(m, "type")) or as_text(get_any(m, "sourceKind")) or "").lower()


def _amount_of(item: Any) -> Decimal:
    if isinstance(item, (LedgerEvent, BillLineItem)):
        return item.amount
    if isinstance(item, (int, float, str, Decimal)):
        return D(item)
    m = event_view(item)
    for key in ("amount", "price", "totalPrice", "calculatedAmount"):
        v = get_any(m, key)
        if v is not None:
            return D(v)
    return ZERO


def _total(items: Optional[Iterable[Any]]) -> Decimal:
    return dsum(_amount_of(item) for item in items or ())


def summarize(
    charge_items: Iterable[Any],
    payments: Optional[Iterable[Any]] = None,
    discounts: Optional[Iterable[Any]] = None,
) -> BillSummary:
    """
    Reduce ledger items to charges / payments / discounts.

    ``payments`` and ``discounts`` replace the payment- and discount-typed
    items of ``charge_items`` when given (an external payments ledger). They
    may hold plain amounts or events.
    """
    charges = ZERO
    paid = ZERO
    discounted = ZERO
    for item in charge_items or ():
        kind = _type_of(item)
        if kind not in CREDIT_TYPES:
            charges += _amount_of(item)
        elif kind == "payment":
            paid += _amount_of(item)
        else:
            discounted += _amount_of(item)

    if payments is not None:
        paid = _total(payments)
    if discounts is not None:
        discounted = _total(discounts)

    summary = BillSummary(total_charges=charges, total_payments=paid,
                          total_discounts=discounted)
    logger.debug("Bill summary: charges=%s payments=%s discounts=%s balance=%s",
                 charges, paid, discounted, summary.balance)
    return summary


def summarize_line_items(items: Iterable[BillLineItem],
                         payments: Any = 0,
                         discounts: Any = 0) -> BillSummary:
    """Ad-hoc bills: charges are the plain sum of the line amounts."""
    return BillSummary(
        total_charges=_total(items),
        total_payments=D(payments),
        total_discounts=D(discounts),
    )
