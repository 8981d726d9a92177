# hims_ledger/services/costing.py
"""
Smart costing: turn a catalog service plus its usage into bill lines.

Billing types:
  per_instance   price x quantity (default for diagnostics, procedures)
  per_24_hours   price x started 24h periods between start and end (rooms)
  per_hour       price x hours
  variable       price agreed at the desk, one unit
  per_date       price x calendar dates touched, in the hospital zone
Anything else bills per instance.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from hims_ledger.core.config import settings
from hims_ledger.schemas.ledger import BillLineItem
from hims_ledger.services.money import D, format_inr
from hims_ledger.services.timestamps import calc_stay_days, normalize
from hims_ledger.utils.timezone import as_local

logger = logging.getLogger(__name__)


class CatalogService(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True,
                              extra="ignore", coerce_numbers_to_str=True)

    id: Optional[str] = None
    name: str
    price: Decimal = Decimal("0")
    billing_type: str = "per_instance"

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> Decimal:
        return D(v)


@dataclass
class BillingCalculation:
    total_amount: Decimal
    billing_quantity: int
    breakdown: List[BillLineItem] = field(default_factory=list)
    billing_details: str = ""


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n > 1 else ''}"


def _single(name: str, rate: Decimal, qty: int, label: str,
            details: str) -> BillingCalculation:
    line = BillLineItem(description=f"{name} ({label})", quantity=qty, rate=rate)
    return BillingCalculation(total_amount=line.amount, billing_quantity=qty,
                              breakdown=[line], billing_details=details)


def _per_instance(svc: CatalogService, quantity: int) -> BillingCalculation:
    total = svc.price * quantity
    return _single(svc.name, svc.price, quantity, _plural(quantity, "instance"),
                   f"Per instance billing: {format_inr(svc.price)} x {quantity} = "
                   f"{format_inr(total)}")


def _per_24_hours(svc: CatalogService, start: Any, end: Any,
                  now: Optional[datetime]) -> BillingCalculation:
    days = calc_stay_days(start, end, now=now) if start else 1
    total = svc.price * days
    return _single(svc.name, svc.price, days, _plural(days, "day"),
                   f"Daily rate: {format_inr(svc.price)} x {_plural(days, 'day')} = "
                   f"{format_inr(total)}")


def _per_hour(svc: CatalogService, hours: int) -> BillingCalculation:
    total = svc.price * hours
    return _single(svc.name, svc.price, hours, _plural(hours, "hour"),
                   f"Hourly rate: {format_inr(svc.price)} x {_plural(hours, 'hour')} = "
                   f"{format_inr(total)}")


def _variable(svc: CatalogService, custom_price: Any) -> BillingCalculation:
    price = D(custom_price) if custom_price not in (None, "") else svc.price
    if price == 0:
        price = svc.price
    return _single(svc.name, price, 1, "Variable pricing",
                   f"Variable price: {format_inr(price)}")


def _per_date(svc: CatalogService, start: Any, end: Any,
              now: Optional[datetime]) -> BillingCalculation:
    current = now or datetime.now(timezone.utc)
    s = normalize(start).instant if start else None
    e = normalize(end).instant if end else None
    d1 = as_local(s or current).date()
    d2 = as_local(e or current).date()
    days = max(1, (d2 - d1).days + 1)
    total = svc.price * days
    return _single(svc.name, svc.price, days, _plural(days, "calendar day"),
                   f"Per calendar date: {format_inr(svc.price)} x {_plural(days, 'day')} = "
                   f"{format_inr(total)} ({settings.TIMEZONE} time)")


def calculate_billing(
    service: Union[CatalogService, Mapping[str, Any]],
    quantity: int = 1,
    start: Any = None,
    end: Any = None,
    custom_price: Any = None,
    *,
    now: Optional[datetime] = None,
) -> BillingCalculation:
    svc = service if isinstance(service, CatalogService) else CatalogService.model_validate(service)
    qty = max(1, int(quantity or 1))
    kind = (svc.billing_type or "").strip().lower()

    if kind == "per_24_hours":
        return _per_24_hours(svc, start, end, now)
    if kind == "per_hour":
        return _per_hour(svc, qty)
    if kind == "variable":
        return _variable(svc, custom_price)
    if kind == "per_date":
        return _per_date(svc, start, end, now)
    if kind != "per_instance":
        logger.warning("Unknown billing type %r for %s, billing per instance",
                       svc.billing_type, svc.name)
    return _per_instance(svc, qty)


def room_charge_line(daily_rate: Any, admission_date: Any,
                     discharge_date: Any = None,
                     *, now: Optional[datetime] = None) -> BillLineItem:
    """'Room charges (N days)' line for an admission, any started day billed."""
    days = calc_stay_days(admission_date, discharge_date, now=now)
    start = normalize(admission_date)
    return BillLineItem(
        date=start.display if start.instant else None,
        description=f"Room charges ({_plural(days, 'day')})",
        quantity=days,
        rate=D(daily_rate),
    )
