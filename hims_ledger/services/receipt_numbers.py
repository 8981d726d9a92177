# hims_ledger/services/receipt_numbers.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from hims_ledger.schemas.ledger import LedgerEvent, event_view
from hims_ledger.services.daily_counter import (
    CounterUnavailableError,
    LocalFallbackCounter,
    SequenceCounter,
)
from hims_ledger.utils.lookup import (
    Chain,
    as_text,
    children,
    field,
    first_match,
    get_any,
    nested,
)
from hims_ledger.utils.timezone import local_date, today_ist

logger = logging.getLogger(__name__)

RECEIPT_NOT_FOUND = "RECEIPT-NOT-FOUND"
RECEIPT_NOT_GENERATED = "RECEIPT-NOT-GENERATED"

RECEIPT_NUMBER_RE = re.compile(r"^(\d{6})-([A-Z]{2,5})-(\d{4})$")
MAX_SEQUENCE = 9999


# ============================================================
# Errors
# ============================================================
class LedgerError(RuntimeError):
    pass


class ReceiptNumberError(LedgerError):
    pass


# ============================================================
# Type codes
# ============================================================
class ReceiptTypeCode(str, Enum):
    OPD = "OPD"
    SER = "SER"
    PAT = "PAT"
    ADM = "ADM"
    DIS = "DIS"
    RTS = "RTS"
    PAY = "PAY"
    DSC = "DSC"
    BILL = "BILL"
    FAKE = "FAKE"


_CATEGORY_CODES: Dict[str, ReceiptTypeCode] = {
    "opd": ReceiptTypeCode.OPD,
    "service": ReceiptTypeCode.SER,
    "ser": ReceiptTypeCode.SER,
    "pathology": ReceiptTypeCode.PAT,
    "pat": ReceiptTypeCode.PAT,
    "admission": ReceiptTypeCode.ADM,
    "admit": ReceiptTypeCode.ADM,
    "adm": ReceiptTypeCode.ADM,
    "discharge": ReceiptTypeCode.DIS,
    "dis": ReceiptTypeCode.DIS,
    "room_transfer": ReceiptTypeCode.RTS,
    "room_change": ReceiptTypeCode.RTS,
    "rts": ReceiptTypeCode.RTS,
    "payment": ReceiptTypeCode.PAY,
    "pay": ReceiptTypeCode.PAY,
    "discount": ReceiptTypeCode.DSC,
    "dsc": ReceiptTypeCode.DSC,
    "bill": ReceiptTypeCode.BILL,
    "fake": ReceiptTypeCode.FAKE,
    "manual": ReceiptTypeCode.FAKE,
}


def type_code_for(category: Union[str, ReceiptTypeCode]) -> str:
    if isinstance(category, ReceiptTypeCode):
        return category.value
    key = (category or "").strip()
    if key.upper() in ReceiptTypeCode.__members__:
        return ReceiptTypeCode[key.upper()].value
    code = _CATEGORY_CODES.get(key.lower())
    if code is None:
        raise ReceiptNumberError(f"No receipt type code for category {category!r}")
    return code.value


def _is_opd(m: Mapping[str, Any]) -> bool:
    for key in ("serviceType", "category", "serviceName", "title"):
        v = (as_text(get_any(m, key)) or "").lower()
        if "opd" in v.split():
            return True
    return False


def category_for_event(event: Any) -> str:
    """Receipt category of an event (opd, service, pathology, discharge, ...)."""
    m = event_view(event)
    kind = (as_text(m.get("type")) or as_text(get_any(m, "sourceKind")) or "service").lower()

    if kind == "service":
        if _is_opd(m):
            return "opd"
        cat = (as_text(get_any(m, "category")) or "").lower()
        desc = (as_text(get_any(m, "description")) or "").lower()
        if cat == "discharge" or "discharge" in desc:
            return "discharge"
        if cat == "room_transfer" or "transfer" in desc:
            return "room_transfer"
        return "service"
    if kind == "admission_event":
        et = (as_text(get_any(m, "eventType")) or "").lower()
        return {
            "admit": "admission",
            "room_change": "room_transfer",
            "discharge": "discharge",
        }.get(et, "admission")
    if kind in ("pathology", "admission", "payment", "discount"):
        return kind
    return "service"


# ============================================================
# Formatting
# ============================================================
def format_receipt_number(on_date: date, type_code: Union[str, ReceiptTypeCode],
                          sequence: int) -> str:
    """YYMMDD-TYPECODE-NNNN, e.g. 240115-OPD-0007"""
    code = type_code_for(type_code)
    n = int(sequence)
    if n < 1 or n > MAX_SEQUENCE:
        raise ReceiptNumberError(
            f"Sequence {n} out of range 1..{MAX_SEQUENCE} for {code}")
    return f"{on_date:%y%m%d}-{code}-{n:04d}"


def parse_receipt_number(value: str) -> Optional[Dict[str, Any]]:
    m = RECEIPT_NUMBER_RE.match((value or "").strip())
    if not m:
        return None
    yymmdd, code, seq = m.groups()
    try:
        d = datetime.strptime(yymmdd, "%y%m%d").date()
    except ValueError:
        return None
    return {"date": d, "type_code": code, "sequence": int(seq)}


# ============================================================
# Lookup chains
# ============================================================
def _raw_data_any(m: Mapping[str, Any]) -> Optional[str]:
    raw = get_any(m, "rawData")
    direct = as_text(get_any(raw, "receiptNumber"))
    if direct:
        return direct
    for child in children(raw):
        v = as_text(get_any(child, "receiptNumber"))
        if v:
            return v
    return None


RECEIPT_NUMBER_ACCESSORS: Chain = (
    ("receiptNumber", field("receiptNumber")),
    ("order.receiptNumber", nested("order", "receiptNumber")),
    ("event.receiptNumber", nested("event", "receiptNumber")),
    ("admission.receiptNumber", nested("admission", "receiptNumber")),
    ("rawData.*.receiptNumber", _raw_data_any),
)

PATHOLOGY_ORDER_NUMBER_ACCESSORS: Chain = (
    ("orderNumber", field("orderNumber")),
    ("order.orderNumber", nested("order", "orderNumber")),
    ("order.orderId", nested("order", "orderId")),
    ("orderId", field("orderId")),
    ("rawData.order.orderId", nested("rawData", "order", "orderId")),
    ("id", field("id")),
)


def pathology_order_number(event: Any) -> str:
    value, _ = first_match(PATHOLOGY_ORDER_NUMBER_ACCESSORS, event_view(event))
    return value or "N/A"


# ============================================================
# Resolver
# ============================================================
@dataclass(frozen=True)
class MintedReceipt:
    number: str
    type_code: str
    sequence: int
    on_date: date
    degraded: bool = False


class ReceiptNumberResolver:
    """
    Finds an existing receipt number, or mints ``YYMMDD-CODE-NNNN``.

    Minting asks ``counter`` first. If the counter is missing or raises
    ``CounterUnavailableError`` the local fallback counter is used, the number
    is logged as degraded and kept in ``degraded_numbers`` so the caller can
    flag it for reconciliation.

    Sequences only move forward per (code, date) within one resolver, whether
    they came from the counter or the fallback.
    """

    def __init__(
        self,
        counter: Optional[SequenceCounter] = None,
        *,
        fallback: Optional[LocalFallbackCounter] = None,
        accessors: Chain = RECEIPT_NUMBER_ACCESSORS,
    ) -> None:
        self.counter = counter
        self.fallback = fallback or LocalFallbackCounter()
        self.accessors = accessors
        self.degraded_numbers: List[str] = []
        self._issued: Dict[Tuple[str, date], int] = {}

    @property
    def degraded(self) -> bool:
        return bool(self.degraded_numbers)

    def lookup(self, event: Any, raw_source: Any = None) -> Optional[str]:
        for source in (event, raw_source):
            if source is None:
                continue
            value, label = first_match(self.accessors, event_view(source))
            if value:
                logger.debug("Receipt number %s found at %s", value, label)
                return value
        return None

    def _sequence(self, code: str, on_date: date) -> Tuple[int, bool]:
        seq: Optional[int] = None
        if self.counter is not None:
            try:
                seq = int(self.counter.next_sequence(code, on_date))
            except CounterUnavailableError as e:
                logger.warning(
                    "Daily counter unavailable for %s/%s, using local fallback: %s",
                    code, on_date.isoformat(), e)
        else:
            logger.warning(
                "No daily counter configured for %s/%s, using local fallback",
                code, on_date.isoformat())

        degraded = seq is None
        if seq is None:
            seq = self.fallback.next_sequence(code, on_date)

        # the endpoint counts stored rows only; stay above anything issued here
        key = (code, on_date)
        floor = self._issued.get(key, 0) + 1
        if seq < floor:
            logger.debug("Sequence %d for %s/%s already issued, bumping to %d",
                         seq, code, on_date.isoformat(), floor)
            seq = floor
        self._issued[key] = seq
        self._observe(code, on_date, seq)
        return seq, degraded

    def _observe(self, code: str, on_date: date, seq: int) -> None:
        # keep the fallback ahead of anything already issued
        while self.fallback.peek(code, on_date) <= seq:
            self.fallback.next_sequence(code, on_date)

    def mint(self,
             category: Union[str, ReceiptTypeCode],
             on_date: Optional[date] = None) -> MintedReceipt:
        code = type_code_for(category)
        on_date = on_date or today_ist()
        seq, degraded = self._sequence(code, on_date)
        number = format_receipt_number(on_date, code, seq)
        if degraded:
            self.degraded_numbers.append(number)
            logger.warning(
                "Receipt number %s minted in DEGRADED mode; reconcile once the "
                "daily counter responds", number)
        else:
            logger.info("Minted receipt number %s", number)
        return MintedReceipt(number=number, type_code=code, sequence=seq,
                             on_date=on_date, degraded=degraded)

    def resolve(
        self,
        event: Any,
        raw_source: Any = None,
        *,
        category: Optional[str] = None,
        on_date: Optional[date] = None,
        mint: bool = False,
    ) -> str:
        found = self.lookup(event, raw_source)
        if found:
            return found
        if not mint:
            return RECEIPT_NOT_FOUND

        category = category or category_for_event(event)
        if on_date is None and isinstance(event, LedgerEvent) and event.instant is not None:
            on_date = local_date(
                datetime.fromtimestamp(event.instant / 1000, tz=timezone.utc))
        return self.mint(category, on_date).number
