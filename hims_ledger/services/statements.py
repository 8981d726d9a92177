# hims_ledger/services/statements.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from hims_ledger.schemas.ledger import (
    BillLineItem,
    Doctor,
    HospitalInfo,
    LedgerEvent,
    LineItemBillDocument,
    Patient,
    ReceiptDocument,
    StatementDocument,
)
from hims_ledger.services.ledger import aggregate
from hims_ledger.services.receipt_numbers import ReceiptNumberResolver
from hims_ledger.services.summary import summarize, summarize_line_items

logger = logging.getLogger(__name__)


def _hospital(hospital: Union[HospitalInfo, Mapping[str, Any], None]) -> HospitalInfo:
    if isinstance(hospital, HospitalInfo):
        return hospital
    return HospitalInfo.model_validate(hospital or {})


def _patient(patient: Union[Patient, Mapping[str, Any]]) -> Patient:
    return patient if isinstance(patient, Patient) else Patient.model_validate(patient)


def build_statement(
    raw_events: Iterable[Any],
    patient: Union[Patient, Mapping[str, Any]],
    doctors: Iterable[Union[Doctor, Mapping[str, Any]]] = (),
    hospital: Union[HospitalInfo, Mapping[str, Any], None] = None,
    *,
    resolver: Optional[ReceiptNumberResolver] = None,
    mint_missing: bool = False,
    timezone_hint: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> StatementDocument:
    patient = _patient(patient)
    events = aggregate(raw_events, patient, doctors, resolver=resolver,
                       mint_missing=mint_missing, timezone_hint=timezone_hint)
    summary = summarize(events)
    provisional = list(resolver.degraded_numbers) if resolver is not None else []
    if provisional:
        logger.warning("Statement for %s carries %d provisional receipt number(s)",
                       patient.display_ref, len(provisional))
    return StatementDocument(
        hospital=_hospital(hospital),
        patient=patient,
        events=events,
        summary=summary,
        generated_at=generated_at,
        provisional_numbers=provisional,
    )


def build_receipt(
    event: LedgerEvent,
    patient: Union[Patient, Mapping[str, Any]],
    hospital: Union[HospitalInfo, Mapping[str, Any], None] = None,
    *,
    resolver: Optional[ReceiptNumberResolver] = None,
    generated_at: Optional[datetime] = None,
) -> ReceiptDocument:
    """Pass the resolver that numbered ``event`` so degraded numbers print as provisional."""
    provisional = (resolver is not None and event.receipt_number is not None
                   and event.receipt_number in resolver.degraded_numbers)
    if provisional:
        logger.warning("Receipt %s for event %s is provisional",
                       event.receipt_number, event.id)
    return ReceiptDocument(
        hospital=_hospital(hospital),
        patient=_patient(patient),
        event=event,
        generated_at=generated_at,
        provisional=provisional,
    )


def build_line_item_bill(
    items: Iterable[Union[BillLineItem, Mapping[str, Any]]],
    patient: Union[Patient, Mapping[str, Any]],
    hospital: Union[HospitalInfo, Mapping[str, Any], None] = None,
    *,
    bill_number: Optional[str] = None,
    payments: Any = 0,
    discounts: Any = 0,
    generated_at: Optional[datetime] = None,
) -> LineItemBillDocument:
    """Manual bill. ``bill_number`` is usually minted under BILL or FAKE."""
    lines: List[BillLineItem] = [
        i if isinstance(i, BillLineItem) else BillLineItem.model_validate(i)
        for i in items
    ]
    return LineItemBillDocument(
        hospital=_hospital(hospital),
        patient=_patient(patient),
        bill_number=bill_number,
        items=lines,
        summary=summarize_line_items(lines, payments, discounts),
        generated_at=generated_at,
    )


def find_event(events: Iterable[LedgerEvent], event_id: str) -> Optional[LedgerEvent]:
    for ev in events:
        if ev.id == event_id:
            return ev
    return None
