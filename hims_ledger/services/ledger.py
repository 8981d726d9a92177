# FILE: hims_ledger/services/ledger.py
"""
Patient ledger aggregation.

Turns the heterogeneous record arrays the data layer hands over (services,
pathology orders, admissions and their events, payments, discounts) into one
chronological list of ``LedgerEvent``.

Ordering:
  - registration first (the anchor)
  - then ascending by instant, ties by id
  - unparsable timestamps last
"""
from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from hims_ledger.schemas.ledger import Doctor, LedgerEvent, Patient
from hims_ledger.schemas.records import (
    AdmissionEventRecord,
    AdmissionRecord,
    DiscountRecord,
    PathologyRecord,
    PaymentRecord,
    RawRecord,
    RegistrationRecord,
    ServiceRecord,
    UnknownSourceKind,
    parse_raw_event,
)
from hims_ledger.services.money import D, ZERO
from hims_ledger.services.pathology_tests import count_tests
from hims_ledger.services.receipt_numbers import (
    ReceiptNumberResolver,
    pathology_order_number,
)
from hims_ledger.services.timestamps import ParsedTimestamp, first_timestamp
from hims_ledger.utils.lookup import Chain, as_text, field, first_match, nested

logger = logging.getLogger(__name__)

NO_DOCTOR = "No Doctor Assigned"

ADMISSION_EVENT_TITLES = {
    "admit": "Patient Admitted",
    "room_change": "Room Transfer",
    "discharge": "Patient Discharged",
}

# "Moved to: 204 (ICU)"
ADMISSION_EVENT_ROOM_LABELS = {
    "room_change": "Moved to",
    "discharge": "From",
}


# ============================================================
# Doctor names
# ============================================================
def doctor_directory(doctors: Iterable[Union[Doctor, Mapping[str, Any]]]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for d in doctors or ():
        doc = d if isinstance(d, Doctor) else Doctor.model_validate(d)
        out[doc.id] = doc.name
    return out


def _doctor_by_id(directory: Mapping[str, str], *path: str):
    get = nested(*path) if len(path) > 1 else field(path[0])

    def _get(m: Mapping[str, Any]) -> Optional[str]:
        doc_id = get(m)
        return directory.get(doc_id) if doc_id else None

    return _get


def doctor_name_accessors(directory: Mapping[str, str],
                          admissions: Mapping[str, Mapping[str, Any]]) -> Chain:
    def _owning_admission(m: Mapping[str, Any]) -> Optional[str]:
        adm_id = as_text(m.get("admissionId"))
        adm = admissions.get(adm_id) if adm_id else None
        doc_id = as_text(adm.get("doctorId")) if adm else None
        return directory.get(doc_id) if doc_id else None

    return (
        ("doctorName", field("doctorName")),
        ("doctor.name", nested("doctor", "name")),
        ("doctorId", _doctor_by_id(directory, "doctorId")),
        ("rawData.order.doctorId", _doctor_by_id(directory, "rawData", "order", "doctorId")),
        ("rawData.event.doctorId", _doctor_by_id(directory, "rawData", "event", "doctorId")),
        ("rawData.admission.doctorId",
         _doctor_by_id(directory, "rawData", "admission", "doctorId")),
        ("admission.doctorId", _owning_admission),
    )


# ============================================================
# Field helpers
# ============================================================
def record_amount(record: RawRecord) -> Decimal:
    for v in (record.amount, record.price, record.total_price, record.calculated_amount):
        if v is not None and str(v).strip() != "":
            return D(v)
    return ZERO


def _date_candidates(record: RawRecord) -> Tuple[Any, ...]:
    """Creation time over scheduled time over order time."""
    if isinstance(record, ServiceRecord):
        scheduled_at = None
        if record.scheduled_date and record.scheduled_time:
            scheduled_at = f"{record.scheduled_date} {record.scheduled_time}"
        return (record.created_at, scheduled_at, record.scheduled_date,
                record.ordered_date)
    if isinstance(record, PathologyRecord):
        return record.created_at, record.ordered_date
    if isinstance(record, AdmissionEventRecord):
        return record.created_at, record.event_time
    if isinstance(record, PaymentRecord):
        return record.created_at, record.payment_date, record.date
    if isinstance(record, DiscountRecord):
        return record.created_at, record.discount_date, record.date
    if isinstance(record, AdmissionRecord):
        return record.admission_date, record.created_at
    return (record.created_at,)


def _join(parts: Sequence[Optional[str]]) -> str:
    return " • ".join(p for p in parts if p)


# ============================================================
# Aggregator
# ============================================================
class _Pass:
    """State for one aggregation pass. Nothing here outlives ``aggregate``."""

    def __init__(self, patient: Patient, doctors, resolver: ReceiptNumberResolver,
                 mint_missing: bool, timezone_hint: Optional[str]) -> None:
        self.patient = patient
        self.directory = doctor_directory(doctors)
        self.resolver = resolver
        self.mint_missing = mint_missing
        self.timezone_hint = timezone_hint
        self.admissions: Dict[str, Mapping[str, Any]] = {}
        self.accessors: Chain = ()
        self.events: List[LedgerEvent] = []

    # ---------- shared ----------
    def when(self, record: RawRecord) -> ParsedTimestamp:
        return first_timestamp(*_date_candidates(record), timezone_hint=self.timezone_hint)

    def doctor_name(self, details: Mapping[str, Any]) -> str:
        name, _ = first_match(self.accessors, details)
        return name or NO_DOCTOR

    def emit(self, *, record: RawRecord, event_id: str, type_: str, title: str,
             description: str, details: Dict[str, Any],
             with_receipt: bool = True) -> None:
        when = self.when(record)
        ev = LedgerEvent(
            id=event_id,
            type=type_,
            title=title,
            description=description,
            instant=when.instant_ms,
            display_date=when.display,
            amount=record_amount(record),
            doctor_name=self.doctor_name(details),
            patient_ref=self.patient.display_ref,
            details=details,
        )
        if with_receipt:
            number = self.resolver.resolve(ev, record.raw_data, mint=self.mint_missing)
            ev = ev.model_copy(update={"receipt_number": number})
        self.events.append(ev)

    # ---------- per kind ----------
    def service(self, r: ServiceRecord, event_id: str, details: Dict[str, Any]) -> None:
        title = r.service_name or "Service"
        description = r.description or r.service_name or ""
        self.emit(record=r, event_id=event_id, type_="service", title=title,
                  description=description, details=details)

    def pathology(self, r: PathologyRecord, event_id: str, details: Dict[str, Any]) -> None:
        order_no = pathology_order_number(details)
        n = count_tests(details)
        description = r.description or (f"{n} test{'s' if n != 1 else ''}" if n else "")
        self.emit(record=r, event_id=event_id, type_="pathology",
                  title=f"Pathology Order: {order_no}",
                  description=description, details=details)

    def payment(self, r: PaymentRecord, event_id: str, details: Dict[str, Any]) -> None:
        description = r.description or _join([
            f"Method: {r.payment_method}" if r.payment_method else None,
            f"Reason: {r.reason}" if r.reason else None,
        ])
        self.emit(record=r, event_id=event_id, type_="payment", title="Payment Received",
                  description=description, details=details)

    def discount(self, r: DiscountRecord, event_id: str, details: Dict[str, Any]) -> None:
        description = r.description or _join([
            f"Type: {r.discount_type}" if r.discount_type else None,
            f"Reason: {r.reason}" if r.reason else None,
        ])
        self.emit(record=r, event_id=event_id, type_="discount", title="Discount Applied",
                  description=description, details=details)

    def registration(self, r: Optional[RegistrationRecord]) -> None:
        if r is None:
            r = RegistrationRecord(id=f"registration-{self.patient.id}",
                                   patient_id=self.patient.id,
                                   created_at=self.patient.created_at)
        details = r.as_details()
        details["sourceKind"] = "registration"
        self.emit(record=r, event_id=r.id or f"registration-{self.patient.id}",
                  type_="registration", title="Patient Registered",
                  description=f"Patient ID: {self.patient.display_ref}",
                  details=details, with_receipt=False)

    def admission_event(self, r: AdmissionEventRecord, event_id: str,
                        details: Dict[str, Any]) -> None:
        et = (r.event_type or "").strip().lower()
        title = ADMISSION_EVENT_TITLES.get(et) or f"Admission {et.replace('_', ' ')}".strip()
        description = r.description or ""
        if not description and r.room_number and r.ward_type:
            label = ADMISSION_EVENT_ROOM_LABELS.get(et, "Room")
            description = f"{label}: {r.room_number} ({r.ward_type})"
        self.emit(record=r, event_id=event_id, type_="admission_event", title=title,
                  description=description, details=details)

    def admission(self, r: AdmissionRecord, key: str,
                  linked: List[AdmissionEventRecord]) -> None:
        subevents: List[Tuple[str, AdmissionEventRecord]] = [
            (ev.id or f"{key}-event-{i}", ev) for i, ev in enumerate(linked, start=1)]
        known_ids = {ev.id for ev in linked if ev.id}
        for i, raw in enumerate(r.events or (), start=1):
            try:
                ev = AdmissionEventRecord.model_validate({"admissionId": key, **raw})
            except ValidationError as e:
                logger.warning("Skipping invalid event %d of admission %s: %s", i, key, e)
                continue
            # same event delivered both nested and as a record
            if ev.id and ev.id in known_ids:
                continue
            subevents.append((f"{key}-{ev.id or i}", ev))

        for event_id, ev in subevents:
            details = ev.as_details()
            details.update(sourceKind="admission_event", admissionId=key)
            self.admission_event(ev, event_id, details)

        if subevents:
            return

        details = r.as_details()
        details["sourceKind"] = "admission"
        doctor = self.doctor_name(details)
        ward = r.current_ward_type or r.ward_type
        room = r.current_room_number or r.room_number or "N/A"
        description = r.description or _join([
            f"Reason: {r.reason}" if r.reason else None,
            f"Doctor: {doctor}",
            f"Ward: {ward}" if ward else None,
            f"Room: {room}",
        ])
        self.emit(record=r, event_id=f"{key}-fallback", type_="admission",
                  title="Patient Admission", description=description, details=details)


def _sort_key(ev: LedgerEvent):
    return (
        0 if ev.type == "registration" else 1,
        ev.instant is None,
        ev.instant if ev.instant is not None else 0,
        ev.id,
    )


def parse_records(raw_events: Iterable[Any]) -> List[RawRecord]:
    """Validate raw dicts; invalid ones are logged and dropped."""
    out: List[RawRecord] = []
    for i, raw in enumerate(raw_events or ()):
        try:
            out.append(parse_raw_event(raw))
        except (UnknownSourceKind, ValidationError, AttributeError) as e:
            logger.warning("Skipping invalid raw record #%d: %s", i, e)
    return out


def aggregate(
    raw_events: Iterable[Any],
    patient: Union[Patient, Mapping[str, Any]],
    doctors: Iterable[Union[Doctor, Mapping[str, Any]]] = (),
    *,
    resolver: Optional[ReceiptNumberResolver] = None,
    mint_missing: bool = False,
    timezone_hint: Optional[str] = None,
) -> List[LedgerEvent]:
    """
    Merge every record of one patient into a sorted timeline.

    Receipt numbers are looked up on each record. With ``mint_missing`` and a
    ``resolver`` the missing ones are minted; otherwise they read
    ``RECEIPT-NOT-FOUND``.
    """
    if not isinstance(patient, Patient):
        patient = Patient.model_validate(patient)
    if resolver is None:
        resolver = ReceiptNumberResolver()
        mint_missing = False

    p = _Pass(patient, doctors, resolver, mint_missing, timezone_hint)
    records = parse_records(raw_events)

    admissions: List[Tuple[str, AdmissionRecord]] = []
    for r in records:
        if isinstance(r, AdmissionRecord):
            key = r.id or r.admission_id
            if not key:
                logger.warning("Skipping admission without id")
                continue
            admissions.append((key, r))
            p.admissions[key] = r.as_details()
    p.accessors = doctor_name_accessors(p.directory, p.admissions)

    linked: Dict[str, List[AdmissionEventRecord]] = defaultdict(list)
    registration: Optional[RegistrationRecord] = None
    counters: Dict[str, int] = defaultdict(int)

    for r in records:
        kind = getattr(r, "source_kind", "record")
        counters[kind] += 1
        event_id = r.id or f"{kind}-{counters[kind]}"
        details = r.as_details()
        details["sourceKind"] = kind

        if isinstance(r, RegistrationRecord):
            if registration is None:
                registration = r
            continue
        if isinstance(r, AdmissionRecord):
            continue
        if isinstance(r, AdmissionEventRecord) and r.admission_id in p.admissions:
            linked[r.admission_id].append(r)
            continue

        if isinstance(r, ServiceRecord):
            p.service(r, event_id, details)
        elif isinstance(r, PathologyRecord):
            p.pathology(r, event_id, details)
        elif isinstance(r, AdmissionEventRecord):
            p.admission_event(r, event_id, details)
        elif isinstance(r, PaymentRecord):
            p.payment(r, event_id, details)
        elif isinstance(r, DiscountRecord):
            p.discount(r, event_id, details)

    for key, r in admissions:
        p.admission(r, key, linked.get(key, []))

    p.registration(registration)

    events = sorted(p.events, key=_sort_key)
    logger.debug("Aggregated %d ledger events for patient %s", len(events),
                 patient.display_ref)
    return events


def printable_events(events: Iterable[LedgerEvent]) -> List[LedgerEvent]:
    """Everything that can carry a receipt (registration cannot)."""
    return [e for e in events if e.type != "registration"]


def group_by_type(events: Iterable[LedgerEvent]) -> Dict[str, List[LedgerEvent]]:
    out: Dict[str, List[LedgerEvent]] = defaultdict(list)
    for e in events:
        out[e.type].append(e)
    return dict(out)
