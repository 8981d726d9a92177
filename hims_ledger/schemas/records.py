# FILE: hims_ledger/schemas/records.py
"""
Raw records as the data layer hands them over.

Every record is tagged by ``sourceKind``. Field names follow the data layer's
camelCase JSON; snake_case names are accepted too. Keys this module does not
know about are kept (``extra="allow"``) so they still reach ``details``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

SourceKind = Literal["service", "pathology", "admission", "admission_event",
                     "payment", "discount", "registration"]


class RawRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        frozen=True,
        coerce_numbers_to_str=True,
    )

    id: Optional[str] = None
    patient_id: Optional[str] = None
    created_at: Optional[Any] = None
    description: Optional[str] = None
    receipt_number: Optional[str] = None

    doctor_id: Optional[str] = None
    doctor_name: Optional[str] = None
    doctor: Optional[Dict[str, Any]] = None

    # amount fields, in lookup order
    amount: Optional[Any] = None
    price: Optional[Any] = None
    total_price: Optional[Any] = None
    calculated_amount: Optional[Any] = None

    raw_data: Optional[Any] = None

    @field_validator("id", "patient_id", "doctor_id", mode="before")
    @classmethod
    def _ids_as_text(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, bool):
            return None
        s = str(v).strip()
        return s or None

    def as_details(self) -> Dict[str, Any]:
        """camelCase dict of everything the record carried (extras included)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ServiceRecord(RawRecord):
    source_kind: Literal["service"] = "service"

    service_name: Optional[str] = None
    service_type: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    order_id: Optional[str] = None
    scheduled_date: Optional[Any] = None
    scheduled_time: Optional[str] = None
    ordered_date: Optional[Any] = None
    billing_quantity: Optional[Any] = None
    quantity: Optional[Any] = None


class PathologyRecord(RawRecord):
    source_kind: Literal["pathology"] = "pathology"

    order_id: Optional[str] = None
    order_number: Optional[str] = None
    status: Optional[str] = None
    ordered_date: Optional[Any] = None
    completed_date: Optional[Any] = None
    order: Optional[Dict[str, Any]] = None
    tests: Optional[Any] = None


class AdmissionEventRecord(RawRecord):
    source_kind: Literal["admission_event"] = "admission_event"

    admission_id: Optional[str] = None
    event_type: Optional[str] = None
    event_time: Optional[Any] = None
    room_number: Optional[str] = None
    ward_type: Optional[str] = None
    notes: Optional[str] = None


class AdmissionRecord(RawRecord):
    source_kind: Literal["admission"] = "admission"

    admission_id: Optional[str] = None
    admission_date: Optional[Any] = None
    discharge_date: Optional[Any] = None
    reason: Optional[str] = None
    status: Optional[str] = None
    ward_type: Optional[str] = None
    current_ward_type: Optional[str] = None
    room_number: Optional[str] = None
    current_room_number: Optional[str] = None
    daily_cost: Optional[Any] = None
    stay_duration: Optional[Any] = None
    events: Optional[List[Dict[str, Any]]] = None


class PaymentRecord(RawRecord):
    source_kind: Literal["payment"] = "payment"

    admission_id: Optional[str] = None
    payment_date: Optional[Any] = None
    date: Optional[Any] = None
    payment_method: Optional[str] = None
    reason: Optional[str] = None


class DiscountRecord(RawRecord):
    source_kind: Literal["discount"] = "discount"

    admission_id: Optional[str] = None
    discount_date: Optional[Any] = None
    date: Optional[Any] = None
    discount_type: Optional[str] = None
    reason: Optional[str] = None


class RegistrationRecord(RawRecord):
    source_kind: Literal["registration"] = "registration"


RawEvent = Union[ServiceRecord, PathologyRecord, AdmissionRecord,
                 AdmissionEventRecord, PaymentRecord, DiscountRecord,
                 RegistrationRecord]

RAW_EVENT_MODELS: Dict[str, Type[RawRecord]] = {
    "service": ServiceRecord,
    "pathology": PathologyRecord,
    "admission": AdmissionRecord,
    "admission_event": AdmissionEventRecord,
    "payment": PaymentRecord,
    "discount": DiscountRecord,
    "registration": RegistrationRecord,
}


class UnknownSourceKind(ValueError):
    pass


def source_kind_of(record: Mapping[str, Any]) -> Optional[str]:
    kind = record.get("sourceKind") or record.get("source_kind")
    return str(kind).strip().lower() if kind else None


def parse_raw_event(record: Union[Mapping[str, Any], RawRecord]) -> RawEvent:
    """Pick the record model by its ``sourceKind`` tag and validate."""
    if isinstance(record, RawRecord):
        return record  # type: ignore[return-value]
    kind = source_kind_of(record)
    model = RAW_EVENT_MODELS.get(kind or "")
    if model is None:
        raise UnknownSourceKind(f"Unknown sourceKind: {kind!r}")
    data = {k: v for k, v in record.items() if k not in ("sourceKind", "source_kind")}
    return model.model_validate(data)  # type: ignore[return-value]
