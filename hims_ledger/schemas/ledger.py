# FILE: hims_ledger/schemas/ledger.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from hims_ledger.core.config import settings
from hims_ledger.schemas.records import RawRecord
from hims_ledger.services.money import D

LedgerEventType = Literal["registration", "service", "pathology", "admission",
                          "admission_event", "payment", "discount"]

CREDIT_TYPES = frozenset({"payment", "discount"})


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


# ----------------------------
# Collaborator inputs
# ----------------------------
class Patient(_CamelModel):
    id: str
    patient_id: Optional[str] = None
    name: str = "Unknown Patient"
    age: Optional[str] = None
    gender: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_of_birth: Optional[str] = None
    created_at: Optional[Any] = None

    @property
    def display_ref(self) -> str:
        return self.patient_id or self.id


class Doctor(_CamelModel):
    id: str
    name: str
    specialization: Optional[str] = None
    consultation_fee: Optional[Decimal] = None


class HospitalInfo(_CamelModel):
    name: str = Field(default_factory=lambda: settings.HOSPITAL_NAME)
    address: str = Field(default_factory=lambda: settings.HOSPITAL_ADDRESS)
    phone: str = Field(default_factory=lambda: settings.HOSPITAL_PHONE)
    email: str = Field(default_factory=lambda: settings.HOSPITAL_EMAIL)
    registration_number: Optional[str] = Field(
        default_factory=lambda: settings.HOSPITAL_REGISTRATION_NUMBER or None)
    logo: Optional[str] = None


# ----------------------------
# Engine outputs
# ----------------------------
class LedgerEvent(BaseModel):
    """One timeline row, projected from exactly one raw record."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: LedgerEventType
    title: str
    description: str = ""
    instant: Optional[int] = None  # epoch ms, UTC
    display_date: str = "N/A"
    amount: Decimal = Decimal("0")
    receipt_number: Optional[str] = None
    doctor_name: str = "No Doctor Assigned"
    patient_ref: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_charge(self) -> bool:
        return self.type not in CREDIT_TYPES

    @property
    def category(self) -> Optional[str]:
        c = self.details.get("category")
        return str(c) if c else None


class BillSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_charges: Decimal = Decimal("0")
    total_payments: Decimal = Decimal("0")
    total_discounts: Decimal = Decimal("0")

    @computed_field  # type: ignore[misc]
    @property
    def balance(self) -> Decimal:
        return self.total_charges - self.total_payments - self.total_discounts

    @property
    def status(self) -> str:
        """due: patient owes; refund: hospital owes patient; settled: zero."""
        if self.balance > 0:
            return "due"
        if self.balance < 0:
            return "refund"
        return "settled"


class BillLineItem(BaseModel):
    """
    Manually composed bill row. ``amount`` is derived, so it always equals
    ``rate * quantity`` after any assignment.
    """

    model_config = ConfigDict(validate_assignment=True)

    date: Optional[str] = None
    description: str = ""
    quantity: Decimal = Decimal("1")
    rate: Decimal = Decimal("0")

    @field_validator("quantity", "rate", mode="before")
    @classmethod
    def _as_decimal(cls, v: Any) -> Decimal:
        return D(v)

    @field_validator("quantity")
    @classmethod
    def _non_negative_qty(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("quantity must be >= 0")
        return v

    @computed_field  # type: ignore[misc]
    @property
    def amount(self) -> Decimal:
        return self.rate * self.quantity


# ----------------------------
# Documents handed to the renderer
# ----------------------------
class StatementDocument(BaseModel):
    kind: Literal["statement"] = "statement"
    hospital: HospitalInfo
    patient: Patient
    events: List[LedgerEvent]
    summary: BillSummary
    generated_at: Optional[datetime] = None
    # minted while the daily counter was down; reconcile before filing
    provisional_numbers: List[str] = Field(default_factory=list)


class ReceiptDocument(BaseModel):
    kind: Literal["receipt"] = "receipt"
    hospital: HospitalInfo
    patient: Patient
    event: LedgerEvent
    generated_at: Optional[datetime] = None
    # receipt number was minted while the daily counter was down
    provisional: bool = False


class LineItemBillDocument(BaseModel):
    kind: Literal["line_item_bill"] = "line_item_bill"
    hospital: HospitalInfo
    patient: Patient
    bill_number: Optional[str] = None
    items: List[BillLineItem]
    summary: BillSummary
    generated_at: Optional[datetime] = None


def event_view(event: Any) -> Mapping[str, Any]:
    """Plain camelCase mapping for a LedgerEvent, raw record or dict."""
    if isinstance(event, LedgerEvent):
        view = dict(event.details)
        view.update({
            "id": event.id,
            "type": event.type,
            "title": event.title,
            "description": event.description,
            "amount": event.amount,
        })
        if event.receipt_number:
            view["receiptNumber"] = event.receipt_number
        return view
    if isinstance(event, RawRecord):
        return event.as_details()
    if isinstance(event, BaseModel):
        return event.model_dump(by_alias=True, exclude_none=True)
    return event if isinstance(event, Mapping) else {}
