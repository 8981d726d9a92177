# FILE: hims_ledger/services/documents.py
"""
Print-ready HTML for statements, single receipts and manual line-item bills.

Rendering is a pure function of the document model: no I/O beyond loading
templates, no clock reads (``generated_at`` travels in the payload).

Safety rules:
  - templates run with autoescape on; free text is never marked safe
  - attribute values go through ``escape_attr``
  - image sources must pass ``safe_image_src`` or the image is dropped
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from hims_ledger.core.config import settings
from hims_ledger.schemas.ledger import (
    LedgerEvent,
    LineItemBillDocument,
    ReceiptDocument,
    StatementDocument,
)
from hims_ledger.services.money import format_inr
from hims_ledger.services.pathology_tests import TestLine, extract_tests
from hims_ledger.services.quantities import extract, unit_rate
from hims_ledger.services.receipt_numbers import (
    RECEIPT_NOT_GENERATED,
    category_for_event,
    pathology_order_number,
)
from hims_ledger.services.timestamps import normalize

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"

# http(s) URLs or base64 raster/svg payloads, nothing else
_SAFE_IMAGE_RE = re.compile(
    r"^(?:https?://\S+|data:image/(?:png|jpeg|jpg|gif|webp|svg\+xml);base64,[A-Za-z0-9+/=\s]+)$",
    re.IGNORECASE,
)

BALANCE_STYLES = {
    "due": ("balance-due", "Balance owed by patient"),
    "refund": ("balance-refund", "Amount owed by hospital"),
    "settled": ("balance-settled", "Settled"),
}

SERVICE_CATEGORY_TITLES = {
    "diagnostics": "Diagnostic Service Receipt",
    "procedures": "Procedure Receipt",
    "operations": "Surgical Operation Receipt",
    "misc": "Miscellaneous Service Receipt",
}

RECEIPT_TITLES = {
    "opd": "OPD Receipt",
    "pathology": "Pathology Receipt",
    "admission": "Admission Receipt",
    "discharge": "Discharge Receipt",
    "room_transfer": "Room Transfer Receipt",
    "payment": "Payment Receipt",
    "discount": "Discount Receipt",
}


# -----------------------------
# Escaping
# -----------------------------
def escape_attr(x: Any) -> str:
    s = "" if x is None else str(x)
    return (s.replace("&", "&amp;").replace("<", "&lt;").replace(
        ">", "&gt;").replace('"', "&quot;").replace("'", "&#39;"))


def safe_image_src(src: Any) -> Optional[str]:
    s = ("" if src is None else str(src)).strip()
    if not s:
        return None
    if _SAFE_IMAGE_RE.match(s):
        return s
    logger.debug("Dropping image source with disallowed scheme: %.40r", s)
    return None


# -----------------------------
# Template filters
# -----------------------------
def _inr(x: Any) -> str:
    return format_inr(x, settings.CURRENCY_SYMBOL)


def _attr(x: Any) -> Markup:
    return Markup(escape_attr(x))


def _safe_img(x: Any) -> Markup:
    src = safe_image_src(x)
    return Markup(escape_attr(src)) if src else Markup("")


def _when(x: Any) -> str:
    return normalize(x).display if x is not None else ""


def build_env(templates_dir: Union[str, Path, None] = None) -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["inr"] = _inr
    env.filters["attr"] = _attr
    env.filters["safe_img"] = _safe_img
    env.filters["when"] = _when
    return env


_env = build_env()


# -----------------------------
# View helpers
# -----------------------------
@dataclass(frozen=True)
class ReceiptRow:
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal


def receipt_title(event: LedgerEvent) -> str:
    category = category_for_event(event)
    if category == "service":
        cat = (event.category or "").strip().lower()
        if cat in SERVICE_CATEGORY_TITLES:
            return SERVICE_CATEGORY_TITLES[cat]
        return f"{event.category.title()} Service Receipt" if cat else "Service Receipt"
    return RECEIPT_TITLES.get(category, "Receipt")


def receipt_rows(event: LedgerEvent) -> List[ReceiptRow]:
    q = extract(event)
    return [ReceiptRow(
        description=q.description or event.title,
        quantity=q.quantity,
        rate=unit_rate(event.amount, q.quantity),
        amount=event.amount,
    )]


def receipt_tests(event: LedgerEvent) -> List[TestLine]:
    if event.type != "pathology":
        return []
    return extract_tests(event.details)


def display_receipt_number(event: LedgerEvent) -> str:
    return event.receipt_number or RECEIPT_NOT_GENERATED


def _common(doc: Any) -> Dict[str, Any]:
    return {
        "doc": doc,
        "hospital": doc.hospital,
        "patient": doc.patient,
        "generated_at": doc.generated_at,
    }


def _balance(summary) -> Dict[str, str]:
    css, label = BALANCE_STYLES[summary.status]
    return {"css": css, "label": label}


# -----------------------------
# Public API
# -----------------------------
def render_statement(doc: StatementDocument) -> str:
    rows = [e for e in doc.events if e.type != "registration"]
    ctx = _common(doc)
    ctx.update(events=rows, summary=doc.summary, balance=_balance(doc.summary),
               provisional=doc.provisional_numbers)
    return _env.get_template("statement.html").render(**ctx)


def render_receipt(doc: ReceiptDocument) -> str:
    ev = doc.event
    ctx = _common(doc)
    ctx.update(
        event=ev,
        title=receipt_title(ev),
        receipt_number=display_receipt_number(ev),
        order_number=pathology_order_number(ev) if ev.type == "pathology" else None,
        rows=receipt_rows(ev),
        tests=receipt_tests(ev),
        provisional=doc.provisional,
    )
    return _env.get_template("receipt.html").render(**ctx)


def render_line_item_bill(doc: LineItemBillDocument) -> str:
    ctx = _common(doc)
    ctx.update(items=doc.items, summary=doc.summary, balance=_balance(doc.summary),
               bill_number=doc.bill_number or RECEIPT_NOT_GENERATED)
    return _env.get_template("line_item_bill.html").render(**ctx)


def render(payload: Union[StatementDocument, ReceiptDocument, LineItemBillDocument]) -> str:
    if isinstance(payload, StatementDocument):
        return render_statement(payload)
    if isinstance(payload, ReceiptDocument):
        return render_receipt(payload)
    if isinstance(payload, LineItemBillDocument):
        return render_line_item_bill(payload)
    raise TypeError(f"Cannot render {type(payload).__name__}")
