from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from hims_ledger.schemas.ledger import (
    BillSummary,
    HospitalInfo,
    LedgerEvent,
    ReceiptDocument,
    StatementDocument,
)
from hims_ledger.services.documents import (
    escape_attr,
    receipt_title,
    render,
    safe_image_src,
)
from hims_ledger.services.money import format_inr
from hims_ledger.services.statements import build_line_item_bill, build_receipt

EVIL = "<script>alert('x')</script> & \"quoted\""


def _ev(**kw):
    base = dict(id="s1", type="service", title="Dressing", description="Dressing (x3)",
                display_date="Mar 5, 2024 at 10:00 AM", amount=Decimal("300"),
                receipt_number="240305-SER-0001", doctor_name="Dr. Rao",
                details={"category": "procedures"})
    base.update(kw)
    return LedgerEvent(**base)


def _statement(patient, hospital, events, summary):
    return StatementDocument(hospital=hospital, patient=patient, events=events, summary=summary)


@pytest.mark.parametrize("value, expected", [
    (100000, "₹1,00,000"),
    (1234567, "₹12,34,567"),
    (999, "₹999"),
    (Decimal("99.5"), "₹100"),
    (-500, "-₹500"),
    (0, "₹0"),
])
def test_format_inr(value, expected):
    assert format_inr(value) == expected


def test_escaping_helpers():
    assert escape_attr("a&b<c>\"d'") == "a&amp;b&lt;c&gt;&quot;d&#39;"


@pytest.mark.parametrize("src", [
    "https://example.org/logo.png",
    "http://example.org/logo.png",
    "data:image/png;base64,iVBORw0KGgo=",
    "data:image/svg+xml;base64,PHN2Zz4=",
])
def test_safe_image_src_allows(src):
    assert safe_image_src(src) == src


@pytest.mark.parametrize("src", [
    "javascript:alert(1)",
    "JaVaScRiPt:alert(1)",
    "data:text/html;base64,PHNjcmlwdD4=",
    "data:image/png,rawbytes",
    "/static/logo.png",
    "",
    None,
])
def test_safe_image_src_rejects(src):
    assert safe_image_src(src) is None


def test_statement_escapes_user_text(patient, hospital):
    patient = patient.model_copy(update={"name": EVIL, "address": EVIL})
    hospital = hospital.model_copy(update={"name": EVIL})
    ev = _ev(title=EVIL, description=EVIL, doctor_name=EVIL)
    html = render(_statement(patient, hospital, [ev], BillSummary(total_charges=300)))

    assert "<script>" not in html
    assert "alert('x')" not in html
    assert '"quoted"' not in html
    assert "&lt;script&gt;" in html


def test_unsafe_logo_is_dropped(patient):
    hospital = HospitalInfo(name="H", logo="javascript:alert(1)")
    html = render(_statement(patient, hospital, [], BillSummary()))

    assert "<img" not in html
    assert "javascript:" not in html
    assert not re.search(r"src=\"\s*(javascript:|data:text/html)", html, re.I)


def test_safe_logo_is_rendered(patient, hospital):
    html = render(_statement(patient, hospital, [], BillSummary()))
    assert '<img src="https://example.org/logo.png"' in html


def test_balance_due_styling(patient, hospital):
    summary = BillSummary(total_charges=10000, total_payments=6000, total_discounts=1000)
    html = render(_statement(patient, hospital, [], summary))

    assert "balance-due" in html
    assert "owed by patient" in html
    assert "₹3,000" in html


def test_balance_refund_styling(patient, hospital):
    summary = BillSummary(total_charges=2000, total_payments=2500)
    html = render(_statement(patient, hospital, [], summary))

    assert "balance-refund" in html
    assert "owed by hospital" in html
    assert "-₹500" in html


def test_statement_wraps_credits_in_parentheses(patient, hospital):
    pay = _ev(id="pay-1", type="payment", title="Payment Received", amount=Decimal("6000"))
    html = render(_statement(patient, hospital, [_ev(), pay], BillSummary()))
    assert "(₹6,000)" in html


def test_statement_skips_registration_rows(patient, hospital):
    reg = _ev(id="registration-p-1", type="registration", title="Patient Registered",
              receipt_number=None, amount=Decimal("0"))
    html = render(_statement(patient, hospital, [reg], BillSummary()))
    assert "Patient Registered" not in html


def test_statement_flags_provisional_numbers(patient, hospital):
    doc = _statement(patient, hospital, [_ev()], BillSummary()).model_copy(
        update={"provisional_numbers": ["240305-SER-0001"]})
    html = render(doc)
    assert "pending reconciliation" in html


def test_receipt_shows_quantity_and_unit_rate(patient, hospital):
    html = render(build_receipt(_ev(), patient, hospital))

    assert "Procedure Receipt" in html
    assert "240305-SER-0001" in html
    assert "₹100" in html
    assert "₹300" in html


def test_receipt_without_number_uses_sentinel(patient, hospital):
    html = render(build_receipt(_ev(receipt_number=None), patient, hospital))
    assert "RECEIPT-NOT-GENERATED" in html


def test_pathology_receipt_lists_tests_with_quantity_one(patient, hospital):
    ev = _ev(id="path-1", type="pathology", title="Pathology Order: LAB-9",
             description="3 tests", amount=Decimal("900"),
             details={"order": {"orderNumber": "LAB-9",
                                "tests": [{"testName": "CBC", "price": 300},
                                          {"name": "LFT", "price": 300},
                                          {"price": 300}]}})
    html = render(build_receipt(ev, patient, hospital))

    assert "Pathology Receipt" in html
    assert "LAB-9" in html
    for name in ("CBC", "LFT", "Lab Test 3"):
        assert name in html
    assert re.search(r'<td class="num">1</td>\s*<td class="num">₹900</td>', html)


@pytest.mark.parametrize("event, title", [
    (dict(details={"serviceType": "opd"}), "OPD Receipt"),
    (dict(details={"category": "diagnostics"}), "Diagnostic Service Receipt"),
    (dict(details={"category": "physiotherapy"}), "Physiotherapy Service Receipt"),
    (dict(details={}), "Service Receipt"),
    (dict(type="payment", details={}), "Payment Receipt"),
    (dict(type="discount", details={}), "Discount Receipt"),
    (dict(type="admission", details={}), "Admission Receipt"),
    (dict(type="admission_event", details={"eventType": "discharge"}), "Discharge Receipt"),
])
def test_receipt_titles(event, title):
    assert receipt_title(_ev(**event)) == title


def test_line_item_bill(patient, hospital):
    doc = build_line_item_bill(
        [{"description": "Consultation", "quantity": 1, "rate": 500},
         {"description": "Dressing", "quantity": 3, "rate": 100}],
        patient, hospital, bill_number="240305-BILL-0001", payments=800,
        generated_at=datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc))
    html = render(doc)

    assert doc.summary.total_charges == 800
    assert "240305-BILL-0001" in html
    assert "balance-settled" in html
    assert "Mar 5, 2024 at 3:30 PM" in html


def test_render_rejects_unknown_payload():
    with pytest.raises(TypeError):
        render({"kind": "statement"})
