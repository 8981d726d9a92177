from __future__ import annotations

import logging
from datetime import date

import pytest

from hims_ledger.schemas.ledger import LedgerEvent
from hims_ledger.services.daily_counter import LocalFallbackCounter
from hims_ledger.services.receipt_numbers import (
    RECEIPT_NOT_FOUND,
    ReceiptNumberError,
    ReceiptNumberResolver,
    category_for_event,
    format_receipt_number,
    parse_receipt_number,
    pathology_order_number,
    type_code_for,
)

DAY = date(2024, 1, 15)


def test_format_is_bit_exact():
    assert format_receipt_number(DAY, "OPD", 7) == "240115-OPD-0007"
    assert format_receipt_number(DAY, "bill", 1234) == "240115-BILL-1234"


@pytest.mark.parametrize("seq", [0, -1, 10000])
def test_format_rejects_out_of_range_sequence(seq):
    with pytest.raises(ReceiptNumberError):
        format_receipt_number(DAY, "SER", seq)


def test_parse_receipt_number():
    assert parse_receipt_number("240115-OPD-0007") == {
        "date": DAY, "type_code": "OPD", "sequence": 7}
    assert parse_receipt_number("RECEIPT-NOT-FOUND") is None


@pytest.mark.parametrize("category, code", [
    ("opd", "OPD"),
    ("service", "SER"),
    ("pathology", "PAT"),
    ("admit", "ADM"),
    ("discharge", "DIS"),
    ("room_change", "RTS"),
    ("payment", "PAY"),
    ("discount", "DSC"),
    ("bill", "BILL"),
    ("manual", "FAKE"),
    ("FAKE", "FAKE"),
])
def test_type_codes(category, code):
    assert type_code_for(category) == code


def test_unknown_category_is_an_error():
    with pytest.raises(ReceiptNumberError):
        type_code_for("laundry")


def test_category_for_service_events():
    assert category_for_event({"type": "service", "serviceType": "opd"}) == "opd"
    assert category_for_event({"type": "service", "category": "discharge"}) == "discharge"
    assert category_for_event({"type": "service", "category": "procedures"}) == "service"
    assert category_for_event({"type": "admission_event", "eventType": "room_change"}) == "room_transfer"
    assert category_for_event({"type": "payment"}) == "payment"


def test_lookup_priority_event_field_first():
    resolver = ReceiptNumberResolver()
    event = {
        "receiptNumber": "240115-SER-0001",
        "order": {"receiptNumber": "240115-SER-0002"},
    }
    assert resolver.lookup(event) == "240115-SER-0001"


def test_lookup_accepts_other_spellings_and_nested_locations():
    resolver = ReceiptNumberResolver()
    assert resolver.lookup({"receipt_number": "A-1"}) == "A-1"
    assert resolver.lookup({"order": {"receiptNumber": "B-2"}}) == "B-2"
    assert resolver.lookup({"admission": {"receiptNumber": "C-3"}}) == "C-3"
    assert resolver.lookup({"rawData": {"event": {"receiptNumber": "D-4"}}}) == "D-4"


def test_lookup_skips_sentinels_and_checks_raw_source():
    resolver = ReceiptNumberResolver()
    event = {"receiptNumber": "RECEIPT-NOT-FOUND"}
    raw = {"order": {"receiptNumber": "240115-PAT-0003"}}
    assert resolver.lookup(event, raw) == "240115-PAT-0003"


def test_resolve_without_mint_returns_sentinel(fake_counter):
    resolver = ReceiptNumberResolver(fake_counter)
    assert resolver.resolve({"type": "service"}) == RECEIPT_NOT_FOUND
    assert fake_counter.calls == []


def test_resolve_mints_from_counter(fake_counter):
    resolver = ReceiptNumberResolver(fake_counter)
    first = resolver.resolve({"type": "service", "serviceType": "opd"}, on_date=DAY, mint=True)
    second = resolver.resolve({"type": "service", "serviceType": "opd"}, on_date=DAY, mint=True)

    assert first == "240115-OPD-0001"
    assert second == "240115-OPD-0002"
    assert fake_counter.calls == [("OPD", DAY), ("OPD", DAY)]
    assert resolver.degraded is False


def test_resolve_mint_uses_event_local_date(fake_counter):
    resolver = ReceiptNumberResolver(fake_counter)
    # 2024-01-14T20:00Z is already 2024-01-15 in the hospital zone
    ev = LedgerEvent(id="e1", type="payment", title="Payment Received",
                     instant=1705262400000)
    assert resolver.resolve(ev, mint=True) == "240115-PAY-0001"


def test_counter_outage_falls_back_and_is_flagged(offline_counter, caplog):
    resolver = ReceiptNumberResolver(offline_counter)
    with caplog.at_level(logging.WARNING, logger="hims_ledger"):
        minted = resolver.mint("service", DAY)

    assert minted.number == "240115-SER-0001"
    assert minted.degraded is True
    assert resolver.degraded_numbers == ["240115-SER-0001"]
    assert "DEGRADED" in caplog.text


def test_fallback_never_reuses_numbers(offline_counter):
    resolver = ReceiptNumberResolver(offline_counter)
    numbers = [resolver.mint("bill", DAY).number for _ in range(3)]
    assert numbers == ["240115-BILL-0001", "240115-BILL-0002", "240115-BILL-0003"]


def test_fallback_stays_ahead_of_counter(fake_counter):
    fallback = LocalFallbackCounter()
    resolver = ReceiptNumberResolver(fake_counter, fallback=fallback)
    resolver.mint("opd", DAY)
    resolver.mint("opd", DAY)

    fake_counter.fail = True
    minted = resolver.mint("opd", DAY)
    assert minted.number == "240115-OPD-0003"
    assert minted.degraded is True


def test_repeated_count_does_not_repeat_numbers(static_counter):
    resolver = ReceiptNumberResolver(static_counter)
    numbers = [resolver.mint("service", DAY).number for _ in range(3)]

    assert numbers == ["240115-SER-0001", "240115-SER-0002", "240115-SER-0003"]
    assert len(static_counter.calls) == 3
    assert resolver.degraded is False


def test_count_ahead_of_issued_is_taken(static_counter):
    resolver = ReceiptNumberResolver(static_counter)
    resolver.mint("opd", DAY)
    static_counter.count = 5

    assert resolver.mint("opd", DAY).number == "240115-OPD-0005"
    assert resolver.mint("opd", DAY).number == "240115-OPD-0006"


def test_recovery_after_outage_does_not_reissue(offline_counter):
    resolver = ReceiptNumberResolver(offline_counter)
    first = resolver.mint("service", DAY)
    offline_counter.fail = False
    second = resolver.mint("service", DAY)

    assert first.number == "240115-SER-0001"
    assert first.degraded is True
    assert second.number == "240115-SER-0002"
    assert second.degraded is False
    assert resolver.degraded_numbers == ["240115-SER-0001"]


def test_missing_counter_is_degraded():
    resolver = ReceiptNumberResolver()
    assert resolver.mint("payment", DAY).degraded is True


def test_pathology_order_number_chain():
    assert pathology_order_number({"orderNumber": "LAB-1", "orderId": "o-9"}) == "LAB-1"
    assert pathology_order_number({"order": {"orderId": "o-7"}, "id": "x"}) == "o-7"
    assert pathology_order_number({"rawData": {"order": {"orderId": "o-5"}}, "id": "x"}) == "o-5"
    assert pathology_order_number({"id": "path-3"}) == "path-3"
    assert pathology_order_number({}) == "N/A"
