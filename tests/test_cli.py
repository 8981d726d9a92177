from __future__ import annotations

import json

import pytest

from hims_ledger.core.config import settings
from hims_ledger.scripts.render_statement import main


@pytest.fixture
def export(tmp_path):
    payload = {
        "patient": {"id": "p-1", "patientId": "PAT-0001", "name": "Asha Kumar",
                    "createdAt": "2024-03-01 09:00:00"},
        "doctors": [{"id": "d-1", "name": "Dr. Rao"}],
        "hospital": {"name": "City General Hospital", "logo": "javascript:alert(1)"},
        "events": [
            {"sourceKind": "service", "id": "s1", "serviceName": "Consultation",
             "serviceType": "opd", "doctorId": "d-1", "price": 500,
             "createdAt": "2024-03-01 10:00:00", "receiptNumber": "240301-OPD-0001"},
            {"sourceKind": "payment", "id": "pay-1", "amount": 500,
             "createdAt": "2024-03-01 10:05:00"},
        ],
    }
    path = tmp_path / "export.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_renders_statement_to_file(export, tmp_path):
    out = tmp_path / "statement.html"
    assert main([str(export), "-o", str(out)]) == 0

    html = out.read_text(encoding="utf-8")
    assert "Comprehensive Financial Statement" in html
    assert "Consultation" in html
    assert "balance-settled" in html
    assert "javascript:" not in html


def test_renders_single_receipt(export, tmp_path):
    out = tmp_path / "receipt.html"
    assert main([str(export), "-o", str(out), "--receipt", "s1"]) == 0

    html = out.read_text(encoding="utf-8")
    assert "OPD Receipt" in html
    assert "240301-OPD-0001" in html
    assert "Dr. Rao" in html


def test_unknown_receipt_id_exits_2(export, tmp_path):
    assert main([str(export), "-o", str(tmp_path / "x.html"), "--receipt", "nope"]) == 2
    assert not (tmp_path / "x.html").exists()


def test_unreadable_input_exits_1(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    assert main([str(bad)]) == 1


def test_writes_to_stdout(export, capsys):
    assert main([str(export)]) == 0
    assert "<!doctype html>" in capsys.readouterr().out


def test_minted_receipt_without_counter_is_marked_provisional(export, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "COUNTER_ENABLED", False)
    out = tmp_path / "receipt.html"
    assert main([str(export), "-o", str(out), "--receipt", "pay-1", "--mint"]) == 0

    html = out.read_text(encoding="utf-8")
    assert "240301-PAY-0001" in html
    assert "(provisional)" in html
