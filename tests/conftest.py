from __future__ import annotations

import logging
from datetime import date
from typing import Dict, List, Tuple

import pytest

from hims_ledger.schemas.ledger import HospitalInfo, Patient
from hims_ledger.services.daily_counter import CounterUnavailableError


class FakeCounter:
    """Deterministic stand-in for the daily-count endpoint."""

    def __init__(self, start: int = 1, fail: bool = False) -> None:
        self.start = start
        self.fail = fail
        self.calls: List[Tuple[str, date]] = []
        self._next: Dict[Tuple[str, date], int] = {}

    def next_sequence(self, type_code: str, on_date: date) -> int:
        self.calls.append((type_code, on_date))
        if self.fail:
            raise CounterUnavailableError("counter offline")
        key = (type_code, on_date)
        n = self._next.get(key, self.start)
        self._next[key] = n + 1
        return n


@pytest.fixture
def fake_counter() -> FakeCounter:
    return FakeCounter()


@pytest.fixture
def offline_counter() -> FakeCounter:
    return FakeCounter(fail=True)


@pytest.fixture
def patient() -> Patient:
    return Patient(
        id="p-1",
        patient_id="PAT-0001",
        name="Asha Kumar",
        age="42",
        gender="F",
        phone="9800000000",
        address="12 MG Road",
        created_at="2024-03-01 09:00:00",
    )


@pytest.fixture
def doctors() -> List[dict]:
    return [
        {"id": "d-1", "name": "Dr. Rao", "specialization": "General Medicine",
         "consultationFee": 500},
        {"id": "d-2", "name": "Dr. Iyer", "specialization": "Surgery"},
    ]


@pytest.fixture
def hospital() -> HospitalInfo:
    return HospitalInfo(
        name="City General Hospital",
        address="1 Hospital Road",
        phone="0400000000",
        email="billing@example.org",
        logo="https://example.org/logo.png",
    )


@pytest.fixture(autouse=True)
def _reset_ledger_logging():
    yield
    logger = logging.getLogger("hims_ledger")
    for h in list(logger.handlers):
        if getattr(h, "_hims_ledger", False):
            logger.removeHandler(h)
    logger.setLevel(logging.NOTSET)


class StaticCounter:
    """Answers like the daily-count endpoint: stored rows + 1, unchanged by minting."""

    def __init__(self, count: int = 1) -> None:
        self.count = count
        self.calls: List[Tuple[str, date]] = []

    def next_sequence(self, type_code: str, on_date: date) -> int:
        self.calls.append((type_code, on_date))
        return self.count


@pytest.fixture
def static_counter() -> StaticCounter:
    return StaticCounter()
