# hims_ledger/services/daily_counter.py
"""
Per-day, per-category sequence counters for receipt numbers.

The authoritative counter lives behind the front-desk API:

    GET {COUNTER_BASE_URL}/receipts/daily-count/{typeCode}/{YYYY-MM-DD}
    -> {"count": 7}   (rows already stored for that key, plus one)

The count is only a candidate: minting stores nothing, so callers must keep
their own high-water mark per key (see ``ReceiptNumberResolver``).

``LocalFallbackCounter`` is the in-process stand-in used when that call fails.
Numbers it hands out are only unique inside this process.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Optional, Protocol, Tuple

import requests

from hims_ledger.core.config import settings

logger = logging.getLogger(__name__)


class CounterUnavailableError(RuntimeError):
    """The daily counter could not produce a sequence number."""


class SequenceCounter(Protocol):
    def next_sequence(self, type_code: str, on_date: date) -> int:
        ...


class HttpDailyCounter:
    """Counting collaborator backed by the daily-count endpoint (one request, no retry)."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        auth_token: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = (base_url or settings.COUNTER_BASE_URL).rstrip("/")
        self.timeout = settings.COUNTER_TIMEOUT if timeout is None else timeout
        self.auth_token = (settings.COUNTER_AUTH_TOKEN
                           if auth_token is None else auth_token)
        self.session = session or requests.Session()

    def url_for(self, type_code: str, on_date: date) -> str:
        return (f"{self.base_url}/receipts/daily-count/"
                f"{type_code}/{on_date.isoformat()}")

    def next_sequence(self, type_code: str, on_date: date) -> int:
        url = self.url_for(type_code, on_date)
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        try:
            logger.debug("Requesting daily count: %s", url)
            resp = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise CounterUnavailableError(
                f"Daily counter request failed: {e}") from e

        if resp.status_code != 200:
            raise CounterUnavailableError(
                f"Daily counter returned status {resp.status_code}: "
                f"{resp.text[:200]}")

        try:
            count = int(resp.json()["count"])
        except (ValueError, KeyError, TypeError) as e:
            raise CounterUnavailableError(
                f"Daily counter returned a malformed body: {resp.text[:200]}"
            ) from e

        if count < 1:
            raise CounterUnavailableError(
                f"Daily counter returned non-positive count {count}")
        return count


class LocalFallbackCounter:
    """
    Monotonic in-process counter per (type_code, date), seeded at 1.
    Never hands out the same number twice for a key.
    """

    def __init__(self, start: int = 1) -> None:
        self.start = start
        self._next: Dict[Tuple[str, date], int] = {}

    def next_sequence(self, type_code: str, on_date: date) -> int:
        key = (type_code, on_date)
        n = self._next.get(key, self.start)
        self._next[key] = n + 1
        return n

    def peek(self, type_code: str, on_date: date) -> int:
        return self._next.get((type_code, on_date), self.start)
