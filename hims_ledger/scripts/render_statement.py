# hims_ledger/scripts/render_statement.py
"""
Render a patient statement (or one receipt) from a JSON export.

    python -m hims_ledger.scripts.render_statement input.json -o out.html
    python -m hims_ledger.scripts.render_statement input.json --receipt svc-12

Input shape: {"patient": {...}, "doctors": [...], "events": [...], "hospital": {...}}
Exit status: 0 ok, 1 unreadable input, 2 unknown --receipt id.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from hims_ledger.core.config import settings
from hims_ledger.core.logging import setup_logging
from hims_ledger.services.daily_counter import HttpDailyCounter
from hims_ledger.services.documents import render
from hims_ledger.services.ledger import aggregate
from hims_ledger.services.receipt_numbers import ReceiptNumberResolver
from hims_ledger.services.statements import build_receipt, build_statement, find_event
from hims_ledger.utils.timezone import now_ist

logger = logging.getLogger("hims_ledger.scripts.render_statement")


def _parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Render a patient ledger as HTML")
    ap.add_argument("input", help="JSON file with patient, doctors, events, hospital")
    ap.add_argument("-o", "--output", default=None, help="HTML output path (default: stdout)")
    ap.add_argument("--receipt", dest="event_id", default=None,
                    help="Render the single receipt for this ledger event id")
    ap.add_argument("--mint", action="store_true",
                    help="Mint receipt numbers that are missing (uses the daily counter)")
    ap.add_argument("--timezone", default=None,
                    help="Display timezone hint, e.g. Asia/Kolkata")
    ap.add_argument("--log-level", default=None)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = _parser().parse_args(argv)
    setup_logging(args.log_level, stream=sys.stderr)

    try:
        payload = json.loads(Path(args.input).read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Cannot read %s: %s", args.input, e)
        return 1

    resolver = None
    if args.mint:
        counter = HttpDailyCounter() if settings.COUNTER_ENABLED else None
        resolver = ReceiptNumberResolver(counter)

    generated_at = now_ist()
    try:
        if args.event_id:
            events = aggregate(payload.get("events") or [], payload["patient"],
                               payload.get("doctors") or [], resolver=resolver,
                               mint_missing=args.mint, timezone_hint=args.timezone)
            event = find_event(events, args.event_id)
            if event is None:
                logger.error("No ledger event with id %r", args.event_id)
                return 2
            doc = build_receipt(event, payload["patient"], payload.get("hospital"),
                                resolver=resolver, generated_at=generated_at)
        else:
            doc = build_statement(payload.get("events") or [], payload["patient"],
                                  payload.get("doctors") or [], payload.get("hospital"),
                                  resolver=resolver, mint_missing=args.mint,
                                  timezone_hint=args.timezone,
                                  generated_at=generated_at)
    except (KeyError, AttributeError, ValidationError) as e:
        logger.error("Invalid input %s: %s", args.input, e)
        return 1

    out = render(doc)
    if args.output:
        Path(args.output).write_text(out, encoding="utf-8")
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
