"""
ledger_engines.recurrence -- Recurring document date arithmetic and payment
terms parsing.

Responsibility:
    Advance a recurring template's generation date by its frequency and
    turn free-text payment terms ("Net 30", "Due on receipt") into a number
    of days.

Architecture position:
    Engines -- pure calculation layer, zero I/O, no clock access.  The
    caller supplies "today".

Invariants enforced:
    - MONTHLY / QUARTERLY / ANNUALLY with a day_of_month pin land on that
      day of the target month, clamped to the month's last day when the
      month is shorter (day 31 in April gives April 30, in February gives
      the 28th or 29th).  The date never rolls into the following month.
    - Unparsable payment terms fall back to the default number of days.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, timedelta
from enum import Enum

from ledger_engines.tracer import traced_engine

DEFAULT_TERMS_DAYS = 30

_NET_TERMS = re.compile(r"net\s*(\d+)", re.IGNORECASE)
_BARE_DAYS = re.compile(r"^\s*(\d+)\s*(days?)?\s*$", re.IGNORECASE)
_ON_RECEIPT = re.compile(r"(due\s+)?(on|upon)\s+receipt", re.IGNORECASE)


class Frequency(str, Enum):
    """How often a recurring template generates a document."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"


_DAY_STEPS = {
    Frequency.DAILY.value: 1,
    Frequency.WEEKLY.value: 7,
    Frequency.BIWEEKLY.value: 14,
}

_MONTH_STEPS = {
    Frequency.MONTHLY.value: 1,
    Frequency.QUARTERLY.value: 3,
    Frequency.ANNUALLY.value: 12,
}


def add_months(day: date, months: int, day_of_month: int | None = None) -> date:
    """
    ``day`` shifted by ``months`` calendar months.

    The target day is ``day_of_month`` when given, otherwise ``day.day``;
    either way it is clamped to the last day of the target month.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    target_day = day_of_month if day_of_month is not None else day.day
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(target_day, last_day))


@traced_engine("recurrence", "1.0", fingerprint_fields=("current", "frequency", "day_of_month"))
def next_occurrence(
    current: date,
    frequency: Frequency | str,
    day_of_month: int | None = None,
) -> date:
    """
    Next generation date after ``current``.

    ``day_of_month`` only applies to month-based frequencies.

    Raises:
        ValueError: unknown frequency or day_of_month outside 1-31.
    """
    if day_of_month is not None and not 1 <= day_of_month <= 31:
        raise ValueError(f"day_of_month must be between 1 and 31, got {day_of_month}")

    key = Frequency(frequency).value
    if key in _DAY_STEPS:
        return current + timedelta(days=_DAY_STEPS[key])
    return add_months(current, _MONTH_STEPS[key], day_of_month)


def parse_payment_terms(terms: str | None, default_days: int = DEFAULT_TERMS_DAYS) -> int:
    """
    Days until due for free-text payment terms.

    "Net 30", "net45", "2/10 Net 30" -> the net days; "Due on receipt" -> 0;
    a bare number of days is accepted; anything else -> ``default_days``.
    """
    if not terms:
        return default_days
    match = _NET_TERMS.search(terms)
    if match:
        return int(match.group(1))
    if _ON_RECEIPT.search(terms):
        return 0
    match = _BARE_DAYS.match(terms)
    if match:
        return int(match.group(1))
    return default_days


def due_date_for(
    invoice_date: date,
    terms: str | None,
    default_days: int = DEFAULT_TERMS_DAYS,
) -> date:
    return invoice_date + timedelta(days=parse_payment_terms(terms, default_days))
