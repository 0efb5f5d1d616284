"""
Billing period arithmetic.

Two entry points:

    calculate_billing_period(reference_date)
        Which billing period does a given calendar date fall into?
        day >= 8  →  [08 of previous month, 07 of current month]
        day <  8  →  [08 of month-2,        07 of month-1]

    exclusion_window(period_reference)
        Date bounds used by the exclusion filter for a declared period
        ("2025-06", "jun/25", "junho/2025").

The period is always passed explicitly; nothing here reads a
process-wide "current period".
"""

from __future__ import annotations

import calendar
import re
import unicodedata
from dataclasses import dataclass
from datetime import date

from volumetria.pipeline.errors import InvalidPeriodError

BILLING_START_DAY = 8
BILLING_END_DAY = 7

MONTHS_PT = {
    "janeiro": 1, "jan": 1,
    "fevereiro": 2, "fev": 2,
    "marco": 3, "mar": 3,
    "abril": 4, "abr": 4,
    "maio": 5, "mai": 5,
    "junho": 6, "jun": 6,
    "julho": 7, "jul": 7,
    "agosto": 8, "ago": 8,
    "setembro": 9, "set": 9,
    "outubro": 10, "out": 10,
    "novembro": 11, "nov": 11,
    "dezembro": 12, "dez": 12,
}

MONTH_LABELS_PT = [
    "", "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]

_ISO_PERIOD = re.compile(r"^(\d{4})-(\d{1,2})$")
_NAMED_PERIOD = re.compile(r"^([a-z]+)[/\-\s](\d{2}|\d{4})$")


@dataclass(frozen=True)
class BillingPeriod:
    """Inclusive date bounds of one billing period."""

    start: date
    end: date
    year: int
    month: int      # month whose 8th opens the period

    @property
    def reference(self) -> str:
        """Canonical YYYY-MM label."""
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def label(self) -> str:
        """Human label, e.g. 'Junho/25'."""
        return f"{MONTH_LABELS_PT[self.month].capitalize()}/{self.year % 100:02d}"

    def contains(self, value: date | None) -> bool:
        return value is not None and self.start <= value <= self.end


@dataclass(frozen=True)
class ExclusionWindow:
    """Bounds consumed by the period exclusion rules."""

    period_reference: str
    realization_cutoff: date        # v003: realization on/after this is excluded
    report_start: date              # v002: report outside [start, end] is excluded
    report_end: date
    month_start: date               # v031: current-period filter
    month_end: date


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Add `delta` months to (year, month), rolling the year over."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def calculate_billing_period(reference_date: date) -> BillingPeriod:
    """Return the billing period a calendar date belongs to."""
    offset = -2 if reference_date.day < BILLING_START_DAY else -1
    start_year, start_month = _shift_month(reference_date.year, reference_date.month, offset)
    end_year, end_month = _shift_month(start_year, start_month, 1)
    return BillingPeriod(
        start=date(start_year, start_month, BILLING_START_DAY),
        end=date(end_year, end_month, BILLING_END_DAY),
        year=start_year,
        month=start_month,
    )


def _strip_accents(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def parse_period_reference(period_reference: str) -> tuple[int, int]:
    """
    Parse a period reference into (year, month).

    Accepts "2025-06", "jun/25", "junho/2025" (case/accents ignored).
    """
    if not period_reference or not period_reference.strip():
        raise InvalidPeriodError("Period reference is required")

    text = _strip_accents(period_reference.strip().lower())

    match = _ISO_PERIOD.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        match = _NAMED_PERIOD.match(text)
        if not match or match.group(1) not in MONTHS_PT:
            raise InvalidPeriodError(f"Invalid period reference: {period_reference!r}")
        month = MONTHS_PT[match.group(1)]
        year_text = match.group(2)
        year = 2000 + int(year_text) if len(year_text) == 2 else int(year_text)

    if not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month in period reference: {period_reference!r}")
    return year, month


def normalize_period_reference(period_reference: str) -> str:
    """Return the canonical YYYY-MM form of any accepted period reference."""
    year, month = parse_period_reference(period_reference)
    return f"{year:04d}-{month:02d}"


def billing_period_for(period_reference: str) -> BillingPeriod:
    """Billing period opened on the 8th of the referenced month."""
    year, month = parse_period_reference(period_reference)
    end_year, end_month = _shift_month(year, month, 1)
    return BillingPeriod(
        start=date(year, month, BILLING_START_DAY),
        end=date(end_year, end_month, BILLING_END_DAY),
        year=year,
        month=month,
    )


def exclusion_window(period_reference: str) -> ExclusionWindow:
    """Compute every bound the exclusion filter needs for a period."""
    year, month = parse_period_reference(period_reference)
    period = billing_period_for(period_reference)
    last_day = calendar.monthrange(year, month)[1]
    return ExclusionWindow(
        period_reference=period.reference,
        realization_cutoff=date(year, month, 1),
        report_start=period.start,
        report_end=period.end,
        month_start=date(year, month, 1),
        month_end=date(year, month, last_day),
    )
