"""
Period expansion logic for recurring charges.
"""
import calendar
from datetime import date
from typing import Dict, Optional, Tuple

import pandas as pd

from .models import Cadence, Period

# pandas period frequency for each cadence
PANDAS_FREQ = {
    Cadence.MONTHLY: 'M',
    Cadence.YEARLY: 'Y',
}


def period_label(cadence: Cadence, year: int, month: Optional[int] = None) -> str:
    """
    Canonical display label for a period.

    Example:
        monthly 2024-01 -> "January 2024"
        yearly 2024     -> "2024 Annual"
    """
    if cadence == Cadence.YEARLY:
        return f"{year} Annual"
    return f"{calendar.month_name[month]} {year}"


def make_period(cadence: Cadence, year: int, month: Optional[int] = None) -> Period:
    if cadence == Cadence.YEARLY:
        month = None
    return Period(cadence=cadence, year=year, month=month, label=period_label(cadence, year, month))


def generate_periods(anchor_date: date, cadence: Cadence, as_of: date) -> Tuple[Period, ...]:
    """
    Generate the billing periods between anchor_date and as_of (inclusive).

    Yearly cadence yields one period per calendar year; monthly cadence one
    per calendar month. The anchor's day (and, for yearly, its month) is
    ignored, so the first period covers the remainder of the anchor's cycle.

    Example:
        anchor: 2024-01-15, as_of: 2024-03-20, monthly
        Returns: (January 2024, February 2024, March 2024)

        anchor: 2023-06-01, as_of: 2024-03-01, yearly
        Returns: (2023 Annual, 2024 Annual)

    Returns an empty tuple when anchor_date is after as_of.
    """
    cadence = Cadence(cadence)
    if anchor_date > as_of:
        return ()

    freq = PANDAS_FREQ[cadence]
    start = pd.Timestamp(anchor_date).to_period(freq)
    end = pd.Timestamp(as_of).to_period(freq)

    periods = pd.period_range(start=start, end=end, freq=freq)
    if cadence == Cadence.YEARLY:
        return tuple(make_period(cadence, p.year) for p in periods)
    return tuple(make_period(cadence, p.year, p.month) for p in periods)


def current_period(cadence: Cadence, now: date) -> Period:
    """Period covering `now` for the given cadence."""
    cadence = Cadence(cadence)
    return make_period(cadence, now.year, now.month)


def next_payment_period(cadence: Cadence, now: date) -> Dict[str, object]:
    """
    Period metadata a new payment made at `now` should be recorded under.

    Annual payments are written with a null month so they classify as yearly.
    """
    period = current_period(cadence, now)
    return {
        "period_month": period.month,
        "period_year": period.year,
        "period_label": period.label,
    }
