"""
Calendar Module - Settlement and Fiscal Year Arithmetic

PSX trades settle T+2: two business days after the trade date, where only
Saturday and Sunday are skipped (no exchange holiday calendar). The settlement
date, not the trade date, is the acquisition/disposal date used for holding
periods.

The Pakistani fiscal (tax) year runs 1 July - 30 June and is named after the
calendar year in which it ends: tax year 2025 = 2024-07-01 .. 2025-06-30.

Copyright (c) 2026 Andreas Wagner. All rights reserved.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Tuple

SETTLEMENT_BUSINESS_DAYS = 2
FISCAL_YEAR_START_MONTH = 7  # July

# date.weekday(): Monday=0 ... Saturday=5, Sunday=6
WEEKEND_DAYS = frozenset({5, 6})


def is_business_day(day: date) -> bool:
    """True for Monday through Friday."""
    return day.weekday() not in WEEKEND_DAYS


def add_business_days(start: date, business_days: int) -> date:
    """
    Step forward one calendar day at a time until `business_days` weekdays
    have been counted. The start date itself is never counted.
    """
    current = start
    counted = 0
    while counted < business_days:
        current += timedelta(days=1)
        if is_business_day(current):
            counted += 1
    return current


def settlement_date(trade_date: date) -> date:
    """
    T+2 settlement date for a trade.

    Example:
        >>> settlement_date(date(2025, 1, 1))   # Wednesday
        datetime.date(2025, 1, 3)
        >>> settlement_date(date(2025, 1, 2))   # Thursday -> skips weekend
        datetime.date(2025, 1, 6)
    """
    return add_business_days(trade_date, SETTLEMENT_BUSINESS_DAYS)


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end (negative if end precedes start)."""
    return (end - start).days


@dataclass(frozen=True)
class HoldingPeriod:
    """Holding period between acquisition and disposal settlement dates."""
    days: int
    months: int
    years: int

    @property
    def is_long_term(self) -> bool:
        return self.days >= 365

    def formatted(self) -> str:
        return f"{self.years}y {self.months % 12}m ({self.days} days)"


def holding_period(acquired: date, disposed: date) -> HoldingPeriod:
    """Days, whole months and whole calendar years between two dates."""
    years = disposed.year - acquired.year
    months = disposed.month - acquired.month
    if disposed.day < acquired.day:
        months -= 1
    if months < 0:
        years -= 1
        months += 12
    return HoldingPeriod(
        days=days_between(acquired, disposed),
        months=months + years * 12,
        years=years,
    )


def fiscal_year_bounds(day: date) -> Tuple[date, date]:
    """First and last day of the fiscal year containing `day`."""
    if day.month >= FISCAL_YEAR_START_MONTH:
        start_year = day.year
    else:
        start_year = day.year - 1
    start = date(start_year, FISCAL_YEAR_START_MONTH, 1)
    end = date(start_year + 1, FISCAL_YEAR_START_MONTH, 1) - timedelta(days=1)
    return start, end


def tax_year_bounds(tax_year: int) -> Tuple[date, date]:
    """Bounds of the fiscal year that ends in `tax_year`."""
    return fiscal_year_bounds(date(tax_year, 1, 1))


def tax_year_for(day: date) -> int:
    """Tax year (fiscal year end) a date falls in."""
    return fiscal_year_bounds(day)[1].year
