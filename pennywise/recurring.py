from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

SUPPORTED_FREQUENCIES = {"DAILY", "WEEKLY", "MONTHLY", "YEARLY"}
DAY_INTERVALS = {"DAILY": 1, "WEEKLY": 7}
MONTH_INTERVALS = {"MONTHLY": 1, "YEARLY": 12}


@dataclass(frozen=True)
class RecurringExpense:
    id: int
    description: str
    amount: Decimal
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True


@dataclass(frozen=True)
class UpcomingPayment:
    recurring_expense_id: int
    description: str
    amount: Decimal
    frequency: str
    due_date: date


def normalize_frequency(value: str) -> str:
    normalized = "".join(ch for ch in value.strip().upper() if ch.isalpha())
    if normalized not in SUPPORTED_FREQUENCIES:
        raise ValueError("Frequency must be one of DAILY, WEEKLY, MONTHLY, or YEARLY.")
    return normalized


def calculate_next_due_date(start_date: date, frequency: str) -> date:
    return _occurrence(start_date, normalize_frequency(frequency), 1)


def project_due_dates(
    start_date: date,
    frequency: str,
    range_start: date,
    range_end: date,
    end_date: Optional[date] = None,
) -> List[date]:
    if range_start > range_end:
        raise ValueError("range_start must be on or before range_end.")
    normalized = normalize_frequency(frequency)
    last_date = range_end if end_date is None else min(range_end, end_date)

    dates: List[date] = []
    index = _first_index_on_or_after(start_date, normalized, range_start)
    current = _occurrence(start_date, normalized, index)
    while current <= last_date:
        dates.append(current)
        index += 1
        current = _occurrence(start_date, normalized, index)
    return dates


def upcoming_payments(
    expenses: Iterable[RecurringExpense],
    today: date,
    days: int,
) -> List[UpcomingPayment]:
    if days < 0:
        raise ValueError("days must not be negative.")
    window_end = today + timedelta(days=days)
    payments: List[UpcomingPayment] = []
    for expense in expenses:
        if not expense.is_active:
            continue
        for due_date in project_due_dates(
            expense.start_date,
            expense.frequency,
            today,
            window_end,
            end_date=expense.end_date,
        ):
            payments.append(
                UpcomingPayment(
                    recurring_expense_id=expense.id,
                    description=expense.description,
                    amount=expense.amount,
                    frequency=normalize_frequency(expense.frequency),
                    due_date=due_date,
                )
            )
    payments.sort(key=lambda payment: (payment.due_date, payment.recurring_expense_id))
    return payments


def _occurrence(start_date: date, frequency: str, index: int) -> date:
    if frequency in DAY_INTERVALS:
        return start_date + timedelta(days=DAY_INTERVALS[frequency] * index)
    return _add_months(start_date, MONTH_INTERVALS[frequency] * index, start_date.day)


def _first_index_on_or_after(start_date: date, frequency: str, minimum_date: date) -> int:
    if start_date >= minimum_date:
        return 0
    if frequency in DAY_INTERVALS:
        interval = DAY_INTERVALS[frequency]
        days_between = (minimum_date - start_date).days
        return (days_between + interval - 1) // interval
    step = MONTH_INTERVALS[frequency]
    months_between = (minimum_date.year - start_date.year) * 12 + (
        minimum_date.month - start_date.month
    )
    index = months_between // step
    while _occurrence(start_date, frequency, index) < minimum_date:
        index += 1
    return index


def _add_months(start_date: date, months: int, anchor_day: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    last_day = monthrange(year, month)[1]
    day = min(anchor_day, last_day)
    return date(year, month, day)
