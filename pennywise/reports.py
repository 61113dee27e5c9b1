from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable

ZERO = Decimal("0")
HUNDRED = Decimal("100")
SUPPORTED_PERIODS = {"monthly", "weekly"}
TRANSACTION_CSV_HEADERS = ("Date", "Description", "Category", "Amount", "Type")


@dataclass(frozen=True)
class Flow:
    amount: Decimal
    type: str
    date: date


@dataclass(frozen=True)
class CategoryFlow(Flow):
    """A participant share carrying its category, as read for analytics."""

    category_id: int | None = None
    category_name: str = "Uncategorized"
    category_icon: str | None = None
    description: str = ""


@dataclass(frozen=True)
class PeriodTotal:
    total: Decimal
    change: Decimal


@dataclass(frozen=True)
class TransactionSummary:
    income: PeriodTotal
    expenses: PeriodTotal
    balance: PeriodTotal


@dataclass(frozen=True)
class FlowTotals:
    total_income: Decimal
    total_expense: Decimal
    balance: Decimal


def period_ranges(period: str, today: date) -> tuple[date, date, date, date]:
    normalized = period.strip().lower()
    if normalized not in SUPPORTED_PERIODS:
        raise ValueError("Unsupported period. Use 'monthly' or 'weekly'.")
    if normalized == "monthly":
        start = today.replace(day=1)
        end = month_end(today)
        prev_end = start - timedelta(days=1)
        prev_start = prev_end.replace(day=1)
        return start, end, prev_start, prev_end
    # Weeks start on Sunday.
    start = today - timedelta(days=(today.weekday() + 1) % 7)
    end = start + timedelta(days=6)
    return start, end, start - timedelta(days=7), start - timedelta(days=1)


def summarize_transactions(
    flows: Iterable[Flow], period: str, today: date
) -> TransactionSummary:
    start, end, prev_start, prev_end = period_ranges(period, today)
    current = _Accumulator()
    previous = _Accumulator()
    for flow in flows:
        if start <= flow.date <= end:
            current.add(flow)
        elif prev_start <= flow.date <= prev_end:
            previous.add(flow)

    current_balance = current.income - current.expense
    previous_balance = previous.income - previous.expense
    return TransactionSummary(
        income=PeriodTotal(current.income, percent_change(current.income, previous.income)),
        expenses=PeriodTotal(current.expense, percent_change(current.expense, previous.expense)),
        balance=PeriodTotal(current_balance, percent_change(current_balance, previous_balance)),
    )


def total_flows(flows: Iterable[Flow]) -> FlowTotals:
    totals = _Accumulator()
    for flow in flows:
        totals.add(flow)
    return FlowTotals(
        total_income=totals.income,
        total_expense=totals.expense,
        balance=totals.income - totals.expense,
    )


def percent_change(current: Decimal, previous: Decimal) -> Decimal:
    if previous > ZERO:
        return (current - previous) / previous * HUNDRED
    return HUNDRED if current > ZERO else ZERO


class _Accumulator:
    def __init__(self) -> None:
        self.income = ZERO
        self.expense = ZERO

    def add(self, flow: Flow) -> None:
        if is_income(flow):
            self.income += flow.amount
        else:
            self.expense += flow.amount


def month_end(value: date) -> date:
    if value.month == 12:
        return date(value.year, 12, 31)
    return date(value.year, value.month + 1, 1) - timedelta(days=1)


# Analytics over category flows


@dataclass(frozen=True)
class LargestExpense:
    category: str
    amount: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class ExpenseSummary:
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    savings_rate: Decimal
    largest_expense: LargestExpense


@dataclass(frozen=True)
class MonthlyTotals:
    month: str
    month_start: date
    income: Decimal
    expenses: Decimal


@dataclass(frozen=True)
class CategorySlice:
    category_id: int | None
    name: str
    icon: str | None
    value: Decimal
    percentage: Decimal
    color: str


@dataclass(frozen=True)
class MonthlyTrend:
    month: str
    month_start: date
    total: Decimal
    categories: dict[str, Decimal] = field(default_factory=dict)


def is_income(flow: Flow) -> bool:
    return flow.type.strip().lower() == "income"


def expense_summary(flows: Iterable[CategoryFlow]) -> ExpenseSummary:
    """Income, expenses, savings and the single largest expense share.

    The savings rate is ``net / income * 100`` and stays 0 without income.
    Without any expense the largest expense reports ``"N/A"`` with zeros.
    """
    totals = _Accumulator()
    largest: CategoryFlow | None = None
    for flow in flows:
        totals.add(flow)
        if not is_income(flow) and (largest is None or flow.amount > largest.amount):
            largest = flow

    net = totals.income - totals.expense
    savings_rate = net / totals.income * HUNDRED if totals.income > ZERO else ZERO
    if largest is None:
        top = LargestExpense(category="N/A", amount=ZERO, percentage=ZERO)
    else:
        top = LargestExpense(
            category=largest.category_name,
            amount=largest.amount,
            percentage=_share(largest.amount, totals.expense),
        )
    return ExpenseSummary(
        total_income=totals.income,
        total_expenses=totals.expense,
        net_savings=net,
        savings_rate=savings_rate,
        largest_expense=top,
    )


def monthly_income_expense(flows: Iterable[Flow]) -> list[MonthlyTotals]:
    months: dict[date, _Accumulator] = {}
    for flow in flows:
        months.setdefault(flow.date.replace(day=1), _Accumulator()).add(flow)
    return [
        MonthlyTotals(
            month=month_label(start),
            month_start=start,
            income=months[start].income,
            expenses=months[start].expense,
        )
        for start in sorted(months)
    ]


def category_breakdown(flows: Iterable[CategoryFlow]) -> list[CategorySlice]:
    """Expense totals per category, largest first."""
    totals: dict[int | None, Decimal] = {}
    labels: dict[int | None, tuple[str, str | None]] = {}
    for flow in flows:
        if is_income(flow):
            continue
        totals[flow.category_id] = totals.get(flow.category_id, ZERO) + flow.amount
        labels.setdefault(flow.category_id, (flow.category_name, flow.category_icon))

    grand_total = sum(totals.values(), ZERO)
    ordered = sorted(totals, key=lambda key: (-totals[key], labels[key][0]))
    return [
        CategorySlice(
            category_id=key,
            name=labels[key][0],
            icon=labels[key][1],
            value=totals[key],
            percentage=_share(totals[key], grand_total),
            color=f"hsl({index * 137.5 % 360:g}, 70%, 50%)",
        )
        for index, key in enumerate(ordered)
    ]


def monthly_trend(flows: Iterable[CategoryFlow]) -> list[MonthlyTrend]:
    months: dict[date, dict[str, Decimal]] = {}
    for flow in flows:
        if is_income(flow):
            continue
        per_category = months.setdefault(flow.date.replace(day=1), {})
        key = category_key(flow.category_name)
        per_category[key] = per_category.get(key, ZERO) + flow.amount
    return [
        MonthlyTrend(
            month=month_label(start),
            month_start=start,
            total=sum(months[start].values(), ZERO),
            categories=dict(sorted(months[start].items())),
        )
        for start in sorted(months)
    ]


def transactions_csv(flows: Iterable[CategoryFlow]) -> str:
    """Render shares as CSV. Expenses are written as negative amounts."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(TRANSACTION_CSV_HEADERS)
    for flow in flows:
        kind = "income" if is_income(flow) else "expense"
        amount = flow.amount if kind == "income" else -flow.amount
        writer.writerow(
            [flow.date.isoformat(), flow.description, flow.category_name, str(amount), kind]
        )
    return buffer.getvalue()


def summary_csv(summary: ExpenseSummary) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n", quoting=csv.QUOTE_ALL)
    largest = summary.largest_expense
    writer.writerows(
        [
            ("Metric", "Value"),
            ("Total Income", str(summary.total_income)),
            ("Total Expenses", str(summary.total_expenses)),
            ("Net Savings", str(summary.net_savings)),
            ("Savings Rate", f"{summary.savings_rate:.2f}%"),
            ("Largest Expense Category", largest.category),
            ("Largest Expense Amount", str(largest.amount)),
            ("Largest Expense Percentage", f"{largest.percentage:.2f}%"),
        ]
    )
    return buffer.getvalue()


def month_label(value: date) -> str:
    return f"{value:%b} {value.year}"


def category_key(name: str) -> str:
    return "".join(name.lower().split())


def _share(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * HUNDRED if whole > ZERO else ZERO
