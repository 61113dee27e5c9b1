from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
NEAR_LIMIT_PERCENTAGE = Decimal("80")
ONE_DECIMAL = Decimal("0.1")


@dataclass(frozen=True)
class Budget:
    id: int
    category_id: int
    amount: Decimal
    start_date: date
    end_date: date
    category_name: Optional[str] = None


@dataclass(frozen=True)
class SpendRecord:
    """One participant share together with the parent transaction's date."""

    amount: Decimal
    type: str
    category_id: int
    date: date
    is_deleted: bool = False


@dataclass(frozen=True)
class BudgetSpending:
    budget_id: int
    category_id: int
    category_name: Optional[str]
    budgeted_amount: Decimal
    spent_amount: Decimal
    percentage_used: Decimal
    remaining_amount: Decimal
    is_over_budget: bool
    is_near_limit: bool


@dataclass(frozen=True)
class CategoryUsage:
    name: Optional[str]
    budgeted: Decimal
    spent: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class BudgetSummary:
    total_budgeted: Decimal
    total_spent: Decimal
    percentage_used: Decimal
    remaining_days: int
    over_budget_categories: list[CategoryUsage] = field(default_factory=list)
    near_limit_categories: list[CategoryUsage] = field(default_factory=list)


def compute_budget_spending(
    budgets: Iterable[Budget],
    records: Iterable[SpendRecord],
) -> list[BudgetSpending]:
    materialized = list(records)
    return [evaluate_budget(budget, materialized) for budget in budgets]


def evaluate_budget(budget: Budget, records: Iterable[SpendRecord]) -> BudgetSpending:
    if budget.start_date > budget.end_date:
        raise ValueError("start_date must be on or before end_date.")

    budgeted = _coerce_amount(budget.amount)
    spent = _sum_expenses(
        records,
        category_id=budget.category_id,
        start_date=budget.start_date,
        end_date=budget.end_date,
    )
    percentage = percentage_used(spent, budgeted)
    return BudgetSpending(
        budget_id=budget.id,
        category_id=budget.category_id,
        category_name=budget.category_name,
        budgeted_amount=budgeted,
        spent_amount=spent,
        percentage_used=percentage,
        remaining_amount=budgeted - spent,
        is_over_budget=is_over_budget(percentage),
        is_near_limit=is_near_limit(percentage),
    )


def percentage_used(spent: Decimal, budgeted: Decimal) -> Decimal:
    # A zero budget reports 0% rather than dividing by zero.
    if budgeted <= ZERO:
        return ZERO
    return spent / budgeted * HUNDRED


def is_over_budget(percentage: Decimal) -> bool:
    return percentage >= HUNDRED


def is_near_limit(percentage: Decimal) -> bool:
    return NEAR_LIMIT_PERCENTAGE <= percentage < HUNDRED


def summarize_budgets(
    spending: Iterable[BudgetSpending],
    today: date,
    period_end: date,
) -> BudgetSummary:
    total_budgeted = ZERO
    total_spent = ZERO
    over_budget: list[CategoryUsage] = []
    near_limit: list[CategoryUsage] = []

    for entry in spending:
        total_budgeted += entry.budgeted_amount
        total_spent += entry.spent_amount
        usage = CategoryUsage(
            name=entry.category_name,
            budgeted=entry.budgeted_amount,
            spent=entry.spent_amount,
            percentage=round_percentage(entry.percentage_used),
        )
        if entry.is_over_budget:
            over_budget.append(usage)
        elif entry.is_near_limit:
            near_limit.append(usage)

    return BudgetSummary(
        total_budgeted=total_budgeted,
        total_spent=total_spent,
        percentage_used=round_percentage(percentage_used(total_spent, total_budgeted)),
        remaining_days=max((period_end - today).days, 0),
        over_budget_categories=over_budget,
        near_limit_categories=near_limit,
    )


def round_percentage(value: Decimal) -> Decimal:
    return value.quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def _sum_expenses(
    records: Iterable[SpendRecord],
    *,
    category_id: int,
    start_date: date,
    end_date: date,
) -> Decimal:
    total = ZERO
    for record in records:
        if record.is_deleted or _normalize_type(record.type) != "expense":
            continue
        if record.category_id != category_id:
            continue
        if not start_date <= record.date <= end_date:
            continue
        total += _coerce_amount(record.amount)
    return total


def _normalize_type(value: str) -> str:
    return value.strip().lower()


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
