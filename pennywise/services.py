"""Service boundary used by the HTTP layer and any other in-process caller.

Each function resolves the current user, runs one unit of work inside
``engine.begin()`` and returns a result model carrying ``success`` and
``message``. Failures never propagate as exceptions: they are logged and turned
into ``success=False`` results with an ``error`` code.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, Union

import bcrypt
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from pennywise import entities, friends
from pennywise.budget_spending import (
    Budget,
    BudgetSpending,
    SpendRecord,
    compute_budget_spending,
    summarize_budgets,
)
from pennywise.errors import (
    Conflict,
    InvalidArgument,
    ServiceError,
    Unauthenticated,
    get_error_message,
)
from pennywise.models import TransactionPayload, UserResponse
from pennywise.pager import normalize_page_request
from pennywise.recurring import RecurringExpense, upcoming_payments
from pennywise.reports import (
    CategoryFlow,
    Flow,
    category_breakdown,
    expense_summary,
    month_end,
    monthly_income_expense,
    monthly_trend,
    period_ranges,
    summarize_transactions,
    summary_csv,
    transactions_csv,
)
from pennywise.schema import (
    budgets,
    categories,
    payment_methods,
    recurring_expenses,
    transaction_participants,
    transactions,
    users,
)

logger = logging.getLogger(__name__)

IdentityProvider = Union[Callable[[], Optional[Any]], int, None]

SCAN_PAYMENT_METHOD = ("UPI", "💳")
SCAN_CATEGORY = ("General", "EXPENSE", "💰")
EXPORT_LIMIT = 10000
EXPORT_ORDERINGS = {
    "date-desc": (transactions.c.date.desc(),),
    "date-asc": (transactions.c.date.asc(),),
    "amount-desc": (transaction_participants.c.amount.desc(),),
    "amount-asc": (transaction_participants.c.amount.asc(),),
}


class ServiceResult(BaseModel):
    success: bool
    message: str
    error: str | None = None


class EntityResult(ServiceResult):
    entity: Any = None


class DeleteResult(ServiceResult):
    entity_id: int | None = None


class ListResult(ServiceResult):
    items: list[Any] = Field(default_factory=list)
    next_cursor: int | None = None
    total_count: int = 0
    summary: dict[str, Decimal] | None = None


class BudgetSpendingEntry(BaseModel):
    budget_id: int
    category_id: int
    category_name: str | None = None
    budgeted_amount: Decimal
    spent_amount: Decimal
    percentage_used: Decimal
    remaining_amount: Decimal
    is_over_budget: bool
    is_near_limit: bool


class BudgetSpendingResult(ServiceResult):
    budgets: list[BudgetSpendingEntry] = Field(default_factory=list)


class CategoryUsageEntry(BaseModel):
    name: str | None = None
    budgeted: Decimal
    spent: Decimal
    percentage: Decimal


class BudgetSummaryEntry(BaseModel):
    total_budgeted: Decimal
    total_spent: Decimal
    percentage_used: Decimal
    remaining_days: int
    over_budget_categories: list[CategoryUsageEntry] = Field(default_factory=list)
    near_limit_categories: list[CategoryUsageEntry] = Field(default_factory=list)


class BudgetSummaryResult(ServiceResult):
    summary: BudgetSummaryEntry | None = None


class UpcomingPaymentEntry(BaseModel):
    recurring_expense_id: int
    description: str
    amount: Decimal
    frequency: str
    due_date: date


class UpcomingPaymentsResult(ServiceResult):
    payments: list[UpcomingPaymentEntry] = Field(default_factory=list)


class PeriodTotalEntry(BaseModel):
    total: Decimal
    change: Decimal


class TransactionSummaryEntry(BaseModel):
    income: PeriodTotalEntry
    expenses: PeriodTotalEntry
    balance: PeriodTotalEntry


class TransactionSummaryResult(ServiceResult):
    summary: TransactionSummaryEntry | None = None


class FriendsResult(ServiceResult):
    friends: list[dict[str, Any]] = Field(default_factory=list)
    received_requests: list[dict[str, Any]] = Field(default_factory=list)
    sent_requests: list[dict[str, Any]] = Field(default_factory=list)


class FriendRequestResult(ServiceResult):
    request: dict[str, Any] | None = None


class UserSearchResult(ServiceResult):
    users: list[dict[str, Any]] = Field(default_factory=list)


class UserResult(ServiceResult):
    user: UserResponse | None = None


class LargestExpenseEntry(BaseModel):
    category: str
    amount: Decimal
    percentage: Decimal


class ExpenseSummaryEntry(BaseModel):
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal
    savings_rate: Decimal
    largest_expense: LargestExpenseEntry


class ExpenseSummaryResult(ServiceResult):
    summary: ExpenseSummaryEntry | None = None


class MonthlyTotalsEntry(BaseModel):
    month: str
    month_start: date
    income: Decimal
    expenses: Decimal


class IncomeExpenseChartResult(ServiceResult):
    months: list[MonthlyTotalsEntry] = Field(default_factory=list)


class CategorySliceEntry(BaseModel):
    category_id: int | None = None
    name: str
    icon: str | None = None
    value: Decimal
    percentage: Decimal
    color: str


class CategoryBreakdownResult(ServiceResult):
    categories: list[CategorySliceEntry] = Field(default_factory=list)


class MonthlyTrendEntry(BaseModel):
    month: str
    month_start: date
    total: Decimal
    categories: dict[str, Decimal] = Field(default_factory=dict)


class MonthlyTrendResult(ServiceResult):
    months: list[MonthlyTrendEntry] = Field(default_factory=list)


class ExportResult(ServiceResult):
    csv_content: str | None = None
    summary: ExpenseSummaryEntry | None = None


# Identity and failures


def resolve_user_id(conn: Connection, identity: IdentityProvider) -> int:
    try:
        raw = identity() if callable(identity) else identity
        user_id = int(raw) if raw is not None else None
    except Exception as exc:
        raise Unauthenticated("User not authenticated.") from exc
    if user_id is None:
        raise Unauthenticated("User not authenticated.")
    found = conn.execute(select(users.c.id).where(users.c.id == user_id)).first()
    if not found:
        raise Unauthenticated("User not authenticated.")
    return user_id


def _failed(result_type: type[ServiceResult], action: str, exc: Exception) -> Any:
    if isinstance(exc, ValidationError):
        exc = InvalidArgument(_validation_message(exc))
    elif isinstance(exc, ValueError):
        exc = InvalidArgument(get_error_message(exc, "Invalid input."))
    if isinstance(exc, ServiceError):
        logger.warning("Could not %s: %s", action, exc.message)
        return result_type(success=False, message=exc.message, error=exc.code)
    logger.exception("Failed to %s", action)
    return result_type(success=False, message=f"Failed to {action}.", error="internal")


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid input."
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "Invalid input.")
    return f"{location}: {message}" if location else message


# Generic entity operations


def list_entities(
    engine: Engine,
    identity: IdentityProvider,
    kind: str,
    cursor: int | str | None = None,
    page_size: int | None = None,
    filters: Any = None,
) -> ListResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            descriptor = entities.get_descriptor(kind)
            request = normalize_page_request(cursor, page_size)
            page, summary = entities.list_page(conn, descriptor, user_id, request, filters)
    except Exception as exc:
        return _failed(ListResult, f"fetch {_readable(kind)} list", exc)
    return ListResult(
        success=True,
        message=f"{_plural(descriptor.label)} fetched successfully.",
        items=page.items,
        next_cursor=page.next_cursor,
        total_count=page.total_count,
        summary=summary,
    )


def get_entity(
    engine: Engine, identity: IdentityProvider, kind: str, entity_id: int
) -> EntityResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            descriptor = entities.get_descriptor(kind)
            entity = entities.get_entity(conn, descriptor, user_id, entity_id)
    except Exception as exc:
        return _failed(EntityResult, f"fetch {_readable(kind)}", exc)
    return EntityResult(
        success=True, message=f"{descriptor.label} fetched successfully.", entity=entity
    )


def create_entity(
    engine: Engine, identity: IdentityProvider, kind: str, payload: Any
) -> EntityResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            descriptor = entities.get_descriptor(kind)
            entity = entities.create_entity(conn, descriptor, user_id, payload)
    except Exception as exc:
        return _failed(EntityResult, f"create {_readable(kind)}", exc)
    logger.info("Created %s %s for user %s", kind, entity.id, user_id)
    return EntityResult(
        success=True, message=f"{descriptor.label} created successfully.", entity=entity
    )


def update_entity(
    engine: Engine,
    identity: IdentityProvider,
    kind: str,
    entity_id: int,
    payload: Any,
) -> EntityResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            descriptor = entities.get_descriptor(kind)
            entity = entities.update_entity(conn, descriptor, user_id, entity_id, payload)
    except Exception as exc:
        return _failed(EntityResult, f"update {_readable(kind)}", exc)
    return EntityResult(
        success=True, message=f"{descriptor.label} updated successfully.", entity=entity
    )


def delete_entity(
    engine: Engine, identity: IdentityProvider, kind: str, entity_id: int
) -> DeleteResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            descriptor = entities.get_descriptor(kind)
            entities.delete_entity(conn, descriptor, user_id, entity_id)
    except Exception as exc:
        return _failed(DeleteResult, f"delete {_readable(kind)}", exc)
    logger.info("Deleted %s %s for user %s", kind, entity_id, user_id)
    return DeleteResult(
        success=True,
        message=f"{descriptor.label} deleted successfully.",
        entity_id=entity_id,
    )


def _plural(label: str) -> str:
    if label.endswith("y"):
        return label[:-1] + "ies"
    return label + "s"


def _readable(kind: str) -> str:
    return kind.strip().lower().replace("-", " ").replace("_", " ")


# Budgets


def get_budget_spending(engine: Engine, identity: IdentityProvider) -> BudgetSpendingResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            spending = _budget_spending(conn, user_id)
    except Exception as exc:
        return _failed(BudgetSpendingResult, "calculate budget spending", exc)
    return BudgetSpendingResult(
        success=True,
        message="Budget spending calculated successfully.",
        budgets=[BudgetSpendingEntry.model_validate(asdict(entry)) for entry in spending],
    )


def get_budget_summary(
    engine: Engine, identity: IdentityProvider, today: date | None = None
) -> BudgetSummaryResult:
    today = today or date.today()
    month_start = today.replace(day=1)
    period_end = month_end(today)
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            spending = _budget_spending(
                conn,
                user_id,
                budgets.c.start_date <= period_end,
                budgets.c.end_date >= month_start,
            )
    except Exception as exc:
        return _failed(BudgetSummaryResult, "summarize budgets", exc)
    summary = summarize_budgets(spending, today, period_end)
    return BudgetSummaryResult(
        success=True,
        message="Budget summary calculated successfully.",
        summary=BudgetSummaryEntry.model_validate(asdict(summary)),
    )


def _budget_spending(conn: Connection, user_id: int, *conditions) -> list[BudgetSpending]:
    budget_rows = conn.execute(
        select(budgets, categories.c.name.label("category_name"))
        .select_from(budgets.join(categories, categories.c.id == budgets.c.category_id))
        .where(budgets.c.user_id == user_id, *conditions)
        .order_by(budgets.c.id.desc())
    ).mappings().all()
    if not budget_rows:
        return []

    budget_items = [
        Budget(
            id=row["id"],
            category_id=row["category_id"],
            amount=row["amount"],
            start_date=row["start_date"],
            end_date=row["end_date"],
            category_name=row["category_name"],
        )
        for row in budget_rows
    ]
    category_ids = sorted({item.category_id for item in budget_items})
    record_rows = conn.execute(
        select(
            transaction_participants.c.amount,
            transaction_participants.c.type,
            transaction_participants.c.category_id,
            transactions.c.date,
            transactions.c.is_deleted,
        )
        .select_from(
            transaction_participants.join(
                transactions, transactions.c.id == transaction_participants.c.transaction_id
            )
        )
        .where(
            transactions.c.creator_id == user_id,
            transaction_participants.c.user_id == user_id,
            transaction_participants.c.type == "EXPENSE",
            transaction_participants.c.category_id.in_(category_ids),
            transactions.c.is_deleted.is_(False),
            transactions.c.date >= min(item.start_date for item in budget_items),
            transactions.c.date <= max(item.end_date for item in budget_items),
        )
    ).mappings().all()
    records = [SpendRecord(**row) for row in record_rows]
    return compute_budget_spending(budget_items, records)


# Recurring expenses


def toggle_recurring_expense(
    engine: Engine, identity: IdentityProvider, expense_id: int
) -> EntityResult:
    descriptor = entities.RECURRING_EXPENSE
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            row = entities.get_row(conn, descriptor, user_id, expense_id)
            conn.execute(
                update(recurring_expenses)
                .where(
                    recurring_expenses.c.id == expense_id,
                    recurring_expenses.c.user_id == user_id,
                )
                .values(is_active=not row["is_active"], updated_at=func.now())
            )
            entity = entities.get_entity(conn, descriptor, user_id, expense_id)
    except Exception as exc:
        return _failed(EntityResult, "toggle recurring expense", exc)
    state = "activated" if entity.is_active else "deactivated"
    return EntityResult(
        success=True, message=f"Recurring expense {state} successfully.", entity=entity
    )


def get_upcoming_payments(
    engine: Engine,
    identity: IdentityProvider,
    today: date | None = None,
    days: int = 30,
) -> UpcomingPaymentsResult:
    today = today or date.today()
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            rows = conn.execute(
                select(recurring_expenses).where(
                    recurring_expenses.c.user_id == user_id,
                    recurring_expenses.c.is_deleted.is_(False),
                    recurring_expenses.c.is_active.is_(True),
                )
            ).mappings().all()
        expenses = [
            RecurringExpense(
                id=row["id"],
                description=row["description"],
                amount=row["amount"],
                frequency=row["frequency"],
                start_date=row["start_date"],
                end_date=row["end_date"],
                is_active=row["is_active"],
            )
            for row in rows
        ]
        payments = upcoming_payments(expenses, today, days)
    except Exception as exc:
        return _failed(UpcomingPaymentsResult, "list upcoming payments", exc)
    return UpcomingPaymentsResult(
        success=True,
        message="Upcoming payments fetched successfully.",
        payments=[UpcomingPaymentEntry.model_validate(asdict(item)) for item in payments],
    )


# Transactions


def get_transaction_summary(
    engine: Engine,
    identity: IdentityProvider,
    period: str = "monthly",
    today: date | None = None,
) -> TransactionSummaryResult:
    today = today or date.today()
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            start, end, prev_start, _ = period_ranges(period, today)
            rows = conn.execute(
                select(
                    transaction_participants.c.amount,
                    transaction_participants.c.type,
                    transactions.c.date,
                )
                .select_from(
                    transaction_participants.join(
                        transactions,
                        transactions.c.id == transaction_participants.c.transaction_id,
                    )
                )
                .where(
                    transactions.c.creator_id == user_id,
                    transaction_participants.c.user_id == user_id,
                    transactions.c.is_deleted.is_(False),
                    transactions.c.date >= prev_start,
                    transactions.c.date <= end,
                )
            ).mappings().all()
        summary = summarize_transactions((Flow(**row) for row in rows), period, today)
    except Exception as exc:
        return _failed(TransactionSummaryResult, "fetch transaction summary", exc)
    return TransactionSummaryResult(
        success=True,
        message="Transaction summary fetched successfully.",
        summary=TransactionSummaryEntry.model_validate(asdict(summary)),
    )


def create_scan_transaction(
    engine: Engine, identity: IdentityProvider, payload: Any
) -> EntityResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            if not isinstance(payload, TransactionPayload):
                payload = TransactionPayload.model_validate(payload)
            for participant in payload.participants:
                if participant.payment_method_id is None:
                    participant.payment_method_id = _ensure_scan_payment_method(conn, user_id)
                if participant.category_id is None:
                    participant.category_id = _ensure_scan_category(conn, user_id)
            entity = entities.create_entity(conn, entities.TRANSACTION, user_id, payload)
    except Exception as exc:
        return _failed(EntityResult, "create scan transaction", exc)
    return EntityResult(
        success=True, message="Transaction created successfully.", entity=entity
    )


def _ensure_scan_payment_method(conn: Connection, user_id: int) -> int:
    name, icon = SCAN_PAYMENT_METHOD
    existing = conn.execute(
        select(payment_methods.c.id).where(
            payment_methods.c.user_id == user_id, payment_methods.c.name == name
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    result = conn.execute(
        insert(payment_methods).values(user_id=user_id, name=name, icon=icon)
    )
    return result.inserted_primary_key[0]


def _ensure_scan_category(conn: Connection, user_id: int) -> int:
    name, category_type, icon = SCAN_CATEGORY
    existing = conn.execute(
        select(categories.c.id).where(
            categories.c.user_id == user_id,
            categories.c.name == name,
            categories.c.type == category_type,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    result = conn.execute(
        insert(categories).values(
            user_id=user_id, name=name, type=category_type, icon=icon
        )
    )
    return result.inserted_primary_key[0]


# Analytics


def get_expense_summary(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
) -> ExpenseSummaryResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            flows = _category_flows(conn, user_id, start_date, end_date)
        summary = expense_summary(flows)
    except Exception as exc:
        return _failed(ExpenseSummaryResult, "fetch expense summary", exc)
    return ExpenseSummaryResult(
        success=True,
        message="Expense summary fetched successfully.",
        summary=ExpenseSummaryEntry.model_validate(asdict(summary)),
    )


def get_income_expense_chart(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
) -> IncomeExpenseChartResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            flows = _category_flows(conn, user_id, start_date, end_date)
        months = monthly_income_expense(flows)
    except Exception as exc:
        return _failed(IncomeExpenseChartResult, "fetch income and expense data", exc)
    return IncomeExpenseChartResult(
        success=True,
        message="Income and expense data fetched successfully.",
        months=[MonthlyTotalsEntry.model_validate(asdict(item)) for item in months],
    )


def get_category_breakdown(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = None,
) -> CategoryBreakdownResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            flows = _category_flows(
                conn, user_id, start_date, end_date, category_ids=category_ids
            )
        slices = category_breakdown(flows)
    except Exception as exc:
        return _failed(CategoryBreakdownResult, "fetch category breakdown", exc)
    return CategoryBreakdownResult(
        success=True,
        message="Category breakdown fetched successfully.",
        categories=[CategorySliceEntry.model_validate(asdict(item)) for item in slices],
    )


def get_monthly_trend(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = None,
) -> MonthlyTrendResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            flows = _category_flows(
                conn, user_id, start_date, end_date, category_ids=category_ids
            )
        months = monthly_trend(flows)
    except Exception as exc:
        return _failed(MonthlyTrendResult, "fetch monthly trend", exc)
    return MonthlyTrendResult(
        success=True,
        message="Monthly trend fetched successfully.",
        months=[MonthlyTrendEntry.model_validate(asdict(item)) for item in months],
    )


def export_transactions_csv(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = None,
    search_term: str | None = None,
    sort_by: str = "date-desc",
) -> ExportResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            if sort_by not in EXPORT_ORDERINGS:
                raise InvalidArgument(
                    "Unsupported sort order. Use one of: "
                    + ", ".join(sorted(EXPORT_ORDERINGS))
                    + "."
                )
            flows = _category_flows(
                conn,
                user_id,
                start_date,
                end_date,
                category_ids=category_ids,
                search_term=search_term,
                order_by=EXPORT_ORDERINGS[sort_by],
                limit=EXPORT_LIMIT,
            )
        content = transactions_csv(flows)
    except Exception as exc:
        return _failed(ExportResult, "export transactions", exc)
    return ExportResult(
        success=True, message="Transactions exported successfully.", csv_content=content
    )


def export_analytics_summary(
    engine: Engine,
    identity: IdentityProvider,
    start_date: date | None = None,
    end_date: date | None = None,
) -> ExportResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            flows = _category_flows(conn, user_id, start_date, end_date)
        summary = expense_summary(flows)
        content = summary_csv(summary)
    except Exception as exc:
        return _failed(ExportResult, "export analytics summary", exc)
    return ExportResult(
        success=True,
        message="Analytics summary exported successfully.",
        csv_content=content,
        summary=ExpenseSummaryEntry.model_validate(asdict(summary)),
    )


def _category_flows(
    conn: Connection,
    user_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = None,
    search_term: str | None = None,
    order_by: tuple = (transactions.c.date.asc(),),
    limit: int | None = None,
) -> list[CategoryFlow]:
    """Load the caller's own shares of live transactions, joined to their category."""
    if start_date and end_date and start_date > end_date:
        raise InvalidArgument("Start date must be on or before end date.")
    tp = transaction_participants
    query = (
        select(
            tp.c.amount,
            tp.c.type,
            transactions.c.date,
            tp.c.category_id,
            categories.c.name.label("category_name"),
            categories.c.icon.label("category_icon"),
            func.coalesce(tp.c.description, transactions.c.description).label("description"),
        )
        .select_from(
            tp.join(transactions, transactions.c.id == tp.c.transaction_id).join(
                categories, categories.c.id == tp.c.category_id
            )
        )
        .where(tp.c.user_id == user_id, transactions.c.is_deleted.is_(False))
        .order_by(*order_by, tp.c.id.desc())
    )
    if start_date:
        query = query.where(transactions.c.date >= start_date)
    if end_date:
        query = query.where(transactions.c.date <= end_date)
    if category_ids:
        query = query.where(tp.c.category_id.in_(category_ids))
    if search_term and search_term.strip():
        query = query.where(
            func.lower(transactions.c.description).contains(
                search_term.strip().lower(), autoescape=True
            )
        )
    if limit is not None:
        query = query.limit(limit)
    return [CategoryFlow(**row) for row in conn.execute(query).mappings()]


# Friends


def send_friend_request(
    engine: Engine, identity: IdentityProvider, receiver_email: str
) -> FriendRequestResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            request = friends.send_request(conn, user_id, receiver_email)
    except Exception as exc:
        return _failed(FriendRequestResult, "send friend request", exc)
    return FriendRequestResult(
        success=True, message="Friend request sent successfully.", request=request
    )


def respond_to_friend_request(
    engine: Engine, identity: IdentityProvider, request_id: int, accept: bool
) -> FriendRequestResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            request = friends.respond_to_request(conn, user_id, request_id, accept)
    except Exception as exc:
        return _failed(FriendRequestResult, "respond to friend request", exc)
    verb = "accepted" if accept else "rejected"
    return FriendRequestResult(
        success=True, message=f"Friend request {verb} successfully.", request=request
    )


def remove_friend(
    engine: Engine, identity: IdentityProvider, friend_id: int
) -> ServiceResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            friends.remove(conn, user_id, friend_id)
    except Exception as exc:
        return _failed(ServiceResult, "remove friend", exc)
    return ServiceResult(success=True, message="Friend removed successfully.")


def list_friends(engine: Engine, identity: IdentityProvider) -> FriendsResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            listing = friends.list_all(conn, user_id)
    except Exception as exc:
        return _failed(FriendsResult, "list friends", exc)
    return FriendsResult(success=True, message="Friends fetched successfully.", **listing)


def search_users(engine: Engine, identity: IdentityProvider, query: str) -> UserSearchResult:
    try:
        with engine.begin() as conn:
            user_id = resolve_user_id(conn, identity)
            found = friends.search_users(conn, user_id, query)
    except Exception as exc:
        return _failed(UserSearchResult, "search users", exc)
    return UserSearchResult(success=True, message="Users fetched successfully.", users=found)


# Users


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def register_user(
    engine: Engine, email: str, password: str, name: str | None = None
) -> UserResult:
    try:
        normalized = email.strip().lower()
        if not normalized or not password:
            raise InvalidArgument("Email and password required.")
        try:
            with engine.begin() as conn:
                result = conn.execute(
                    insert(users).values(
                        email=normalized,
                        name=name.strip() if name and name.strip() else None,
                        hashed_password=hash_password(password),
                    )
                )
                user_id = result.inserted_primary_key[0]
                row = conn.execute(select(users).where(users.c.id == user_id)).mappings().first()
        except IntegrityError as exc:
            raise Conflict("Email already exists.") from exc
    except Exception as exc:
        return _failed(UserResult, "register user", exc)
    return UserResult(
        success=True,
        message="User registered successfully.",
        user=UserResponse.model_validate(dict(row)),
    )


def authenticate(engine: Engine, email: str, password: str) -> UserResult:
    try:
        with engine.begin() as conn:
            row = conn.execute(
                select(users).where(users.c.email == email.strip().lower())
            ).mappings().first()
        if not row or not verify_password(password, row["hashed_password"]):
            raise Unauthenticated("Invalid credentials.")
    except Exception as exc:
        return _failed(UserResult, "authenticate user", exc)
    return UserResult(
        success=True,
        message="Logged in successfully.",
        user=UserResponse.model_validate(dict(row)),
    )
