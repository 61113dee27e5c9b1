from datetime import date
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from pennywise import services
from pennywise.config import DATABASE_URL, FRONTEND_ORIGIN, configure_logging
from pennywise.models import (
    BudgetPayload,
    CategoryPayload,
    PaymentMethodPayload,
    RecurringExpensePayload,
    TagPayload,
    TransactionPayload,
)
from pennywise.schema import create_db_engine, init_db

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

engine = create_db_engine(DATABASE_URL)

STATUS_BY_ERROR = {
    "unauthenticated": 401,
    "invalid_argument": 400,
    "not_found": 404,
    "conflict": 409,
}


@app.on_event("startup")
def startup() -> None:
    configure_logging()
    init_db(engine)


class CredentialsPayload(BaseModel):
    email: str
    password: str
    name: str | None = None


class FriendRequestPayload(BaseModel):
    email: str


def header_identity(x_user_id: str | None):
    return lambda: x_user_id


def raise_for_result(result: services.ServiceResult) -> services.ServiceResult:
    if not result.success:
        status_code = STATUS_BY_ERROR.get(result.error or "", 500)
        raise HTTPException(status_code=status_code, detail=result.message)
    return result


def list_kind(kind: str, x_user_id, cursor, page_size, filters=None):
    return raise_for_result(
        services.list_entities(
            engine,
            header_identity(x_user_id),
            kind,
            cursor=cursor,
            page_size=page_size,
            filters=filters,
        )
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/auth/signup", response_model=services.UserResult)
def signup(payload: CredentialsPayload):
    return raise_for_result(
        services.register_user(engine, payload.email, payload.password, payload.name)
    )


@app.post("/auth/login", response_model=services.UserResult)
def login(payload: CredentialsPayload):
    return raise_for_result(services.authenticate(engine, payload.email, payload.password))


# Categories


@app.get("/categories", response_model=services.ListResult)
def list_categories(
    cursor: str | None = None,
    page_size: int | None = None,
    name: str | None = None,
    type: str | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return list_kind(
        "category", x_user_id, cursor, page_size, {"name": name, "type": type}
    )


@app.post("/categories", response_model=services.EntityResult)
def create_category(
    payload: CategoryPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "category", payload)
    )


@app.get("/categories/{category_id}", response_model=services.EntityResult)
def get_category(category_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "category", category_id)
    )


@app.put("/categories/{category_id}", response_model=services.EntityResult)
def update_category(
    category_id: int,
    payload: CategoryPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.update_entity(
            engine, header_identity(x_user_id), "category", category_id, payload
        )
    )


@app.delete("/categories/{category_id}", response_model=services.DeleteResult)
def delete_category(
    category_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.delete_entity(engine, header_identity(x_user_id), "category", category_id)
    )


# Tags


@app.get("/tags", response_model=services.ListResult)
def list_tags(
    cursor: str | None = None,
    page_size: int | None = None,
    name: str | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return list_kind("tag", x_user_id, cursor, page_size, {"name": name})


@app.post("/tags", response_model=services.EntityResult)
def create_tag(payload: TagPayload, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "tag", payload)
    )


@app.get("/tags/{tag_id}", response_model=services.EntityResult)
def get_tag(tag_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "tag", tag_id)
    )


@app.put("/tags/{tag_id}", response_model=services.EntityResult)
def update_tag(
    tag_id: int, payload: TagPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.update_entity(engine, header_identity(x_user_id), "tag", tag_id, payload)
    )


@app.delete("/tags/{tag_id}", response_model=services.DeleteResult)
def delete_tag(tag_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.delete_entity(engine, header_identity(x_user_id), "tag", tag_id)
    )


# Payment methods


@app.get("/payment-methods", response_model=services.ListResult)
def list_payment_methods(
    cursor: str | None = None,
    page_size: int | None = None,
    name: str | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return list_kind("payment_method", x_user_id, cursor, page_size, {"name": name})


@app.post("/payment-methods", response_model=services.EntityResult)
def create_payment_method(
    payload: PaymentMethodPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "payment_method", payload)
    )


@app.get("/payment-methods/{method_id}", response_model=services.EntityResult)
def get_payment_method(method_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "payment_method", method_id)
    )


@app.put("/payment-methods/{method_id}", response_model=services.EntityResult)
def update_payment_method(
    method_id: int,
    payload: PaymentMethodPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.update_entity(
            engine, header_identity(x_user_id), "payment_method", method_id, payload
        )
    )


@app.delete("/payment-methods/{method_id}", response_model=services.DeleteResult)
def delete_payment_method(
    method_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.delete_entity(engine, header_identity(x_user_id), "payment_method", method_id)
    )


# Budgets


@app.get("/budgets", response_model=services.ListResult)
def list_budgets(
    cursor: str | None = None,
    page_size: int | None = None,
    category_id: int | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return list_kind("budget", x_user_id, cursor, page_size, {"category_id": category_id})


@app.get("/budgets/spending", response_model=services.BudgetSpendingResult)
def budget_spending(x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(services.get_budget_spending(engine, header_identity(x_user_id)))


@app.get("/budgets/summary", response_model=services.BudgetSummaryResult)
def budget_summary(
    today: date | None = None, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.get_budget_summary(engine, header_identity(x_user_id), today=today)
    )


@app.post("/budgets", response_model=services.EntityResult)
def create_budget(
    payload: BudgetPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "budget", payload)
    )


@app.get("/budgets/{budget_id}", response_model=services.EntityResult)
def get_budget(budget_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "budget", budget_id)
    )


@app.put("/budgets/{budget_id}", response_model=services.EntityResult)
def update_budget(
    budget_id: int,
    payload: BudgetPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.update_entity(engine, header_identity(x_user_id), "budget", budget_id, payload)
    )


@app.delete("/budgets/{budget_id}", response_model=services.DeleteResult)
def delete_budget(budget_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.delete_entity(engine, header_identity(x_user_id), "budget", budget_id)
    )


# Recurring expenses


@app.get("/recurring-expenses", response_model=services.ListResult)
def list_recurring_expenses(
    cursor: str | None = None,
    page_size: int | None = None,
    is_active: bool | None = None,
    frequency: str | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return list_kind(
        "recurring_expense",
        x_user_id,
        cursor,
        page_size,
        {"is_active": is_active, "frequency": frequency},
    )


@app.get("/recurring-expenses/upcoming", response_model=services.UpcomingPaymentsResult)
def upcoming_recurring_payments(
    days: int = Query(30, ge=1, le=366),
    today: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_upcoming_payments(
            engine, header_identity(x_user_id), today=today, days=days
        )
    )


@app.post("/recurring-expenses", response_model=services.EntityResult)
def create_recurring_expense(
    payload: RecurringExpensePayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "recurring_expense", payload)
    )


@app.get("/recurring-expenses/{expense_id}", response_model=services.EntityResult)
def get_recurring_expense(
    expense_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "recurring_expense", expense_id)
    )


@app.put("/recurring-expenses/{expense_id}", response_model=services.EntityResult)
def update_recurring_expense(
    expense_id: int,
    payload: RecurringExpensePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.update_entity(
            engine, header_identity(x_user_id), "recurring_expense", expense_id, payload
        )
    )


@app.patch("/recurring-expenses/{expense_id}/toggle", response_model=services.EntityResult)
def toggle_recurring_expense(
    expense_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.toggle_recurring_expense(engine, header_identity(x_user_id), expense_id)
    )


@app.delete("/recurring-expenses/{expense_id}", response_model=services.DeleteResult)
def delete_recurring_expense(
    expense_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.delete_entity(
            engine, header_identity(x_user_id), "recurring_expense", expense_id
        )
    )


# Transactions


@app.get("/transactions", response_model=services.ListResult)
def list_transactions(
    cursor: str | None = None,
    page_size: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    type: str | None = None,
    category_id: int | None = None,
    payment_method_id: int | None = None,
    tag_ids: list[int] | None = Query(None),
    search_term: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    filters = {
        "start_date": start_date,
        "end_date": end_date,
        "type": type,
        "category_id": category_id,
        "payment_method_id": payment_method_id,
        "tag_ids": tag_ids,
        "search_term": search_term,
        "min_amount": min_amount,
        "max_amount": max_amount,
    }
    return list_kind("transaction", x_user_id, cursor, page_size, filters)


@app.get("/transactions/summary", response_model=services.TransactionSummaryResult)
def transaction_summary(
    period: str = "monthly",
    today: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_transaction_summary(
            engine, header_identity(x_user_id), period=period, today=today
        )
    )


@app.post("/transactions/scan", response_model=services.EntityResult)
def create_scan_transaction(
    payload: TransactionPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_scan_transaction(engine, header_identity(x_user_id), payload)
    )


@app.post("/transactions", response_model=services.EntityResult)
def create_transaction(
    payload: TransactionPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.create_entity(engine, header_identity(x_user_id), "transaction", payload)
    )


@app.get("/transactions/{transaction_id}", response_model=services.EntityResult)
def get_transaction(
    transaction_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.get_entity(engine, header_identity(x_user_id), "transaction", transaction_id)
    )


@app.put("/transactions/{transaction_id}", response_model=services.EntityResult)
def update_transaction(
    transaction_id: int,
    payload: TransactionPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.update_entity(
            engine, header_identity(x_user_id), "transaction", transaction_id, payload
        )
    )


@app.delete("/transactions/{transaction_id}", response_model=services.DeleteResult)
def delete_transaction(
    transaction_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.delete_entity(engine, header_identity(x_user_id), "transaction", transaction_id)
    )


# Friends


@app.get("/friends", response_model=services.FriendsResult)
def list_friends(x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(services.list_friends(engine, header_identity(x_user_id)))


@app.get("/friends/search", response_model=services.UserSearchResult)
def search_users(query: str, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(services.search_users(engine, header_identity(x_user_id), query))


@app.post("/friends/requests", response_model=services.FriendRequestResult)
def send_friend_request(
    payload: FriendRequestPayload, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.send_friend_request(engine, header_identity(x_user_id), payload.email)
    )


@app.post("/friends/requests/{request_id}/accept", response_model=services.FriendRequestResult)
def accept_friend_request(
    request_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.respond_to_friend_request(
            engine, header_identity(x_user_id), request_id, accept=True
        )
    )


@app.post("/friends/requests/{request_id}/reject", response_model=services.FriendRequestResult)
def reject_friend_request(
    request_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
):
    return raise_for_result(
        services.respond_to_friend_request(
            engine, header_identity(x_user_id), request_id, accept=False
        )
    )


@app.delete("/friends/{friend_id}", response_model=services.ServiceResult)
def remove_friend(friend_id: int, x_user_id: str | None = Header(None, alias="x-user-id")):
    return raise_for_result(
        services.remove_friend(engine, header_identity(x_user_id), friend_id)
    )


# Analytics


@app.get("/analytics/summary", response_model=services.ExpenseSummaryResult)
def expense_summary(
    start_date: date | None = None,
    end_date: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_expense_summary(engine, header_identity(x_user_id), start_date, end_date)
    )


@app.get("/analytics/income-expense", response_model=services.IncomeExpenseChartResult)
def income_expense_chart(
    start_date: date | None = None,
    end_date: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_income_expense_chart(
            engine, header_identity(x_user_id), start_date, end_date
        )
    )


@app.get("/analytics/category-breakdown", response_model=services.CategoryBreakdownResult)
def category_breakdown(
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_category_breakdown(
            engine, header_identity(x_user_id), start_date, end_date, category_ids
        )
    )


@app.get("/analytics/monthly-trend", response_model=services.MonthlyTrendResult)
def monthly_trend(
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.get_monthly_trend(
            engine, header_identity(x_user_id), start_date, end_date, category_ids
        )
    )


@app.get("/analytics/export/transactions", response_model=services.ExportResult)
def export_transactions(
    start_date: date | None = None,
    end_date: date | None = None,
    category_ids: list[int] | None = Query(None),
    search_term: str | None = None,
    sort_by: str = "date-desc",
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.export_transactions_csv(
            engine,
            header_identity(x_user_id),
            start_date,
            end_date,
            category_ids=category_ids,
            search_term=search_term,
            sort_by=sort_by,
        )
    )


@app.get("/analytics/export/summary", response_model=services.ExportResult)
def export_summary(
    start_date: date | None = None,
    end_date: date | None = None,
    x_user_id: str | None = Header(None, alias="x-user-id"),
):
    return raise_for_result(
        services.export_analytics_summary(
            engine, header_identity(x_user_id), start_date, end_date
        )
    )
