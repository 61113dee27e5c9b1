"""Entity descriptors and the one create/update/delete/list policy they share.

Every entity kind is described once by an ``EntityDescriptor``: which table it
lives in, which column names the owner, what makes a row unique, which other
rows may still reference it, and how it is listed. The generic functions below
apply the same guards to all of them: ownership is always re-checked against
the database, names are trimmed and required, duplicates and blocked deletes
raise ``Conflict`` with a readable message rather than a raw constraint error.

All functions take an open connection. Callers decide the transaction
boundary, so a multi-row write (a transaction and its participants) either
commits as a whole or not at all.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from pydantic import BaseModel
from sqlalchemy import Table, and_, delete, exists, func, insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError
from sqlalchemy.sql import ColumnElement

from pennywise.errors import Conflict, InvalidArgument, NotFound
from pennywise.friends import friend_ids
from pennywise.models import (
    BudgetFilters,
    BudgetPayload,
    BudgetResponse,
    CategoryFilters,
    CategoryPayload,
    CategoryResponse,
    NameFilters,
    ParticipantResponse,
    PaymentMethodPayload,
    PaymentMethodResponse,
    RecurringExpenseFilters,
    RecurringExpensePayload,
    RecurringExpenseResponse,
    TagPayload,
    TagRef,
    TagResponse,
    TransactionFilters,
    TransactionPayload,
    TransactionResponse,
    TransactionType,
)
from pennywise.pager import Page, PageRequest, SortKey, fetch_page
from pennywise.recurring import calculate_next_due_date, normalize_frequency
from pennywise.reports import Flow, total_flows
from pennywise.schema import (
    budgets,
    categories,
    participant_tags,
    payment_methods,
    recurring_expenses,
    tags,
    transaction_participants,
    transactions,
)


@dataclass(frozen=True)
class ReferenceCheck:
    table: Table
    column: str
    message: str


@dataclass(frozen=True)
class EntityDescriptor:
    kind: str
    label: str
    table: Table
    payload_model: type[BaseModel]
    filters_model: type[BaseModel]
    response_model: type[BaseModel]
    owner_column: str = "user_id"
    sort_key: SortKey = SortKey()
    unique_fields: tuple[str, ...] = ()
    duplicate_message: Callable[[Mapping[str, Any]], str] | None = None
    reference_checks: tuple[ReferenceCheck, ...] = ()
    soft_delete: bool = False
    soft_delete_values: Mapping[str, Any] = field(default_factory=dict)
    build_filters: Callable[[Any, int], list[ColumnElement]] | None = None
    validate: Callable[[Connection, int, Any, int | None], None] | None = None
    to_values: Callable[[Any], dict[str, Any]] | None = None
    after_write: Callable[[Connection, int, int, Any], None] | None = None
    load: Callable[[Connection, list[dict[str, Any]]], list[BaseModel]] | None = None
    summarize: Callable[[list[BaseModel]], dict[str, Any]] | None = None

    def owner(self):
        return self.table.c[self.owner_column]


# Generic operations


def parse_payload(descriptor: EntityDescriptor, payload: Any) -> Any:
    model = descriptor.payload_model
    if not isinstance(payload, model):
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        payload = model.model_validate(payload)
    return model.validate_payload(payload)


def get_row(
    conn: Connection, descriptor: EntityDescriptor, user_id: int, entity_id: int
) -> dict[str, Any]:
    table = descriptor.table
    conditions = [table.c.id == entity_id, descriptor.owner() == user_id]
    if descriptor.soft_delete:
        conditions.append(table.c.is_deleted.is_(False))
    row = conn.execute(select(table).where(*conditions)).mappings().first()
    if not row:
        raise NotFound(f"{descriptor.label} not found.")
    return dict(row)


def get_entity(
    conn: Connection, descriptor: EntityDescriptor, user_id: int, entity_id: int
) -> BaseModel:
    return _load(conn, descriptor, [get_row(conn, descriptor, user_id, entity_id)])[0]


def create_entity(
    conn: Connection, descriptor: EntityDescriptor, user_id: int, payload: Any
) -> BaseModel:
    payload = parse_payload(descriptor, payload)
    if descriptor.validate:
        descriptor.validate(conn, user_id, payload, None)
    values = _values(descriptor, payload)
    _ensure_unique(conn, descriptor, user_id, values, exclude_id=None)

    try:
        result = conn.execute(
            insert(descriptor.table).values(**values, **{descriptor.owner_column: user_id})
        )
    except IntegrityError as exc:
        raise Conflict(_duplicate_message(descriptor, values)) from exc
    entity_id = result.inserted_primary_key[0]
    if descriptor.after_write:
        descriptor.after_write(conn, user_id, entity_id, payload)
    return get_entity(conn, descriptor, user_id, entity_id)


def update_entity(
    conn: Connection,
    descriptor: EntityDescriptor,
    user_id: int,
    entity_id: int,
    payload: Any,
) -> BaseModel:
    # Never trust the supplied id: it must resolve under the caller first.
    get_row(conn, descriptor, user_id, entity_id)
    payload = parse_payload(descriptor, payload)
    if descriptor.validate:
        descriptor.validate(conn, user_id, payload, entity_id)
    values = _values(descriptor, payload)
    _ensure_unique(conn, descriptor, user_id, values, exclude_id=entity_id)

    table = descriptor.table
    try:
        conn.execute(
            update(table)
            .where(table.c.id == entity_id, descriptor.owner() == user_id)
            .values(**values, updated_at=func.now())
        )
    except IntegrityError as exc:
        raise Conflict(_duplicate_message(descriptor, values)) from exc
    if descriptor.after_write:
        descriptor.after_write(conn, user_id, entity_id, payload)
    return get_entity(conn, descriptor, user_id, entity_id)


def delete_entity(
    conn: Connection, descriptor: EntityDescriptor, user_id: int, entity_id: int
) -> None:
    get_row(conn, descriptor, user_id, entity_id)
    for check in descriptor.reference_checks:
        if count_references(conn, check, entity_id) > 0:
            raise Conflict(check.message)

    table = descriptor.table
    if descriptor.soft_delete:
        conn.execute(
            update(table)
            .where(table.c.id == entity_id, descriptor.owner() == user_id)
            .values(
                is_deleted=True,
                deleted_at=func.now(),
                updated_at=func.now(),
                **descriptor.soft_delete_values,
            )
        )
        return
    conn.execute(
        delete(table).where(table.c.id == entity_id, descriptor.owner() == user_id)
    )


def count_references(conn: Connection, check: ReferenceCheck, entity_id: int) -> int:
    return conn.execute(
        select(func.count())
        .select_from(check.table)
        .where(check.table.c[check.column] == entity_id)
    ).scalar_one()


def list_page(
    conn: Connection,
    descriptor: EntityDescriptor,
    user_id: int,
    request: PageRequest,
    filters: Any = None,
) -> tuple[Page, dict[str, Any] | None]:
    filters = _parse_filters(descriptor, filters)
    conditions: list[ColumnElement] = []
    if descriptor.soft_delete:
        conditions.append(descriptor.table.c.is_deleted.is_(False))
    if descriptor.build_filters:
        conditions.extend(descriptor.build_filters(filters, user_id))

    page = fetch_page(
        conn,
        descriptor.table,
        descriptor.owner(),
        user_id,
        descriptor.sort_key,
        request,
        conditions,
    )
    page.items = _load(conn, descriptor, page.items) if page.items else []
    summary = descriptor.summarize(page.items) if descriptor.summarize else None
    return page, summary


def _parse_filters(descriptor: EntityDescriptor, filters: Any) -> BaseModel:
    model = descriptor.filters_model
    if filters is None:
        return model()
    if isinstance(filters, model):
        return filters
    if isinstance(filters, BaseModel):
        filters = filters.model_dump()
    return model.model_validate(
        {key: value for key, value in dict(filters).items() if value is not None}
    )


def _values(descriptor: EntityDescriptor, payload: Any) -> dict[str, Any]:
    if descriptor.to_values:
        return descriptor.to_values(payload)
    return payload.model_dump()


def _load(
    conn: Connection, descriptor: EntityDescriptor, rows: list[dict[str, Any]]
) -> list[BaseModel]:
    if descriptor.load:
        return descriptor.load(conn, rows)
    return [descriptor.response_model.model_validate(row) for row in rows]


def _ensure_unique(
    conn: Connection,
    descriptor: EntityDescriptor,
    user_id: int,
    values: Mapping[str, Any],
    exclude_id: int | None,
) -> None:
    if not descriptor.unique_fields:
        return
    table = descriptor.table
    conditions = [descriptor.owner() == user_id]
    conditions.extend(table.c[name] == values[name] for name in descriptor.unique_fields)
    if exclude_id is not None:
        conditions.append(table.c.id != exclude_id)
    duplicate = conn.execute(select(table.c.id).where(*conditions).limit(1)).first()
    if duplicate:
        raise Conflict(_duplicate_message(descriptor, values))


def _duplicate_message(descriptor: EntityDescriptor, values: Mapping[str, Any]) -> str:
    if descriptor.duplicate_message:
        return descriptor.duplicate_message(values)
    return f"A {descriptor.label.lower()} with this name already exists."


def _name_filter(table: Table, name: str | None) -> list[ColumnElement]:
    if not name or not name.strip():
        return []
    return [func.lower(table.c.name).contains(name.strip().lower(), autoescape=True)]


def _ensure_owned(
    conn: Connection, table: Table, entity_id: int, user_id: int, message: str
) -> None:
    found = conn.execute(
        select(table.c.id).where(table.c.id == entity_id, table.c.user_id == user_id)
    ).first()
    if not found:
        raise NotFound(message)


# Categories, tags, payment methods


def _category_filters(filters: CategoryFilters, user_id: int) -> list[ColumnElement]:
    conditions = _name_filter(categories, filters.name)
    if filters.type:
        conditions.append(categories.c.type == TransactionType.validate(filters.type))
    return conditions


CATEGORY = EntityDescriptor(
    kind="category",
    label="Category",
    table=categories,
    payload_model=CategoryPayload,
    filters_model=CategoryFilters,
    response_model=CategoryResponse,
    unique_fields=("name", "type"),
    duplicate_message=lambda values: (
        f"A category with this name already exists for the {values['type'].lower()} type."
    ),
    reference_checks=(
        ReferenceCheck(
            transaction_participants,
            "category_id",
            "Cannot delete a category that is used in transactions. Try updating it instead.",
        ),
        ReferenceCheck(
            budgets,
            "category_id",
            "Cannot delete a category that has budgets. Delete the budgets first.",
        ),
    ),
    build_filters=_category_filters,
)

TAG = EntityDescriptor(
    kind="tag",
    label="Tag",
    table=tags,
    payload_model=TagPayload,
    filters_model=NameFilters,
    response_model=TagResponse,
    unique_fields=("name",),
    reference_checks=(
        ReferenceCheck(
            participant_tags,
            "tag_id",
            "Cannot delete a tag that is used in transactions. Try updating it instead.",
        ),
    ),
    build_filters=lambda filters, user_id: _name_filter(tags, filters.name),
)

PAYMENT_METHOD = EntityDescriptor(
    kind="payment_method",
    label="Payment method",
    table=payment_methods,
    payload_model=PaymentMethodPayload,
    filters_model=NameFilters,
    response_model=PaymentMethodResponse,
    unique_fields=("name",),
    reference_checks=(
        ReferenceCheck(
            transaction_participants,
            "payment_method_id",
            "Cannot delete a payment method that is used in transactions. Try updating it instead.",
        ),
    ),
    build_filters=lambda filters, user_id: _name_filter(payment_methods, filters.name),
)


# Budgets


def _validate_budget(
    conn: Connection, user_id: int, payload: BudgetPayload, entity_id: int | None
) -> None:
    _ensure_owned(conn, categories, payload.category_id, user_id, "Category not found.")
    conditions = [
        budgets.c.user_id == user_id,
        budgets.c.category_id == payload.category_id,
        budgets.c.start_date <= payload.end_date,
        budgets.c.end_date >= payload.start_date,
    ]
    if entity_id is not None:
        conditions.append(budgets.c.id != entity_id)
    overlapping = conn.execute(select(budgets.c.id).where(*conditions).limit(1)).first()
    if overlapping:
        raise Conflict("A budget already exists for this category in the selected period.")


def _load_budgets(conn: Connection, rows: list[dict[str, Any]]) -> list[BaseModel]:
    category_ids = {row["category_id"] for row in rows}
    names = dict(
        conn.execute(
            select(categories.c.id, categories.c.name).where(
                categories.c.id.in_(sorted(category_ids))
            )
        ).all()
    )
    return [
        BudgetResponse.model_validate({**row, "category_name": names.get(row["category_id"])})
        for row in rows
    ]


def _budget_filters(filters: BudgetFilters, user_id: int) -> list[ColumnElement]:
    if filters.category_id is None:
        return []
    return [budgets.c.category_id == filters.category_id]


BUDGET = EntityDescriptor(
    kind="budget",
    label="Budget",
    table=budgets,
    payload_model=BudgetPayload,
    filters_model=BudgetFilters,
    response_model=BudgetResponse,
    sort_key=SortKey("id", descending=True),
    build_filters=_budget_filters,
    validate=_validate_budget,
    load=_load_budgets,
)


# Recurring expenses


def _recurring_values(payload: RecurringExpensePayload) -> dict[str, Any]:
    return {
        "description": payload.description,
        "amount": payload.amount,
        "frequency": payload.frequency,
        "start_date": payload.start_date,
        "end_date": payload.end_date,
        "next_due_date": calculate_next_due_date(payload.start_date, payload.frequency),
        "is_active": payload.is_active,
    }


def _recurring_filters(
    filters: RecurringExpenseFilters, user_id: int
) -> list[ColumnElement]:
    conditions: list[ColumnElement] = []
    if filters.is_active is not None:
        conditions.append(recurring_expenses.c.is_active.is_(filters.is_active))
    if filters.frequency:
        conditions.append(
            recurring_expenses.c.frequency == normalize_frequency(filters.frequency)
        )
    return conditions


RECURRING_EXPENSE = EntityDescriptor(
    kind="recurring_expense",
    label="Recurring expense",
    table=recurring_expenses,
    payload_model=RecurringExpensePayload,
    filters_model=RecurringExpenseFilters,
    response_model=RecurringExpenseResponse,
    sort_key=SortKey("next_due_date"),
    soft_delete=True,
    soft_delete_values={"is_active": False},
    build_filters=_recurring_filters,
    to_values=_recurring_values,
)


# Transactions


def _validate_transaction(
    conn: Connection, user_id: int, payload: TransactionPayload, entity_id: int | None
) -> None:
    if payload.recurring_expense_id is not None:
        found = conn.execute(
            select(recurring_expenses.c.id).where(
                recurring_expenses.c.id == payload.recurring_expense_id,
                recurring_expenses.c.user_id == user_id,
                recurring_expenses.c.is_deleted.is_(False),
            )
        ).first()
        if not found:
            raise NotFound("Recurring expense not found.")

    allowed_users = {user_id, *friend_ids(conn, user_id)}
    existing_ids: set[int] = set()
    if entity_id is not None:
        existing_ids = set(
            conn.execute(
                select(transaction_participants.c.id).where(
                    transaction_participants.c.transaction_id == entity_id
                )
            ).scalars()
        )

    for participant in payload.participants:
        if participant.user_id is None:
            participant.user_id = user_id
        if participant.user_id not in allowed_users:
            raise InvalidArgument("Participants must be you or one of your friends.")
        if participant.id is not None and participant.id not in existing_ids:
            raise NotFound("Participant not found.")
        _ensure_owned(
            conn,
            categories,
            participant.category_id,
            user_id,
            "Selected category not found or unauthorized.",
        )
        _ensure_owned(
            conn,
            payment_methods,
            participant.payment_method_id,
            user_id,
            "Selected payment method not found or unauthorized.",
        )
        if participant.tag_ids:
            owned = conn.execute(
                select(func.count())
                .select_from(tags)
                .where(tags.c.id.in_(participant.tag_ids), tags.c.user_id == user_id)
            ).scalar_one()
            if owned != len(participant.tag_ids):
                raise NotFound("One or more selected tags not found or unauthorized.")


def _transaction_values(payload: TransactionPayload) -> dict[str, Any]:
    return {
        "description": payload.description,
        "total_amount": payload.total_amount,
        "date": payload.date,
        "reference_number": payload.reference_number,
        "notes": payload.notes,
        "recurring_expense_id": payload.recurring_expense_id,
    }


def _write_participants(
    conn: Connection, user_id: int, transaction_id: int, payload: TransactionPayload
) -> None:
    existing_ids = set(
        conn.execute(
            select(transaction_participants.c.id).where(
                transaction_participants.c.transaction_id == transaction_id
            )
        ).scalars()
    )
    kept_ids = {participant.id for participant in payload.participants if participant.id}
    removed_ids = existing_ids - kept_ids
    if removed_ids:
        conn.execute(
            delete(participant_tags).where(participant_tags.c.participant_id.in_(sorted(removed_ids)))
        )
        conn.execute(
            delete(transaction_participants).where(
                transaction_participants.c.id.in_(sorted(removed_ids))
            )
        )

    for participant in payload.participants:
        values = {
            "user_id": participant.user_id,
            "amount": participant.amount,
            "type": participant.type,
            "category_id": participant.category_id,
            "payment_method_id": participant.payment_method_id,
            "description": participant.description,
        }
        if participant.id:
            participant_id = participant.id
            conn.execute(
                update(transaction_participants)
                .where(transaction_participants.c.id == participant_id)
                .values(**values)
            )
            conn.execute(
                delete(participant_tags).where(
                    participant_tags.c.participant_id == participant_id
                )
            )
        else:
            result = conn.execute(
                insert(transaction_participants).values(
                    transaction_id=transaction_id, **values
                )
            )
            participant_id = result.inserted_primary_key[0]
        if participant.tag_ids:
            conn.execute(
                insert(participant_tags),
                [
                    {"participant_id": participant_id, "tag_id": tag_id}
                    for tag_id in participant.tag_ids
                ],
            )


def _load_transactions(conn: Connection, rows: list[dict[str, Any]]) -> list[BaseModel]:
    transaction_ids = [row["id"] for row in rows]
    participant_rows = conn.execute(
        select(
            transaction_participants,
            categories.c.name.label("category_name"),
            categories.c.icon.label("category_icon"),
            payment_methods.c.name.label("payment_method_name"),
            payment_methods.c.icon.label("payment_method_icon"),
        )
        .select_from(
            transaction_participants.join(
                categories, categories.c.id == transaction_participants.c.category_id
            ).join(
                payment_methods,
                payment_methods.c.id == transaction_participants.c.payment_method_id,
            )
        )
        .where(transaction_participants.c.transaction_id.in_(transaction_ids))
        .order_by(transaction_participants.c.id.asc())
    ).mappings().all()

    participant_ids = [row["id"] for row in participant_rows]
    tags_by_participant: dict[int, list[TagRef]] = {}
    if participant_ids:
        tag_rows = conn.execute(
            select(participant_tags.c.participant_id, tags.c.id, tags.c.name, tags.c.color)
            .select_from(participant_tags.join(tags, tags.c.id == participant_tags.c.tag_id))
            .where(participant_tags.c.participant_id.in_(participant_ids))
            .order_by(tags.c.id.asc())
        ).mappings().all()
        for tag_row in tag_rows:
            tags_by_participant.setdefault(tag_row["participant_id"], []).append(
                TagRef(id=tag_row["id"], name=tag_row["name"], color=tag_row["color"])
            )

    participants_by_transaction: dict[int, list[ParticipantResponse]] = {}
    for row in participant_rows:
        participants_by_transaction.setdefault(row["transaction_id"], []).append(
            ParticipantResponse.model_validate(
                {**row, "tags": tags_by_participant.get(row["id"], [])}
            )
        )

    return [
        TransactionResponse.model_validate(
            {**row, "participants": participants_by_transaction.get(row["id"], [])}
        )
        for row in rows
    ]


def _transaction_filters(filters: TransactionFilters, user_id: int) -> list[ColumnElement]:
    conditions: list[ColumnElement] = []
    if filters.start_date:
        conditions.append(transactions.c.date >= filters.start_date)
    if filters.end_date:
        conditions.append(transactions.c.date <= filters.end_date)
    if filters.search_term and filters.search_term.strip():
        conditions.append(
            func.lower(transactions.c.description).contains(
                filters.search_term.strip().lower(), autoescape=True
            )
        )
    if filters.min_amount is not None:
        conditions.append(transactions.c.total_amount >= filters.min_amount)
    if filters.max_amount is not None:
        conditions.append(transactions.c.total_amount <= filters.max_amount)

    participant_conditions: list[ColumnElement] = []
    if filters.type:
        participant_conditions.append(
            transaction_participants.c.type == TransactionType.validate(filters.type)
        )
    if filters.category_id is not None:
        participant_conditions.append(
            transaction_participants.c.category_id == filters.category_id
        )
    if filters.payment_method_id is not None:
        participant_conditions.append(
            transaction_participants.c.payment_method_id == filters.payment_method_id
        )
    if filters.tag_ids:
        participant_conditions.append(
            exists(
                select(participant_tags.c.participant_id).where(
                    participant_tags.c.participant_id == transaction_participants.c.id,
                    participant_tags.c.tag_id.in_(filters.tag_ids),
                )
            )
        )
    if participant_conditions:
        conditions.append(
            exists(
                select(transaction_participants.c.id).where(
                    and_(
                        transaction_participants.c.transaction_id == transactions.c.id,
                        transaction_participants.c.user_id == user_id,
                        *participant_conditions,
                    )
                )
            )
        )
    return conditions


def _summarize_transactions(items: list[BaseModel]) -> dict[str, Any]:
    totals = total_flows(
        Flow(amount=participant.amount, type=participant.type, date=item.date)
        for item in items
        for participant in item.participants
    )
    return {
        "total_income": totals.total_income,
        "total_expense": totals.total_expense,
        "balance": totals.balance,
    }


TRANSACTION = EntityDescriptor(
    kind="transaction",
    label="Transaction",
    table=transactions,
    payload_model=TransactionPayload,
    filters_model=TransactionFilters,
    response_model=TransactionResponse,
    owner_column="creator_id",
    sort_key=SortKey("date", descending=True),
    soft_delete=True,
    build_filters=_transaction_filters,
    validate=_validate_transaction,
    to_values=_transaction_values,
    after_write=_write_participants,
    load=_load_transactions,
    summarize=_summarize_transactions,
)


DESCRIPTORS: dict[str, EntityDescriptor] = {
    descriptor.kind: descriptor
    for descriptor in (
        CATEGORY,
        TAG,
        PAYMENT_METHOD,
        BUDGET,
        RECURRING_EXPENSE,
        TRANSACTION,
    )
}


def get_descriptor(kind: str) -> EntityDescriptor:
    normalized = kind.strip().lower().replace("-", "_")
    try:
        return DESCRIPTORS[normalized]
    except KeyError as exc:
        raise InvalidArgument(f"Unknown entity kind: {kind}") from exc
