from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from pennywise.recurring import normalize_frequency


class TransactionType:
    values = {"INCOME", "EXPENSE"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type.")
        return normalized


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _require(value: str, message: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(message)
    return cleaned


# Payloads


class CategoryPayload(BaseModel):
    name: str
    type: str
    icon: str | None = None

    @classmethod
    def validate_payload(cls, payload: "CategoryPayload") -> "CategoryPayload":
        payload.name = _require(payload.name, "Category name is required.")
        payload.type = TransactionType.validate(payload.type)
        payload.icon = _clean(payload.icon)
        return payload


class TagPayload(BaseModel):
    name: str
    color: str | None = None
    icon: str | None = None

    @classmethod
    def validate_payload(cls, payload: "TagPayload") -> "TagPayload":
        payload.name = _require(payload.name, "Tag name is required.")
        payload.color = _clean(payload.color)
        payload.icon = _clean(payload.icon)
        return payload


class PaymentMethodPayload(BaseModel):
    name: str
    icon: str | None = None

    @classmethod
    def validate_payload(cls, payload: "PaymentMethodPayload") -> "PaymentMethodPayload":
        payload.name = _require(payload.name, "Payment method name is required.")
        payload.icon = _clean(payload.icon)
        return payload


class BudgetPayload(BaseModel):
    category_id: int
    amount: Decimal
    start_date: date
    end_date: date
    icon: str | None = None

    @classmethod
    def validate_payload(cls, payload: "BudgetPayload") -> "BudgetPayload":
        if payload.amount <= 0:
            raise ValueError("Budget amount must be greater than zero.")
        if payload.end_date <= payload.start_date:
            raise ValueError("End date must be after start date.")
        payload.icon = _clean(payload.icon)
        return payload


class RecurringExpensePayload(BaseModel):
    description: str
    amount: Decimal
    frequency: str
    start_date: date
    end_date: date | None = None
    is_active: bool = True

    @classmethod
    def validate_payload(
        cls, payload: "RecurringExpensePayload"
    ) -> "RecurringExpensePayload":
        payload.description = _require(payload.description, "Description is required.")
        if payload.amount <= 0:
            raise ValueError("Amount must be greater than zero.")
        payload.frequency = normalize_frequency(payload.frequency)
        if payload.end_date is not None and payload.end_date <= payload.start_date:
            raise ValueError("End date must be after start date.")
        return payload


class ParticipantPayload(BaseModel):
    id: int | None = None
    user_id: int | None = None
    amount: Decimal
    type: str
    category_id: int | None = None
    payment_method_id: int | None = None
    description: str | None = None
    tag_ids: list[int] = Field(default_factory=list)

    @classmethod
    def validate_payload(cls, payload: "ParticipantPayload") -> "ParticipantPayload":
        if payload.amount <= 0:
            raise ValueError("Participant amount must be greater than zero.")
        payload.type = TransactionType.validate(payload.type)
        if payload.category_id is None:
            raise ValueError("Participant category is required.")
        if payload.payment_method_id is None:
            raise ValueError("Participant payment method is required.")
        payload.description = _clean(payload.description)
        payload.tag_ids = sorted(set(payload.tag_ids))
        return payload


class TransactionPayload(BaseModel):
    description: str
    total_amount: Decimal
    date: date
    reference_number: str | None = None
    notes: str | None = None
    recurring_expense_id: int | None = None
    participants: list[ParticipantPayload] = Field(default_factory=list)

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.description = _require(
            payload.description, "Transaction description is required."
        )
        if payload.total_amount <= 0:
            raise ValueError("Transaction amount must be greater than zero.")
        if not payload.participants:
            raise ValueError("At least one participant is required.")
        payload.reference_number = _clean(payload.reference_number)
        payload.notes = _clean(payload.notes)
        payload.participants = [
            ParticipantPayload.validate_payload(participant)
            for participant in payload.participants
        ]
        return payload


# Filters


class NameFilters(BaseModel):
    name: str | None = None


class CategoryFilters(NameFilters):
    type: str | None = None


class BudgetFilters(BaseModel):
    category_id: int | None = None


class RecurringExpenseFilters(BaseModel):
    is_active: bool | None = None
    frequency: str | None = None


class TransactionFilters(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    type: str | None = None
    category_id: int | None = None
    payment_method_id: int | None = None
    tag_ids: list[int] | None = None
    search_term: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None


# Responses


class CategoryResponse(BaseModel):
    id: int
    user_id: int
    name: str
    type: str
    icon: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TagResponse(BaseModel):
    id: int
    user_id: int
    name: str
    color: str | None = None
    icon: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class PaymentMethodResponse(BaseModel):
    id: int
    user_id: int
    name: str
    icon: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class BudgetResponse(BaseModel):
    id: int
    user_id: int
    category_id: int
    category_name: str | None = None
    amount: Decimal
    start_date: date
    end_date: date
    icon: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RecurringExpenseResponse(BaseModel):
    id: int
    user_id: int
    description: str
    amount: Decimal
    frequency: str
    start_date: date
    end_date: date | None = None
    next_due_date: date
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TagRef(BaseModel):
    id: int
    name: str
    color: str | None = None


class ParticipantResponse(BaseModel):
    id: int
    user_id: int
    amount: Decimal
    type: str
    category_id: int
    category_name: str | None = None
    category_icon: str | None = None
    payment_method_id: int
    payment_method_name: str | None = None
    payment_method_icon: str | None = None
    description: str | None = None
    tags: list[TagRef] = Field(default_factory=list)


class TransactionResponse(BaseModel):
    id: int
    creator_id: int
    description: str
    total_amount: Decimal
    date: date
    reference_number: str | None = None
    notes: str | None = None
    recurring_expense_id: int | None = None
    participants: list[ParticipantResponse] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserResponse(BaseModel):
    id: int
    email: str
    name: str | None = None
    created_at: datetime | None = None
