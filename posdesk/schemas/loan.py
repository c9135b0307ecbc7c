"""Pydantic schemas for customers, loans, payments and reminders."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ── Customer ────────────────────────────────────────────────────────
class PaymentHistoryEntry(BaseModel):
    date: str
    amount: float
    on_time: bool


class RepaymentBehavior(BaseModel):
    risk_level: str | None = None
    payment_history: list[PaymentHistoryEntry] = Field(default_factory=list)


class CustomerCreate(BaseModel):
    name: str
    phone: str
    email: str | None = None
    address: str | None = None
    repayment_behavior: RepaymentBehavior = Field(default_factory=RepaymentBehavior)

    @field_validator("name", "phone")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Must not be empty")
        return v


class CustomerRead(BaseModel):
    id: int
    name: str
    phone: str
    email: str | None
    address: str | None
    repayment_behavior: dict
    created_at: datetime | None

    model_config = {"from_attributes": True}


# ── Loan ────────────────────────────────────────────────────────────
class LoanCreate(BaseModel):
    customer_id: int
    total_amount: float = Field(gt=0)
    paid_amount: float = Field(default=0.0, ge=0)
    due_date: date
    notes: str | None = None

    @model_validator(mode="after")
    def _paid_within_total(self) -> "LoanCreate":
        if self.paid_amount > self.total_amount:
            raise ValueError("paid_amount cannot exceed total_amount")
        return self


class LoanRead(BaseModel):
    id: int
    customer_id: int
    customer_name: str | None = None
    total_amount: float
    paid_amount: float
    remaining_balance: float
    due_date: date
    status: str
    notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PaymentCreate(BaseModel):
    amount: float = Field(gt=0)
    notes: str | None = None


class PaymentRead(BaseModel):
    id: int
    loan_id: int
    amount: float
    notes: str | None
    created_at: datetime | None
    loan: LoanRead
    notification_sent: bool = False


# ── Reminders ───────────────────────────────────────────────────────
class LoanReminderRead(BaseModel):
    id: int
    loan_id: int
    reminder_type: str
    message_content: str
    scheduled_date: datetime | None
    reminder_date: date
    is_sent: bool
    sent_date: datetime | None
    whatsapp_message_id: str | None
    ai_personalization: dict

    model_config = {"from_attributes": True}


class ReminderRunResponse(BaseModel):
    """Serialised with camelCase keys (``remindersGenerated`` ...)."""

    success: bool
    reminders_generated: int = 0
    messages_scheduled: int = 0
    loans_processed: int = 0

    model_config = {"alias_generator": to_camel, "populate_by_name": True}


# ── Analytics ───────────────────────────────────────────────────────
class LoanAnalyticsResponse(BaseModel):
    total_outstanding: float
    overdue_count: int
    risk_distribution: dict[str, int]
    active_loans: int
    total_paid: float
    last_run: dict | None = None
