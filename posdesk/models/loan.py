"""
Customer credit models — customers, loans, payments and reminder records.

A loan moves ``active -> overdue`` automatically (reminder scan) and
``active/overdue -> paid`` on full payment; nothing moves it backwards.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (JSON, Boolean, CheckConstraint, Column, Date, DateTime,
                        Float, ForeignKey, Index, Integer, String, Text,
                        UniqueConstraint)
from sqlalchemy.orm import relationship

from posdesk.db.base import Base

LOAN_STATUSES = ("active", "paid", "overdue", "defaulted")
OPEN_LOAN_STATUSES = ("active", "overdue")
REMINDER_TYPES = ("before_due", "on_due", "overdue")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    phone: str = Column(String(30), nullable=False)  # type: ignore[assignment]
    email: str | None = Column(String(320), nullable=True)  # type: ignore[assignment]
    address: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    # {"risk_level": "low", "payment_history": [{"date", "amount", "on_time"}]}
    repayment_behavior: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    loans = relationship("Loan", back_populates="customer")


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        CheckConstraint("remaining_balance >= 0", name="ck_loan_balance_non_negative"),
        Index("ix_loans_status_due", "status", "due_date"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    customer_id: int = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)  # type: ignore[assignment]
    total_amount: float = Column(Float, nullable=False)  # type: ignore[assignment]
    paid_amount: float = Column(Float, nullable=False, default=0.0)  # type: ignore[assignment]
    remaining_balance: float = Column(Float, nullable=False)  # type: ignore[assignment]
    due_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    status: str = Column(String(20), nullable=False, default="active")  # type: ignore[assignment]
    # active | paid | overdue | defaulted
    notes: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    customer = relationship("Customer", back_populates="loans")
    payments = relationship("LoanPayment", back_populates="loan", cascade="all, delete-orphan")
    reminders = relationship("LoanReminder", back_populates="loan", cascade="all, delete-orphan")


class LoanPayment(Base):
    __tablename__ = "loan_payments"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    loan_id: int = Column(Integer, ForeignKey("loans.id"), nullable=False, index=True)  # type: ignore[assignment]
    amount: float = Column(Float, nullable=False)  # type: ignore[assignment]
    notes: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    created_by: int | None = Column(Integer, ForeignKey("users.id"), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    loan = relationship("Loan", back_populates="payments")


class LoanReminder(Base):
    __tablename__ = "loan_reminders"
    __table_args__ = (
        # One reminder per loan, category and local calendar day
        UniqueConstraint(
            "loan_id", "reminder_type", "reminder_date", name="uq_reminder_loan_type_day"
        ),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    loan_id: int = Column(Integer, ForeignKey("loans.id"), nullable=False, index=True)  # type: ignore[assignment]
    reminder_type: str = Column(String(20), nullable=False)  # type: ignore[assignment]
    # before_due | on_due | overdue
    message_content: str = Column(Text, nullable=False)  # type: ignore[assignment]
    scheduled_date: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]
    reminder_date: date = Column(Date, nullable=False, index=True)  # type: ignore[assignment]
    is_sent: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    sent_date: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    whatsapp_message_id: str | None = Column(String(128), nullable=True)  # type: ignore[assignment]
    ai_personalization: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    created_at: datetime = Column(DateTime(timezone=True), default=_utcnow)  # type: ignore[assignment]

    loan = relationship("Loan", back_populates="reminders")
