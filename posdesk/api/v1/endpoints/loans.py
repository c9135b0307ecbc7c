"""
Customer credit endpoints — customers, loans and payment recording.

Every route requires the ``canManageLoans`` capability of the effective role.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.api.v1.deps import (get_current_active_user, get_db,
                                 get_notification_channel, require_capability)
from posdesk.core.audit import log_action
from posdesk.core.messaging import format_money
from posdesk.core.notifications import NotificationChannel
from posdesk.core.reminders import local_today
from posdesk.core.risk import repayment_behavior_of
from posdesk.models.loan import (LOAN_STATUSES, OPEN_LOAN_STATUSES, Customer,
                                 Loan, LoanPayment)
from posdesk.models.user import User
from posdesk.schemas.loan import (CustomerCreate, CustomerRead, LoanCreate,
                                  LoanRead, PaymentCreate, PaymentRead)

router = APIRouter(tags=["loans"], dependencies=[Depends(require_capability("canManageLoans"))])
logger = logging.getLogger(__name__)


def _loan_read(loan: Loan, customer_name: str | None) -> LoanRead:
    data = LoanRead.model_validate(loan)
    data.customer_name = customer_name
    return data


async def _get_loan(db: AsyncSession, loan_id: int) -> tuple[Loan, Customer]:
    result = await db.execute(
        select(Loan, Customer)
        .join(Customer, Loan.customer_id == Customer.id)
        .where(Loan.id == loan_id)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="Loan not found")
    return row[0], row[1]


# ── Customers ───────────────────────────────────────────────────────
@router.get("/customers", response_model=list[CustomerRead])
async def list_customers(
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[Customer]:
    result = await db.execute(select(Customer).order_by(Customer.name).offset(skip).limit(limit))
    return list(result.scalars().all())


@router.post("/customers", response_model=CustomerRead, status_code=201)
async def create_customer(
    body: CustomerCreate,
    db: AsyncSession = Depends(get_db),
) -> Customer:
    customer = Customer(**body.model_dump())
    db.add(customer)
    await db.commit()
    await db.refresh(customer)
    logger.info("Created customer %s", customer.name)
    return customer


# ── Loans ───────────────────────────────────────────────────────────
@router.get("/loans", response_model=list[LoanRead])
async def list_loans(
    status: str | None = None,
    skip: int = 0,
    limit: int = Query(default=50, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[LoanRead]:
    query = (
        select(Loan, Customer.name)
        .join(Customer, Loan.customer_id == Customer.id)
        .order_by(Loan.due_date, Loan.id)
        .offset(skip)
        .limit(limit)
    )
    if status is not None:
        if status not in LOAN_STATUSES:
            raise HTTPException(status_code=400, detail=f"Unknown loan status '{status}'")
        query = query.where(Loan.status == status)
    result = await db.execute(query)
    return [_loan_read(loan, name) for loan, name in result.all()]


@router.post("/loans", response_model=LoanRead, status_code=201)
async def create_loan(
    body: LoanCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
) -> LoanRead:
    customer = await db.get(Customer, body.customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    remaining = round(body.total_amount - body.paid_amount, 2)
    loan = Loan(
        customer_id=customer.id,
        total_amount=body.total_amount,
        paid_amount=body.paid_amount,
        remaining_balance=remaining,
        due_date=body.due_date,
        status="active" if remaining > 0 else "paid",
        notes=body.notes,
        created_by=user.id,
    )
    db.add(loan)
    await db.commit()
    await db.refresh(loan)
    logger.info("Created loan %d for %s (%s)", loan.id, customer.name, format_money(remaining))
    await log_action(
        db,
        user,
        "create_loan",
        "financial",
        {"loan_id": loan.id, "customer_id": customer.id, "amount": body.total_amount},
    )
    return _loan_read(loan, customer.name)


@router.get("/loans/{loan_id}", response_model=LoanRead)
async def get_loan(
    loan_id: int,
    db: AsyncSession = Depends(get_db),
) -> LoanRead:
    loan, customer = await _get_loan(db, loan_id)
    return _loan_read(loan, customer.name)


@router.post("/loans/{loan_id}/payments", response_model=PaymentRead, status_code=201)
async def record_payment(
    loan_id: int,
    body: PaymentCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
    channel: NotificationChannel = Depends(get_notification_channel),
) -> PaymentRead:
    """Record a repayment; a loan whose balance reaches zero becomes ``paid``."""
    loan, customer = await _get_loan(db, loan_id)
    if loan.status == "paid":
        raise HTTPException(status_code=400, detail="Loan is already paid")
    if loan.status not in OPEN_LOAN_STATUSES:
        raise HTTPException(status_code=400, detail=f"Loan is {loan.status}; payments are closed")
    if body.amount > loan.remaining_balance + 1e-9:
        raise HTTPException(
            status_code=400,
            detail=f"Payment exceeds remaining balance of {format_money(loan.remaining_balance)}",
        )

    today = local_today()
    loan.paid_amount = round(loan.paid_amount + body.amount, 2)
    loan.remaining_balance = max(0.0, round(loan.total_amount - loan.paid_amount, 2))
    if loan.remaining_balance == 0:
        loan.status = "paid"

    behavior = repayment_behavior_of(customer.repayment_behavior)
    history = list(behavior.get("payment_history") or [])
    history.append(
        {"date": today.isoformat(), "amount": body.amount, "on_time": today <= loan.due_date}
    )
    behavior["payment_history"] = history
    customer.repayment_behavior = behavior

    payment = LoanPayment(loan_id=loan.id, amount=body.amount, notes=body.notes, created_by=user.id)
    db.add(payment)
    await db.commit()
    await db.refresh(payment)
    logger.info("Recorded payment of %s on loan %d", format_money(body.amount), loan.id)

    notification_sent = False
    try:
        await channel.send(
            customer.phone,
            "Payment Received",
            f"Thank you {customer.name}! We received your payment of "
            f"{format_money(body.amount)}. Your new balance is "
            f"{format_money(loan.remaining_balance)}.",
            "query_response",
        )
        notification_sent = True
    except Exception as exc:
        logger.warning("Payment confirmation not delivered for loan %d: %s", loan.id, exc)

    await log_action(
        db,
        user,
        "record_payment",
        "financial",
        {"loan_id": loan.id, "amount": body.amount, "remaining_balance": loan.remaining_balance},
    )
    return PaymentRead(
        id=payment.id,
        loan_id=loan.id,
        amount=payment.amount,
        notes=payment.notes,
        created_at=payment.created_at,
        loan=_loan_read(loan, customer.name),
        notification_sent=notification_sent,
    )
