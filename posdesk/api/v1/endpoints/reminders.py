"""
Loan reminder trigger, reminder history and loan analytics.

``POST /loan-reminders/run`` is the "run now" surface used by the back
office and by external schedulers. A batch failure is answered with
``500 {"success": false, "error": ...}`` by the domain error handler.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.api.v1.deps import (get_current_active_user, get_db,
                                 get_message_generator,
                                 get_notification_channel,
                                 get_text_generation_client,
                                 require_capability)
from posdesk.core.audit import log_action
from posdesk.core.exceptions import LoanFetchError
from posdesk.core.messaging import MessageGenerator
from posdesk.core.notifications import NotificationChannel
from posdesk.core.reminders import local_today, run_loan_reminders, summarize_loans
from posdesk.core.text_generation import TextGenerationClient
from posdesk.models.ai_recommendation import AIRecommendation
from posdesk.models.loan import Customer, Loan, LoanReminder
from posdesk.models.user import User
from posdesk.schemas.loan import (LoanAnalyticsResponse, LoanReminderRead,
                                  ReminderRunResponse)

router = APIRouter(tags=["loan reminders"])
logger = logging.getLogger(__name__)


@router.post(
    "/loan-reminders/run",
    response_model=ReminderRunResponse,
    dependencies=[Depends(require_capability("canManageLoans"))],
)
async def trigger_loan_reminders(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_active_user),
    generator: MessageGenerator = Depends(get_message_generator),
    channel: NotificationChannel = Depends(get_notification_channel),
    ai_client: TextGenerationClient = Depends(get_text_generation_client),
):
    result = await run_loan_reminders(db, generator, channel, ai_client)
    await log_action(
        db,
        user,
        "run_loan_reminders",
        "system",
        {
            "success": result.success,
            "reminders_generated": result.reminders_generated,
            "messages_scheduled": result.messages_scheduled,
        },
        status="success" if result.success else "error",
    )
    if not result.success:
        raise LoanFetchError(result.error or "Loan reminder run failed")
    return ReminderRunResponse(
        success=True,
        reminders_generated=result.reminders_generated,
        messages_scheduled=result.messages_scheduled,
        loans_processed=result.loans_processed,
    )


@router.get(
    "/loan-reminders",
    response_model=list[LoanReminderRead],
    dependencies=[Depends(require_capability("canManageLoans"))],
)
async def list_loan_reminders(
    loan_id: int | None = None,
    unsent_only: bool = False,
    limit: int = Query(default=100, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[LoanReminder]:
    query = select(LoanReminder).order_by(LoanReminder.created_at.desc(), LoanReminder.id.desc())
    if loan_id is not None:
        query = query.where(LoanReminder.loan_id == loan_id)
    if unsent_only:
        query = query.where(LoanReminder.is_sent.is_(False))
    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())


@router.get(
    "/loan-analytics",
    response_model=LoanAnalyticsResponse,
    dependencies=[Depends(require_capability("canViewReports"))],
)
async def loan_analytics(
    db: AsyncSession = Depends(get_db),
) -> LoanAnalyticsResponse:
    """Live rollup over unpaid loans plus the latest stored run summary."""
    rows = await db.execute(
        select(Loan.remaining_balance, Loan.due_date, Customer.repayment_behavior)
        .join(Customer, Loan.customer_id == Customer.id)
        .where(Loan.status != "paid")
    )
    summary = summarize_loans(rows.all(), local_today())

    active = await db.execute(select(func.count(Loan.id)).where(Loan.status == "active"))
    paid_total = await db.execute(select(func.coalesce(func.sum(Loan.paid_amount), 0.0)))

    last = await db.execute(
        select(AIRecommendation)
        .where(AIRecommendation.type == "loan_analytics")
        .order_by(AIRecommendation.created_at.desc(), AIRecommendation.id.desc())
        .limit(1)
    )
    last_run = last.scalar_one_or_none()

    return LoanAnalyticsResponse(
        **summary,
        active_loans=active.scalar_one(),
        total_paid=round(float(paid_total.scalar_one()), 2),
        last_run=last_run.data if last_run else None,
    )
