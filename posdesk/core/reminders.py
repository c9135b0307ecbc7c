"""
Loan reminder engine.

One run scans every open loan, classifies it by distance to its due date,
creates at most one reminder per (loan, category, local day), hands the
message to the notification channel and records whether delivery was
confirmed.  Loans are processed one after another; a failure on one loan
is logged and the run moves on.  Only failing to list the loans aborts a
run.

Delivery is best effort and at most once per day: an unconfirmed send
leaves the reminder unsent and is not retried within the run.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from posdesk.core.config import parse_tz_offset, settings
from posdesk.core.exceptions import LoanFetchError
from posdesk.core.messaging import LoanTarget, MessageGenerator, reminder_title
from posdesk.core.notifications import NotificationChannel
from posdesk.core.risk import personalize, repayment_behavior_of
from posdesk.core.text_generation import TextGenerationClient
from posdesk.models.ai_recommendation import AIRecommendation
from posdesk.models.loan import OPEN_LOAN_STATUSES, Customer, Loan, LoanReminder

logger = logging.getLogger(__name__)

BEFORE_DUE_DAYS = 2


def local_today() -> date:
    return datetime.now(parse_tz_offset(settings.TIMEZONE_OFFSET)).date()


def days_until_due(due: date | datetime, today: date | datetime) -> int:
    """Whole days from *today* to *due*, rounded up (``ceil``)."""
    if isinstance(due, datetime) or isinstance(today, datetime):
        tz = getattr(due, "tzinfo", None) or getattr(today, "tzinfo", None)
        if not isinstance(due, datetime):
            due = datetime.combine(due, time.min, tzinfo=tz)
        if not isinstance(today, datetime):
            today = datetime.combine(today, time.min, tzinfo=tz)
    return math.ceil((due - today).total_seconds() / 86400)


def classify(days: int) -> str | None:
    """Exact-match buckets: two days out, due today, or past due."""
    if days == BEFORE_DUE_DAYS:
        return "before_due"
    if days == 0:
        return "on_due"
    if days < 0:
        return "overdue"
    return None


def summarize_loans(rows: Iterable[tuple[float, date, Any]], today: date) -> dict:
    """Rollup over unpaid loans given ``(remaining_balance, due_date, repayment_behavior)``."""
    total = 0.0
    overdue = 0
    risk: Counter[str] = Counter()
    for balance, due_date, behavior in rows:
        total += balance or 0.0
        if due_date < today:
            overdue += 1
        level = repayment_behavior_of(behavior).get("risk_level")
        risk[level if isinstance(level, str) and level else "medium"] += 1
    return {
        "total_outstanding": round(total, 2),
        "overdue_count": overdue,
        "risk_distribution": dict(risk),
    }


@dataclass
class ReminderRunResult:
    success: bool = True
    loans_processed: int = 0
    reminders_generated: int = 0
    messages_scheduled: int = 0
    error: str | None = None


class LoanReminderEngine:
    def __init__(
        self,
        db: AsyncSession,
        generator: MessageGenerator,
        channel: NotificationChannel,
        ai_client: TextGenerationClient | None = None,
    ) -> None:
        self.db = db
        self.generator = generator
        self.channel = channel
        self.ai_client = ai_client

    async def run(self, today: date | None = None) -> ReminderRunResult:
        today = today or local_today()
        logger.info("Starting loan reminder run for %s", today.isoformat())

        targets = await self._fetch_targets()
        logger.info("Found %d loans to process", len(targets))
        result = ReminderRunResult(loans_processed=len(targets))

        for target in targets:
            try:
                await self._process(target, today, result)
            except Exception as exc:
                await self.db.rollback()
                logger.error("Error processing loan %s: %s", target.loan_id, exc, exc_info=True)

        await self.update_analytics(today)
        logger.info(
            "Loan reminder run completed. Reminders generated: %d, messages sent: %d",
            result.reminders_generated,
            result.messages_scheduled,
        )
        return result

    async def _fetch_targets(self) -> list[LoanTarget]:
        try:
            rows = await self.db.execute(
                select(Loan, Customer)
                .join(Customer, Loan.customer_id == Customer.id)
                .where(Loan.status.in_(OPEN_LOAN_STATUSES), Loan.remaining_balance > 0)
                .order_by(Loan.due_date, Loan.id)
            )
            return [
                LoanTarget(
                    loan_id=loan.id,
                    customer_id=customer.id,
                    customer_name=customer.name,
                    phone=customer.phone,
                    remaining_balance=loan.remaining_balance,
                    due_date=loan.due_date,
                    status=loan.status,
                    repayment_behavior=customer.repayment_behavior,
                )
                for loan, customer in rows.all()
            ]
        except SQLAlchemyError as exc:
            logger.error("Error fetching loans: %s", exc)
            raise LoanFetchError(f"Could not list loans: {exc}") from exc

    async def _process(self, target: LoanTarget, today: date, result: ReminderRunResult) -> None:
        days = days_until_due(target.due_date, today)
        category = classify(days)
        logger.debug(
            "Loan %s for %s due in %d days -> %s",
            target.loan_id,
            target.customer_name,
            days,
            category or "no action",
        )
        if category is None:
            return

        if category == "overdue" and target.status == "active":
            await self.db.execute(
                update(Loan)
                .where(Loan.id == target.loan_id, Loan.status == "active")
                .values(status="overdue")
            )
            await self.db.commit()
            logger.info("Loan %s marked overdue", target.loan_id)

        if await self._already_reminded(target.loan_id, category, today):
            logger.info("Reminder (%s) already created today for loan %s", category, target.loan_id)
            return

        behavior = repayment_behavior_of(target.repayment_behavior)
        if target.repayment_behavior and not isinstance(target.repayment_behavior, dict):
            logger.warning("Ignoring malformed repayment behaviour for customer %s", target.customer_id)
        risk = await personalize(
            behavior,
            target.remaining_balance,
            target.due_date.isoformat(),
            self.ai_client,
        )
        message = await self.generator.generate(target, category, risk)

        reminder = LoanReminder(
            loan_id=target.loan_id,
            reminder_type=category,
            message_content=message,
            scheduled_date=datetime.now(timezone.utc),
            reminder_date=today,
            ai_personalization=risk,
        )
        self.db.add(reminder)
        try:
            await self.db.commit()
        except IntegrityError:
            # Another run created the same (loan, category, day) reminder first
            await self.db.rollback()
            logger.info("Reminder (%s) for loan %s lost the race, skipping", category, target.loan_id)
            return

        result.reminders_generated += 1
        if await self._dispatch(target, reminder):
            result.messages_scheduled += 1

    async def _already_reminded(self, loan_id: int, category: str, today: date) -> bool:
        result = await self.db.execute(
            select(LoanReminder.id)
            .where(
                LoanReminder.loan_id == loan_id,
                LoanReminder.reminder_type == category,
                LoanReminder.reminder_date == today,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _dispatch(self, target: LoanTarget, reminder: LoanReminder) -> bool:
        try:
            message_id = await self.channel.send(
                target.phone,
                reminder_title(reminder.reminder_type),
                reminder.message_content,
                "alert",
            )
        except Exception as exc:
            logger.error("WhatsApp sending failed for loan %s: %s", target.loan_id, exc)
            return False

        reminder.is_sent = True
        reminder.sent_date = datetime.now(timezone.utc)
        reminder.whatsapp_message_id = message_id
        await self.db.commit()
        logger.info("Reminder sent to %s for loan %s", target.customer_name, target.loan_id)
        return True

    async def update_analytics(self, today: date) -> dict | None:
        """Persist the daily loan rollup; failures are logged, never raised."""
        try:
            rows = await self.db.execute(
                select(Loan.remaining_balance, Loan.due_date, Customer.repayment_behavior)
                .join(Customer, Loan.customer_id == Customer.id)
                .where(Loan.status != "paid")
            )
            loans = rows.all()
            if not loans:
                return None
            summary = summarize_loans(loans, today)
            overdue = summary["overdue_count"]
            self.db.add(
                AIRecommendation(
                    type="loan_analytics",
                    title="Daily Loan Analytics",
                    message=(
                        f"Outstanding: {settings.CURRENCY_SYMBOL}"
                        f"{summary['total_outstanding']:.2f}, Overdue: {overdue} loans"
                    ),
                    priority="high" if overdue > settings.ANALYTICS_HIGH_PRIORITY_OVERDUE else "medium",
                    data={**summary, "generated_at": datetime.now(timezone.utc).isoformat()},
                )
            )
            await self.db.commit()
            return summary
        except Exception:
            await self.db.rollback()
            logger.exception("Error updating loan analytics")
            return None


async def run_loan_reminders(
    db: AsyncSession,
    generator: MessageGenerator,
    channel: NotificationChannel,
    ai_client: TextGenerationClient | None = None,
    today: date | None = None,
) -> ReminderRunResult:
    """Run once and report the outcome instead of raising on batch failure."""
    engine = LoanReminderEngine(db, generator, channel, ai_client)
    try:
        return await engine.run(today)
    except LoanFetchError as exc:
        logger.error("Error in loan reminder scheduler: %s", exc)
        return ReminderRunResult(success=False, error=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error in loan reminder scheduler")
        return ReminderRunResult(success=False, error=f"Loan reminder run failed: {exc}")
