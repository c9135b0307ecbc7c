"""
Reminder message generation.

Two interchangeable generators behind one interface:

* ``TemplateGenerator`` — deterministic text per reminder category.
* ``AIGenerator``       — personalised text from the text-generation service,
  falling back to its template generator whenever the service errors.

``build_message_generator`` picks one by availability.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from datetime import date
from typing import Any

from posdesk.core.config import settings
from posdesk.core.exceptions import TextGenerationError
from posdesk.core.text_generation import TextGenerationClient

logger = logging.getLogger(__name__)

_TITLES = {
    "before_due": "Loan Payment Reminder",
    "on_due": "Payment Due Today",
    "overdue": "Overdue Payment Notice",
}


@dataclass(frozen=True)
class LoanTarget:
    """Plain snapshot of one open loan and its customer, as seen by a run."""

    loan_id: int
    customer_id: int
    customer_name: str
    phone: str
    remaining_balance: float
    due_date: date
    status: str
    repayment_behavior: Any = None


def format_money(amount: float) -> str:
    return f"{settings.CURRENCY_SYMBOL}{amount:,.2f}"


def format_date(d: date) -> str:
    """Short US-style date, e.g. ``10/7/2026``."""
    return f"{d.month}/{d.day}/{d.year}"


def reminder_title(category: str) -> str:
    return _TITLES.get(category, "Loan Reminder")


class MessageGenerator(abc.ABC):
    @abc.abstractmethod
    async def generate(self, target: LoanTarget, category: str, risk: dict[str, Any]) -> str:
        """Return the reminder body for *target* in *category*."""


class TemplateGenerator(MessageGenerator):
    async def generate(self, target: LoanTarget, category: str, risk: dict[str, Any]) -> str:
        return self.render(target, category)

    @staticmethod
    def render(target: LoanTarget, category: str) -> str:
        amount = format_money(target.remaining_balance)
        due = format_date(target.due_date)
        if category == "before_due":
            return (
                f"Dear {target.customer_name}, your loan balance of {amount} is due on "
                f"{due}. Please prepare to pay. Thank you!"
            )
        if category == "overdue":
            return (
                f"Dear {target.customer_name}, your loan balance of {amount} is overdue "
                f"since {due}. Please settle soon to avoid restrictions."
            )
        return (
            f"Reminder: Dear {target.customer_name}, your loan balance of {amount} is due "
            f"today ({due}). Please settle at your earliest convenience."
        )


class AIGenerator(MessageGenerator):
    def __init__(
        self,
        client: TextGenerationClient,
        fallback: MessageGenerator | None = None,
    ) -> None:
        self.client = client
        self.fallback = fallback or TemplateGenerator()

    def build_prompt(self, target: LoanTarget, category: str, risk: dict[str, Any]) -> str:
        risk_level = risk.get("risk_level", "low")
        history_count = risk.get("payment_history_count", 0)
        lines = [
            "Generate a personalized WhatsApp loan reminder message for a customer "
            "with the following details:",
            f"- Name: {target.customer_name}",
            f"- Loan Amount: {format_money(target.remaining_balance)}",
            f"- Due Date: {format_date(target.due_date)}",
            f"- Risk Level: {risk_level}",
            f"- Payment History: {history_count} previous payments",
            f"- Reminder Type: {category}",
            "",
            "The message should be professional but friendly, personalized to the "
            "payment history, appropriate for the reminder type, include the exact "
            "amount and due date, and stay under 160 characters.",
        ]
        if risk_level == "high":
            lines.append("Use slightly more urgent tone.")
        if history_count > 3:
            lines.append("Reference their good payment history.")
        return "\n".join(lines)

    async def generate(self, target: LoanTarget, category: str, risk: dict[str, Any]) -> str:
        try:
            return await self.client.generate(
                self.build_prompt(target, category, risk),
                system=(
                    "You are a helpful assistant that generates personalized loan "
                    "reminder messages."
                ),
                max_tokens=150,
                temperature=0.7,
            )
        except TextGenerationError as exc:
            logger.warning(
                "AI message generation failed for loan %s, using template: %s",
                target.loan_id,
                exc,
            )
            return await self.fallback.generate(target, category, risk)


def build_message_generator(client: TextGenerationClient | None = None) -> MessageGenerator:
    client = client or TextGenerationClient.from_settings()
    if client.is_configured:
        return AIGenerator(client)
    return TemplateGenerator()
