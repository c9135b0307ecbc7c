"""
Repayment-risk profile built from a customer's payment history.

Advisory only: it shapes the tone of reminder messages and the analytics
rollup, never whether a reminder is sent.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from posdesk.core.exceptions import TextGenerationError
from posdesk.core.text_generation import TextGenerationClient

logger = logging.getLogger(__name__)


def repayment_behavior_of(value: Any) -> dict[str, Any]:
    """The stored behaviour document, or an empty one when the JSON is not an object."""
    return dict(value) if isinstance(value, dict) else {}


def on_time_rate(payment_history: list[dict]) -> float:
    total = len(payment_history)
    if total == 0:
        return 0.0
    on_time = sum(1 for p in payment_history if p.get("on_time"))
    return on_time / total


def risk_level_for(rate: float) -> str:
    if rate > 0.8:
        return "low"
    if rate > 0.5:
        return "medium"
    return "high"


def compute_risk_profile(repayment_behavior: dict | None) -> dict[str, Any]:
    history = list((repayment_behavior or {}).get("payment_history") or [])
    rate = on_time_rate(history)
    return {
        "risk_level": risk_level_for(rate),
        "payment_history_count": len(history),
        "on_time_rate": rate,
        "usually_late": rate < 0.5,
        "last_payment_date": history[-1].get("date") if history else None,
    }


async def personalize(
    repayment_behavior: dict | None,
    remaining_balance: float,
    due_date: str,
    client: TextGenerationClient | None = None,
) -> dict[str, Any]:
    """Local risk profile, enriched with AI insight when a backend is configured."""
    profile = compute_risk_profile(repayment_behavior)
    if client is None or not client.is_configured:
        return profile

    history = list((repayment_behavior or {}).get("payment_history") or [])
    prompt = (
        "Analyze this customer's loan repayment behavior and provide AI insights:\n"
        f"- Payment History: {json.dumps(history[-5:], default=str)}\n"
        f"- Current Loan: {remaining_balance:.2f}\n"
        f"- Due Date: {due_date}\n"
        f"- On-time Rate: {round(profile['on_time_rate'] * 100)}%\n\n"
        "Provide insights as JSON with risk_level, recommended_approach, and next_action."
    )
    try:
        reply = await client.generate(
            prompt,
            system="You are an AI financial analyst. Respond only with valid JSON.",
            max_tokens=200,
            temperature=0.3,
        )
        insights = json.loads(reply)
    except (TextGenerationError, ValueError) as exc:
        logger.warning("AI personalization unavailable, using local profile: %s", exc)
        return profile
    if not isinstance(insights, dict):
        return profile
    return {**profile, **insights}
