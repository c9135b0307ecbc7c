"""
Run the loan reminder scan once, for cron or any external scheduler.

    python -m posdesk.jobs.loan_reminders

Prints the JSON summary; exits non-zero when the run fails.
"""

from __future__ import annotations

import asyncio
import json
import sys

from posdesk.core.messaging import build_message_generator
from posdesk.core.notifications import WhatsAppChannel
from posdesk.core.reminders import run_loan_reminders
from posdesk.core.text_generation import TextGenerationClient
from posdesk.db.session import async_session_factory, engine
from posdesk.main import init_db
from posdesk.schemas.loan import ReminderRunResponse


async def main() -> int:
    await init_db()
    client = TextGenerationClient.from_settings()
    try:
        async with async_session_factory() as session:
            result = await run_loan_reminders(
                session,
                build_message_generator(client),
                WhatsAppChannel.from_settings(),
                client,
            )
    finally:
        await engine.dispose()

    if not result.success:
        print(json.dumps({"success": False, "error": result.error}))
        return 1
    summary = ReminderRunResponse(
        success=True,
        reminders_generated=result.reminders_generated,
        messages_scheduled=result.messages_scheduled,
        loans_processed=result.loans_processed,
    )
    print(summary.model_dump_json(by_alias=True))
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
