import asyncio
import logging

import httpx

from app.config import (
    BASE_URL,
    DISPATCH_TIME_BUDGET,
    GMAIL_SEND_TIMEOUT,
    INTERNAL_API_KEY,
    SCHEDULER_INTERVAL,
)

logger = logging.getLogger(__name__)

# A batch stops starting work after the budget, but the send in flight may still run its full timeout
TRIGGER_TIMEOUT = DISPATCH_TIME_BUDGET + GMAIL_SEND_TIMEOUT + 15


async def trigger_dispatch(client: httpx.AsyncClient) -> dict:
    """Ask the API to process one batch of due emails."""
    response = await client.get(
        f"{BASE_URL}/pending",
        headers={"Authorization": f"Bearer {INTERNAL_API_KEY}"},
    )
    response.raise_for_status()
    return response.json()


async def send_scheduled_emails(interval: int = SCHEDULER_INTERVAL):
    """Minute trigger for the dispatch worker. A failed tick never stops the loop."""
    async with httpx.AsyncClient(timeout=TRIGGER_TIMEOUT) as client:
        while True:
            try:
                summary = await trigger_dispatch(client)
                if summary.get("processed"):
                    logger.info(f"📨 Dispatched {summary['processed']} scheduled emails")
            except Exception as e:
                logger.error(f"❌ Scheduler error: {e}")

            await asyncio.sleep(interval)
