# scheduler/dispatcher.py

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

from app.config import (
    DISPATCH_BATCH_LIMIT,
    DISPATCH_CLAIM_LEASE,
    DISPATCH_MAX_ATTEMPTS,
    DISPATCH_RETRY_BACKOFF,
    DISPATCH_TIME_BUDGET,
)
from app.models.scheduled_emails import FAILED, PENDING, SENT, DispatchResult
from app.utils.errors import DeliveryError, PersistenceError

logger = logging.getLogger(__name__)


async def deliver_with_retry(
    record,
    access_token,
    sender,
    max_attempts,
    backoff,
    sleep=asyncio.sleep,
    deadline: Optional[float] = None,
    clock=time.monotonic,
):
    """Send once, retrying only failures the sender marks transient.

    No retry is started once its backoff would run past ``deadline`` (a
    ``clock()`` reading). Raises DeliveryError when the last attempt fails.
    """
    attempt = 1
    while True:
        result = await sender.send(record, access_token)
        if result.success:
            return result
        error = result.error or "Failed to send via Gmail API"
        if not result.transient or attempt >= max_attempts:
            raise DeliveryError(error, transient=result.transient)

        delay = backoff * (2 ** (attempt - 1))
        if deadline is not None and clock() + delay >= deadline:
            raise DeliveryError(f"{error} (retry budget exhausted)", transient=True)

        logger.info(f"Transient failure for {record.id} (attempt {attempt}/{max_attempts}), retrying in {delay:g}s")
        await sleep(delay)
        attempt += 1


async def dispatch_one(
    record,
    store,
    vault,
    sender,
    max_attempts,
    backoff,
    sleep=asyncio.sleep,
    now: Optional[datetime] = None,
    deadline: Optional[float] = None,
    clock=time.monotonic,
) -> Optional[DispatchResult]:
    # Whoever wins the claim owns the send; a lost claim means another worker or a cancel got there first.
    if not await store.claim(record.id, now):
        logger.info(f"Skipping {record.id}: no longer pending")
        return None

    try:
        access_token = vault.recover(record.credential_material)
        await deliver_with_retry(record, access_token, sender, max_attempts, backoff, sleep, deadline, clock)
    except Exception as e:
        error = str(e) or e.__class__.__name__
        if isinstance(e, DeliveryError):
            logger.warning(f"❌ Failed to send email {record.id}: {error}")
        else:
            logger.exception(f"❌ Unexpected error sending email {record.id}")
        await store.update_status(record.id, FAILED, error_message=error)
        return DispatchResult(id=record.id, status=FAILED, error=error)

    await store.update_status(record.id, SENT, sent_at=datetime.now(timezone.utc))
    logger.info(f"✅ Email sent: {record.id}")
    return DispatchResult(id=record.id, status=SENT)


async def process_due_emails(
    store,
    vault,
    sender,
    now: Optional[datetime] = None,
    limit: int = DISPATCH_BATCH_LIMIT,
    max_attempts: int = DISPATCH_MAX_ATTEMPTS,
    backoff: float = DISPATCH_RETRY_BACKOFF,
    sleep=asyncio.sleep,
    time_budget: float = DISPATCH_TIME_BUDGET,
    claim_lease: float = DISPATCH_CLAIM_LEASE,
    clock=time.monotonic,
) -> List[DispatchResult]:
    """Deliver one batch of due scheduled emails.

    Each record is handled on its own: a failure while sending one never stops
    the rest of the batch. Records lost to a concurrent claim or cancel are left
    out of the results.

    Before the batch, claims older than ``claim_lease`` seconds are closed as
    failed. Once ``time_budget`` seconds have passed no new record is started;
    the ones not reached stay pending for the next run.
    """
    now = now or datetime.now(timezone.utc)
    max_attempts = max(1, max_attempts)
    deadline = clock() + time_budget

    expired = await store.expire_stale_claims(now, claim_lease)
    if expired:
        logger.warning(f"Marked {expired} interrupted dispatches as failed")

    due = await store.find_due_pending(now, limit)
    results = []
    for position, record in enumerate(due):
        if clock() >= deadline:
            logger.warning(f"Dispatch time budget spent, leaving {len(due) - position} emails for the next run")
            break
        try:
            result = await dispatch_one(
                record, store, vault, sender, max_attempts, backoff, sleep, now, deadline, clock
            )
        except Exception as e:
            # Store trouble mid-record. The record keeps whatever status it reached.
            logger.exception(f"Scheduler error on {record.id}")
            status = await _current_status(store, record.id)
            result = DispatchResult(id=record.id, status=status, error=str(e))
        if result is not None:
            results.append(result)

    logger.info(f"Processed {len(results)} of {len(due)} due emails")
    return results


async def _current_status(store, record_id) -> str:
    try:
        record = await store.find_by_id(record_id)
    except PersistenceError:
        logger.warning(f"Could not re-read {record_id} after a store failure")
        return PENDING
    return record.status if record else PENDING
