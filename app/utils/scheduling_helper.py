from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from app.config import SCHEDULE_PAST_GRACE
from app.models.scheduled_emails import (
    CANCELLED,
    ScheduledEmail,
    ScheduledEmailResponse,
    ScheduleEmailRequest,
)
from app.utils.errors import ValidationError
from app.utils.time_slots import parse_scheduled_time


def normalize_owner_email(value) -> str:
    """Owner addresses are compared case-insensitively everywhere."""
    return str(value or "").strip().lower()


async def schedule_email(
    request: ScheduleEmailRequest,
    store,
    vault,
    now: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """Admit a scheduling request and persist it as pending.

    Returns the new record id and the resolved UTC send time.
    """
    required = {
        "to": request.to,
        "subject": request.subject,
        "scheduledTime": request.scheduled_time,
        "userEmail": request.user_email,
        "accessToken": request.access_token,
    }
    missing = [name for name, value in required.items() if not value or not str(value).strip()]
    if missing:
        raise ValidationError("Missing required fields")

    scheduled_for = parse_scheduled_time(request.scheduled_time, now=now)
    if scheduled_for is None:
        raise ValidationError("Could not parse the scheduled time.")

    now = now or datetime.now(timezone.utc)
    if scheduled_for < now - timedelta(seconds=SCHEDULE_PAST_GRACE):
        raise ValidationError("Scheduled time must be in the future.")

    record = ScheduledEmail(
        owner_email=normalize_owner_email(request.user_email),
        recipient=request.to.strip(),
        subject=request.subject,
        body=request.body or "",
        scheduled_time=scheduled_for,
        credential_material=vault.store(request.access_token),
    )
    record_id = await store.insert(record)
    return record_id, scheduled_for


async def list_for_owner(owner_email: str, store) -> List[ScheduledEmailResponse]:
    owner_email = normalize_owner_email(owner_email)
    if not owner_email:
        raise ValidationError("User email required")
    records = await store.find_by_owner(owner_email)
    return [ScheduledEmailResponse.from_record(record) for record in records]


async def cancel_scheduled_email(record_id: str, owner_email: str, store) -> bool:
    """Cancel a pending send owned by ``owner_email``.

    False means not found, not owned or no longer pending. That is an expected
    answer, not a failure.
    """
    owner_email = normalize_owner_email(owner_email)
    if not record_id or not owner_email:
        return False
    return await store.update_status(record_id, CANCELLED, owner_email=owner_email)
