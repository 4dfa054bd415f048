from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, Literal
from datetime import datetime

PENDING = "pending"
CLAIMED = "claimed"
SENT = "sent"
FAILED = "failed"
CANCELLED = "cancelled"

TERMINAL_STATUSES = frozenset({SENT, FAILED, CANCELLED})

# target status -> statuses it may be reached from
ALLOWED_TRANSITIONS = {
    CLAIMED: frozenset({PENDING}),
    CANCELLED: frozenset({PENDING}),
    SENT: frozenset({PENDING, CLAIMED}),
    FAILED: frozenset({PENDING, CLAIMED}),
}

Status = Literal["pending", "claimed", "sent", "failed", "cancelled"]


class ScheduledEmail(BaseModel):
    """One deferred send as held by the store."""

    id: Optional[str] = None
    owner_email: str = ""
    recipient: str = ""
    subject: str = ""
    body: str = ""
    scheduled_time: Optional[datetime] = None
    status: Status = PENDING
    created_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    credential_material: Optional[str] = None


class ScheduleEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str
    subject: str
    body: str = ""
    scheduled_time: str = Field(alias="scheduledTime")  # ISO-8601 or phrases like "tomorrow 9am"
    user_email: EmailStr = Field(alias="userEmail")
    access_token: str = Field(alias="accessToken")


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_email: EmailStr = Field(alias="userEmail")


class ScheduledEmailResponse(BaseModel):
    """Owner-facing view of a record. Never carries the credential."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    to: str
    subject: str
    body: str
    scheduled_time: datetime = Field(alias="scheduledTime")
    status: Status
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    sent_at: Optional[datetime] = Field(default=None, alias="sentAt")
    error_message: Optional[str] = Field(default=None, alias="errorMessage")

    @classmethod
    def from_record(cls, record: ScheduledEmail) -> "ScheduledEmailResponse":
        return cls(
            id=record.id,
            to=record.recipient,
            subject=record.subject,
            body=record.body,
            scheduled_time=record.scheduled_time,
            status=record.status,
            created_at=record.created_at,
            sent_at=record.sent_at,
            error_message=record.error_message,
        )


class DispatchResult(BaseModel):
    id: str
    status: Status
    error: Optional[str] = None
