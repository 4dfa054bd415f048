from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from mongomock_motor import AsyncMongoMockClient

from app.db.scheduled_email_store import ScheduledEmailStore
from app.models.scheduled_emails import ScheduledEmail
from app.utils.credential_vault import Base64CredentialVault
from app.utils.gmail_sender import DeliveryResult

NOW = datetime(2026, 10, 19, 15, 0, tzinfo=timezone.utc)


@pytest.fixture
def collection():
    return AsyncMongoMockClient()["test-db"]["scheduled_emails"]


@pytest.fixture
def store(collection):
    return ScheduledEmailStore(collection)


@pytest.fixture
def vault():
    return Base64CredentialVault()


@pytest.fixture
def sender():
    """Mail sender that accepts every message."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=DeliveryResult(success=True, message_id="gmail-msg-1"))
    return mock


@pytest.fixture
def make_record(vault):
    def _make(
        owner="user@x.com",
        to="friend@y.com",
        subject="Hello",
        body="See you soon",
        scheduled_time=None,
        token="ya29.token",
    ):
        return ScheduledEmail(
            owner_email=owner,
            recipient=to,
            subject=subject,
            body=body,
            scheduled_time=scheduled_time or NOW - timedelta(seconds=1),
            credential_material=vault.store(token),
        )

    return _make
