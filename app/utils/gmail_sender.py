# app/utils/gmail_sender.py

import base64
import logging
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Optional

import httpx

from app.config import GMAIL_SEND_TIMEOUT, GMAIL_SEND_URL
from app.models.scheduled_emails import ScheduledEmail

logger = logging.getLogger(__name__)

AUTH_ERROR_HINT = " (Access token expired or invalid. User must re-authenticate.)"


@dataclass
class DeliveryResult:
    """Outcome of one send attempt.

    ``transient`` marks failures worth another attempt (timeouts, network
    errors, rate limiting, provider 5xx). Everything else is permanent.
    """

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    transient: bool = False


def build_raw_message(record: ScheduledEmail) -> str:
    message = MIMEText(record.body or "")
    message["to"] = record.recipient
    message["from"] = record.owner_email
    message["subject"] = record.subject
    return base64.urlsafe_b64encode(message.as_bytes()).decode()


class GmailSender:
    """Submits one scheduled email to the Gmail send endpoint.

    No retries happen here; the caller decides what to do with a failure.
    """

    def __init__(
        self,
        send_url: str = GMAIL_SEND_URL,
        timeout: float = GMAIL_SEND_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.send_url = send_url
        self.timeout = timeout
        self.transport = transport

    async def send(self, record: ScheduledEmail, access_token: str) -> DeliveryResult:
        try:
            raw = build_raw_message(record)
        except Exception as e:
            return DeliveryResult(success=False, error=f"Malformed message: {e}")

        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.send_url, json={"raw": raw}, headers=headers)
        except httpx.TimeoutException:
            return DeliveryResult(
                success=False,
                error=f"Gmail API timeout after {self.timeout:g}s",
                transient=True,
            )
        except httpx.HTTPError as e:
            return DeliveryResult(success=False, error=f"Gmail API network error: {e}", transient=True)

        if response.is_success:
            try:
                message_id = response.json().get("id")
            except ValueError:
                message_id = None
            return DeliveryResult(success=True, message_id=message_id)

        status_code = response.status_code
        error = f"Gmail API error: {status_code} - {response.text}"
        if status_code in (401, 403):
            error += AUTH_ERROR_HINT
        logger.warning(f"Gmail send for {record.id} rejected with {status_code}")
        return DeliveryResult(
            success=False,
            error=error,
            transient=status_code == 429 or status_code >= 500,
        )
