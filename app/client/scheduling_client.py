# app/client/scheduling_client.py

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from app.config import BASE_URL

logger = logging.getLogger(__name__)

UNEXPECTED_RESPONSE = "Unexpected response from scheduling API"


class SchedulingClient:
    """Front-end facade over the scheduling routes.

    Mirrors what the composer and scheduled-emails views need: ``is_loading``,
    ``error`` and the current ``scheduled_emails`` list. Calls never raise;
    failures land in ``error``. Identical calls made while one is already in
    flight share its result instead of hitting the API twice.
    """

    def __init__(
        self,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self.error: Optional[str] = None
        self.scheduled_emails: list = []
        self._active = 0
        self._in_flight: dict = {}

    @property
    def is_loading(self) -> bool:
        return self._active > 0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _once(self, key, factory):
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._tracked(factory))
            self._in_flight[key] = task
            task.add_done_callback(lambda _: self._in_flight.pop(key, None))
        return await asyncio.shield(task)

    async def _tracked(self, factory):
        self._active += 1
        self.error = None
        try:
            return await factory()
        finally:
            self._active -= 1

    async def schedule_email(
        self,
        to: str,
        subject: str,
        body: str,
        scheduled_time: datetime,
        user_email: str,
        access_token: str,
    ) -> bool:
        if scheduled_time.tzinfo is None:
            scheduled_time = scheduled_time.replace(tzinfo=timezone.utc)
        payload = {
            "to": to,
            "subject": subject,
            "body": body,
            "scheduledTime": scheduled_time.astimezone(timezone.utc).isoformat(),
            "userEmail": user_email,
            "accessToken": access_token,
        }
        key = ("schedule", to, subject, body, payload["scheduledTime"], user_email)
        return await self._once(key, lambda: self._schedule(payload))

    async def _schedule(self, payload: dict) -> bool:
        try:
            async with self._client() as client:
                response = await client.post("/schedule", json=payload)
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error scheduling email: {e}")
            self.error = str(e) or "Unknown error"
            return False

        if not isinstance(result, dict):
            self.error = UNEXPECTED_RESPONSE
            return False

        if not response.is_success:
            self.error = result.get("error") or "Failed to schedule email"
            return False

        await self._load(payload["userEmail"])
        return True

    async def load_scheduled_emails(self, user_email: str) -> list:
        return await self._once(("load", user_email), lambda: self._load(user_email))

    async def _load(self, user_email: str) -> list:
        try:
            async with self._client() as client:
                response = await client.get("/user-scheduled", params={"userEmail": user_email})
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching scheduled emails: {e}")
            self.error = str(e) or "Failed to load scheduled emails"
            return self.scheduled_emails

        if not isinstance(result, dict) or not isinstance(result.get("emails", []), list):
            self.error = UNEXPECTED_RESPONSE
            return self.scheduled_emails

        if not response.is_success:
            self.error = result.get("error") or "Failed to load scheduled emails"
            return self.scheduled_emails

        self.scheduled_emails = result.get("emails", [])
        return self.scheduled_emails

    async def cancel_scheduled_email(self, email_id: str, user_email: str) -> bool:
        return await self._once(("cancel", email_id, user_email), lambda: self._cancel(email_id, user_email))

    async def _cancel(self, email_id: str, user_email: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.post("/cancel", json={"id": email_id, "userEmail": user_email})
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error cancelling scheduled email: {e}")
            self.error = str(e) or "Unknown error"
            return False

        if not isinstance(result, dict):
            self.error = UNEXPECTED_RESPONSE
            return False

        if not response.is_success or not result.get("success"):
            self.error = "Failed to cancel scheduled email"
            return False

        await self._load(user_email)
        return True
