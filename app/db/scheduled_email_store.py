# app/db/scheduled_email_store.py

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo.errors import PyMongoError

from app.models.scheduled_emails import (
    ALLOWED_TRANSITIONS,
    CLAIMED,
    FAILED,
    PENDING,
    SENT,
    ScheduledEmail,
)
from app.utils.errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("recipient", "subject", "scheduled_time", "owner_email")
INTERRUPTED_DISPATCH = "Dispatch interrupted before delivery was confirmed"
OLDEST_FIRST = [("scheduled_time", 1), ("_id", 1)]


def _to_storage_time(value: datetime) -> datetime:
    # Mongo keeps naive UTC datetimes
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_storage_time(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _parse_id(record_id: str) -> Optional[ObjectId]:
    if isinstance(record_id, ObjectId):
        return record_id
    if not record_id or not ObjectId.is_valid(record_id):
        return None
    return ObjectId(record_id)


def _to_record(doc: dict) -> ScheduledEmail:
    return ScheduledEmail(
        id=str(doc["_id"]),
        owner_email=doc["owner_email"],
        recipient=doc["recipient"],
        subject=doc["subject"],
        body=doc.get("body") or "",
        scheduled_time=_from_storage_time(doc["scheduled_time"]),
        status=doc["status"],
        created_at=_from_storage_time(doc.get("created_at")),
        claimed_at=_from_storage_time(doc.get("claimed_at")),
        sent_at=_from_storage_time(doc.get("sent_at")),
        error_message=doc.get("error_message"),
        credential_material=doc.get("credential_material"),
    )


class ScheduledEmailStore:
    """Durable home of scheduled sends.

    Every status change goes through ``update_status``, a conditional write that
    only matches records still in one of the allowed source states. A write that
    matches nothing returns False and is not an error: it is how a late cancel or
    a second worker racing on the same record is absorbed.
    """

    def __init__(self, collection):
        self.collection = collection

    async def insert(self, record: ScheduledEmail) -> str:
        missing = [name for name in REQUIRED_FIELDS if not getattr(record, name)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        doc = {
            "owner_email": record.owner_email,
            "recipient": record.recipient,
            "subject": record.subject,
            "body": record.body or "",
            "scheduled_time": _to_storage_time(record.scheduled_time),
            "status": PENDING,
            "created_at": _to_storage_time(datetime.now(timezone.utc)),
            "credential_material": record.credential_material,
        }
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            logger.exception("Failed to insert scheduled email")
            raise PersistenceError(f"Failed to schedule email: {e}") from e
        return str(result.inserted_id)

    async def find_by_id(self, record_id: str) -> Optional[ScheduledEmail]:
        object_id = _parse_id(record_id)
        if object_id is None:
            return None
        try:
            doc = await self.collection.find_one({"_id": object_id})
        except PyMongoError as e:
            raise PersistenceError(f"Failed to fetch scheduled email: {e}") from e
        return _to_record(doc) if doc else None

    async def find_due_pending(self, now: datetime, limit: int) -> List[ScheduledEmail]:
        """Pending records whose scheduled time has passed, oldest first."""
        if limit <= 0:
            return []
        try:
            cursor = self.collection.find(
                {"status": PENDING, "scheduled_time": {"$lte": _to_storage_time(now)}},
                sort=OLDEST_FIRST,
                limit=limit,
            )
            docs = await cursor.to_list(length=limit)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to fetch pending emails: {e}") from e
        return [_to_record(doc) for doc in docs]

    async def find_by_owner(self, owner_email: str) -> List[ScheduledEmail]:
        try:
            cursor = self.collection.find({"owner_email": owner_email}, sort=OLDEST_FIRST)
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to fetch scheduled emails: {e}") from e
        return [_to_record(doc) for doc in docs]

    async def update_status(
        self,
        record_id: str,
        new_status: str,
        sent_at: Optional[datetime] = None,
        error_message: Optional[str] = None,
        owner_email: Optional[str] = None,
        claimed_at: Optional[datetime] = None,
    ) -> bool:
        """Move a record to ``new_status`` if its current status allows it.

        Returns True when this call performed the transition, False when the
        record is missing, owned by someone else or already past the source state.
        """
        sources = ALLOWED_TRANSITIONS.get(new_status)
        if sources is None:
            raise ValidationError(f"Cannot transition a scheduled email to '{new_status}'")

        object_id = _parse_id(record_id)
        if object_id is None:
            return False

        query = {"_id": object_id, "status": {"$in": sorted(sources)}}
        if owner_email is not None:
            query["owner_email"] = owner_email

        update = {"$set": {"status": new_status}}
        if new_status == CLAIMED:
            update["$set"]["claimed_at"] = _to_storage_time(claimed_at or datetime.now(timezone.utc))
        if new_status == SENT:
            update["$set"]["sent_at"] = _to_storage_time(sent_at or datetime.now(timezone.utc))
            update["$unset"] = {"error_message": ""}
        elif new_status == FAILED:
            update["$set"]["error_message"] = error_message or "Failed to send via Gmail API"
            update["$unset"] = {"sent_at": ""}

        try:
            result = await self.collection.update_one(query, update)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to update scheduled email {record_id}: {e}") from e

        if result.modified_count == 0:
            logger.debug(f"No-op transition of {record_id} to {new_status}")
            return False
        return True

    async def claim(self, record_id: str, now: Optional[datetime] = None) -> bool:
        return await self.update_status(record_id, CLAIMED, claimed_at=now)

    async def expire_stale_claims(self, now: datetime, lease: float) -> int:
        """Fail records whose claim is older than ``lease`` seconds.

        A worker that died between claim and outcome leaves the record in
        `claimed`. The delivery may or may not have happened, so the record is
        closed as failed rather than put back to pending.
        """
        cutoff = _to_storage_time(now - timedelta(seconds=lease))
        query = {
            "status": CLAIMED,
            "$or": [{"claimed_at": {"$lte": cutoff}}, {"claimed_at": {"$exists": False}}],
        }
        update = {
            "$set": {"status": FAILED, "error_message": INTERRUPTED_DISPATCH},
            "$unset": {"sent_at": ""},
        }
        try:
            result = await self.collection.update_many(query, update)
        except PyMongoError as e:
            raise PersistenceError(f"Failed to expire stale claims: {e}") from e
        return result.modified_count
