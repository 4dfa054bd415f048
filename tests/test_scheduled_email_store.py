"""Tests for the scheduled-email store.

Covers the lifecycle rules every caller relies on:
- due-set query only returns pending records whose time has passed
- owner queries never cross owners
- status transitions are conditional and terminal states are absorbing
- sent_at / error_message are populated only for sent / failed
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import PyMongoError

from app.models.scheduled_emails import CANCELLED, CLAIMED, FAILED, PENDING, SENT
from app.utils.errors import PersistenceError, ValidationError

from conftest import NOW


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_creates_pending_record(self, store, make_record):
        record_id = await store.insert(make_record(scheduled_time=NOW + timedelta(hours=1)))

        saved = await store.find_by_id(record_id)
        assert saved.status == PENDING
        assert saved.owner_email == "user@x.com"
        assert saved.scheduled_time == NOW + timedelta(hours=1)
        assert saved.created_at is not None
        assert saved.sent_at is None
        assert saved.error_message is None

    @pytest.mark.asyncio
    async def test_insert_ignores_caller_status(self, store, make_record):
        record = make_record()
        record.status = SENT

        record_id = await store.insert(record)

        assert (await store.find_by_id(record_id)).status == PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["recipient", "subject", "owner_email", "scheduled_time"])
    async def test_insert_rejects_missing_required_field(self, store, make_record, collection, field):
        record = make_record()
        setattr(record, field, None if field == "scheduled_time" else "")

        with pytest.raises(ValidationError):
            await store.insert(record)
        assert await collection.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_insert_wraps_database_errors(self, make_record):
        from app.db.scheduled_email_store import ScheduledEmailStore

        collection = MagicMock()
        collection.insert_one = AsyncMock(side_effect=PyMongoError("connection refused"))

        with pytest.raises(PersistenceError):
            await ScheduledEmailStore(collection).insert(make_record())


class TestFindDuePending:
    @pytest.mark.asyncio
    async def test_only_due_pending_records(self, store, make_record):
        due_id = await store.insert(make_record(scheduled_time=NOW - timedelta(minutes=5)))
        exactly_now_id = await store.insert(make_record(scheduled_time=NOW))
        await store.insert(make_record(scheduled_time=NOW + timedelta(minutes=5)))
        cancelled_id = await store.insert(make_record(scheduled_time=NOW - timedelta(minutes=10)))
        await store.update_status(cancelled_id, CANCELLED)

        due = await store.find_due_pending(NOW, 10)

        assert [r.id for r in due] == [due_id, exactly_now_id]
        assert all(r.status == PENDING and r.scheduled_time <= NOW for r in due)

    @pytest.mark.asyncio
    async def test_oldest_first_and_bounded_by_limit(self, store, make_record):
        ids = []
        for minutes in (3, 30, 10, 1):
            ids.append(await store.insert(make_record(scheduled_time=NOW - timedelta(minutes=minutes))))

        due = await store.find_due_pending(NOW, 2)

        assert len(due) == 2
        assert [r.id for r in due] == [ids[1], ids[2]]

    @pytest.mark.asyncio
    async def test_zero_limit_returns_nothing(self, store, make_record):
        await store.insert(make_record())
        assert await store.find_due_pending(NOW, 0) == []

    @pytest.mark.asyncio
    async def test_claimed_records_are_not_due(self, store, make_record):
        record_id = await store.insert(make_record())
        assert await store.claim(record_id) is True

        assert await store.find_due_pending(NOW, 10) == []


class TestFindByOwner:
    @pytest.mark.asyncio
    async def test_returns_only_owner_records_sorted(self, store, make_record):
        later = await store.insert(make_record(owner="a@x.com", scheduled_time=NOW + timedelta(days=2)))
        sooner = await store.insert(make_record(owner="a@x.com", scheduled_time=NOW + timedelta(days=1)))
        await store.insert(make_record(owner="b@x.com", scheduled_time=NOW))

        records = await store.find_by_owner("a@x.com")

        assert [r.id for r in records] == [sooner, later]
        assert all(r.owner_email == "a@x.com" for r in records)

    @pytest.mark.asyncio
    async def test_unknown_owner_gets_empty_list(self, store, make_record):
        await store.insert(make_record(owner="a@x.com"))
        assert await store.find_by_owner("nobody@x.com") == []


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_sent_sets_sent_at_only(self, store, make_record):
        record_id = await store.insert(make_record())

        assert await store.update_status(record_id, SENT, sent_at=NOW) is True

        saved = await store.find_by_id(record_id)
        assert saved.status == SENT
        assert saved.sent_at == NOW
        assert saved.error_message is None

    @pytest.mark.asyncio
    async def test_failed_sets_error_message_only(self, store, make_record):
        record_id = await store.insert(make_record())
        await store.claim(record_id)

        assert await store.update_status(record_id, FAILED, error_message="Gmail API error: 500") is True

        saved = await store.find_by_id(record_id)
        assert saved.status == FAILED
        assert saved.error_message == "Gmail API error: 500"
        assert saved.sent_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", [SENT, FAILED, CANCELLED])
    @pytest.mark.parametrize("target", [SENT, FAILED, CANCELLED, CLAIMED])
    async def test_terminal_states_are_absorbing(self, store, make_record, terminal, target):
        record_id = await store.insert(make_record())
        await store.update_status(record_id, terminal, sent_at=NOW, error_message="first failure")
        before = await store.find_by_id(record_id)

        changed = await store.update_status(record_id, target, sent_at=NOW + timedelta(hours=1), error_message="second")

        after = await store.find_by_id(record_id)
        assert changed is False
        assert after == before

    @pytest.mark.asyncio
    async def test_cannot_move_back_to_pending(self, store, make_record):
        record_id = await store.insert(make_record())
        with pytest.raises(ValidationError):
            await store.update_status(record_id, PENDING)

    @pytest.mark.asyncio
    async def test_claimed_cannot_be_cancelled(self, store, make_record):
        record_id = await store.insert(make_record())
        await store.claim(record_id)

        assert await store.update_status(record_id, CANCELLED) is False
        assert (await store.find_by_id(record_id)).status == CLAIMED

    @pytest.mark.asyncio
    async def test_second_claim_loses(self, store, make_record):
        record_id = await store.insert(make_record())

        assert await store.claim(record_id) is True
        assert await store.claim(record_id) is False

    @pytest.mark.asyncio
    async def test_owner_constraint(self, store, make_record):
        record_id = await store.insert(make_record(owner="a@x.com"))

        assert await store.update_status(record_id, CANCELLED, owner_email="b@x.com") is False
        assert (await store.find_by_id(record_id)).status == PENDING

        assert await store.update_status(record_id, CANCELLED, owner_email="a@x.com") is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record_id", ["", "not-an-object-id", "0123456789abcdef01234567"])
    async def test_unknown_ids_are_no_ops(self, store, record_id):
        assert await store.update_status(record_id, CANCELLED) is False

    @pytest.mark.asyncio
    async def test_concurrent_cancels_only_one_wins(self, store, make_record):
        record_id = await store.insert(make_record(scheduled_time=NOW + timedelta(hours=1)))

        outcomes = await asyncio.gather(
            store.update_status(record_id, CANCELLED, owner_email="user@x.com"),
            store.update_status(record_id, CANCELLED, owner_email="user@x.com"),
        )

        assert sorted(outcomes) == [False, True]
        assert (await store.find_by_id(record_id)).status == CANCELLED


class TestExpireStaleClaims:
    @pytest.mark.asyncio
    async def test_claim_records_when_it_happened(self, store, make_record):
        record_id = await store.insert(make_record())

        assert await store.claim(record_id, NOW) is True

        assert (await store.find_by_id(record_id)).claimed_at == NOW

    @pytest.mark.asyncio
    async def test_only_claims_past_the_lease_fail(self, store, make_record):
        stale = await store.insert(make_record())
        fresh = await store.insert(make_record())
        pending = await store.insert(make_record())
        await store.claim(stale, NOW - timedelta(minutes=11))
        await store.claim(fresh, NOW - timedelta(minutes=1))

        assert await store.expire_stale_claims(NOW, 600) == 1

        saved = await store.find_by_id(stale)
        assert saved.status == FAILED
        assert saved.error_message == "Dispatch interrupted before delivery was confirmed"
        assert saved.sent_at is None
        assert (await store.find_by_id(fresh)).status == CLAIMED
        assert (await store.find_by_id(pending)).status == PENDING

    @pytest.mark.asyncio
    async def test_claim_without_timestamp_counts_as_stale(self, store, make_record, collection):
        record_id = await store.insert(make_record())
        await collection.update_one({}, {"$set": {"status": CLAIMED}})

        assert await store.expire_stale_claims(NOW, 600) == 1
        assert (await store.find_by_id(record_id)).status == FAILED

    @pytest.mark.asyncio
    async def test_terminal_records_are_untouched(self, store, make_record):
        record_id = await store.insert(make_record())
        await store.claim(record_id, NOW - timedelta(hours=1))
        await store.update_status(record_id, SENT, sent_at=NOW)

        assert await store.expire_stale_claims(NOW, 600) == 0
        assert (await store.find_by_id(record_id)).status == SENT
