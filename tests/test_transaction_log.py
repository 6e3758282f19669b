"""Tests for TransactionLog read projections."""
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from shuttle_wallet.models.transaction import TransactionDocument
from shuttle_wallet.models.base import new_document_id
from shuttle_wallet.utils.exceptions import InvalidArgumentError


async def _insert(store, user_id: str, amount: str, timestamp: datetime, description: str = "seed"):
    async with store.unit_of_work("test.insert") as session:
        session.add(TransactionDocument(
            id=new_document_id(),
            user_id=user_id,
            user_name=f"name-{user_id}",
            amount=Decimal(amount),
            description=description,
            timestamp=timestamp,
        ))


@pytest.mark.asyncio
async def test_for_user_is_newest_first_and_filtered(ledger, transaction_log, user_factory):
    alice = await user_factory(name="Alice")
    bob = await user_factory(name="Bob")

    for i in range(3):
        await ledger.top_up(alice.id, None, "10", f"alice {i}")
        await ledger.top_up(bob.id, None, "20", f"bob {i}")

    history = await transaction_log.for_user(alice.id)

    assert [t.description for t in history] == ["alice 2", "alice 1", "alice 0"]
    assert all(t.user_id == alice.id for t in history)
    timestamps = [t.timestamp for t in history]
    assert timestamps == sorted(timestamps, reverse=True)


@pytest.mark.asyncio
async def test_for_user_respects_limit(ledger, transaction_log, user_factory):
    user = await user_factory()
    for i in range(5):
        await ledger.top_up(user.id, None, "1", f"entry {i}")

    history = await transaction_log.for_user(user.id, limit=2)

    assert [t.description for t in history] == ["entry 4", "entry 3"]


@pytest.mark.asyncio
async def test_for_user_default_limit_comes_from_settings(store, transaction_log):
    base = datetime(2025, 1, 6, tzinfo=UTC)
    for i in range(store.settings.transaction_history_limit + 5):
        await _insert(store, "u1", "1", base + timedelta(minutes=i))

    history = await transaction_log.for_user("u1")

    assert len(history) == store.settings.transaction_history_limit


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_limit_must_be_positive(transaction_log, limit):
    with pytest.raises(InvalidArgumentError):
        await transaction_log.for_user("u1", limit=limit)
    with pytest.raises(InvalidArgumentError):
        await transaction_log.all(limit=limit)


@pytest.mark.asyncio
async def test_all_spans_users_newest_first(store, transaction_log):
    base = datetime(2025, 1, 6, tzinfo=UTC)
    await _insert(store, "u1", "10", base, "first")
    await _insert(store, "u2", "-5", base + timedelta(hours=1), "second")
    await _insert(store, "deleted-user", "7", base + timedelta(hours=2), "orphan")

    everything = await transaction_log.all()

    assert [t.description for t in everything] == ["orphan", "second", "first"]


@pytest.mark.asyncio
async def test_in_period_is_half_open_and_ascending(store, transaction_log):
    start = datetime(2025, 11, 9, 17, 0, tzinfo=UTC)
    end = start + timedelta(days=7)
    await _insert(store, "u1", "1", start - timedelta(microseconds=1), "before")
    await _insert(store, "u1", "2", start, "at start")
    await _insert(store, "u2", "3", start + timedelta(days=3), "middle")
    await _insert(store, "u1", "4", end, "at end")

    in_week = await transaction_log.in_period(start, end)

    assert [t.description for t in in_week] == ["at start", "middle"]


@pytest.mark.asyncio
async def test_in_period_rejects_empty_range(transaction_log):
    moment = datetime(2025, 1, 1, tzinfo=UTC)
    with pytest.raises(InvalidArgumentError):
        await transaction_log.in_period(moment, moment)


@pytest.mark.asyncio
async def test_timestamps_are_utc_aware(ledger, transaction_log, user_factory):
    user = await user_factory()
    await ledger.top_up(user.id, None, "10", "Top up")

    history = await transaction_log.for_user(user.id)

    assert history[0].timestamp.tzinfo is UTC


@pytest.mark.asyncio
async def test_for_user_ascending_reconstructs_balance(ledger, transaction_log, user_factory):
    user = await user_factory(initial_balance="40")
    await ledger.top_up(user.id, None, "60", "Top up")
    await ledger.deduct(user.id, None, "150", "Fees")

    ascending = await transaction_log.for_user_ascending(user.id)

    assert [t.amount for t in ascending] == [Decimal("60"), Decimal("-150")]
    assert Decimal("40") + sum(t.amount for t in ascending) == Decimal("-50")
