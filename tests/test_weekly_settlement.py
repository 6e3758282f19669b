"""Tests for the weekly settlement trigger."""
import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from shuttle_wallet.schemas.report import SettlementInputs
from shuttle_wallet.tasks import weekly_settlement
from shuttle_wallet.tasks.weekly_settlement import drain_notifications, run_weekly_settlement
from shuttle_wallet.utils.exceptions import ConcurrentModificationError, InvalidArgumentError

INPUTS = SettlementInputs(court_cost=Decimal("100"), shuttlecock_cost=Decimal("20"))


@pytest.mark.asyncio
async def test_settles_and_announces(settlement_service):
    dispatcher = AsyncMock()
    dispatcher.send_weekly_report = AsyncMock(return_value=True)

    report = await run_weekly_settlement(settlement_service, INPUTS, date(2025, 11, 10), dispatcher)
    await drain_notifications()

    assert report.week_id == "2025-W46"
    dispatcher.send_weekly_report.assert_awaited_once_with(report)


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_settlement(settlement_service):
    dispatcher = AsyncMock()
    dispatcher.send_weekly_report = AsyncMock(side_effect=RuntimeError("LINE is down"))

    report = await run_weekly_settlement(settlement_service, INPUTS, date(2025, 11, 10), dispatcher)
    await drain_notifications()

    state = await settlement_service.get_running_balance()
    assert state.running_balance == report.running_balance == Decimal("-120")
    assert len(await settlement_service.latest_reports()) == 1


@pytest.mark.asyncio
async def test_settlement_does_not_wait_for_notification(settlement_service):
    release = asyncio.Event()

    async def slow_send(report):
        await release.wait()
        return True

    dispatcher = AsyncMock()
    dispatcher.send_weekly_report = slow_send

    report = await asyncio.wait_for(
        run_weekly_settlement(settlement_service, INPUTS, date(2025, 11, 10), dispatcher),
        timeout=5,
    )
    assert report.week_id == "2025-W46"

    release.set()
    await drain_notifications()


@pytest.mark.asyncio
async def test_concurrent_runs_are_rejected(settlement_service, monkeypatch):
    monkeypatch.setattr(weekly_settlement, "_settlement_running", True)

    with pytest.raises(ConcurrentModificationError):
        await run_weekly_settlement(settlement_service, INPUTS, date(2025, 11, 10))


@pytest.mark.asyncio
async def test_guard_is_released_after_failure(settlement_service):
    with pytest.raises(InvalidArgumentError):
        await run_weekly_settlement(settlement_service, SettlementInputs(), date(2025, 11, 10))

    assert weekly_settlement._settlement_running is False
    report = await run_weekly_settlement(settlement_service, INPUTS, date(2025, 11, 10))
    assert report.week_id == "2025-W46"
