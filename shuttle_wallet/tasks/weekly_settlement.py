"""Weekly settlement trigger: settle, persist, then announce."""
import asyncio
import logging
from datetime import date
from typing import Optional

from shuttle_wallet.schemas.report import SettlementInputs, WeeklyReport
from shuttle_wallet.services.notification_service import LineNotificationDispatcher
from shuttle_wallet.services.settlement_service import SettlementService
from shuttle_wallet.utils.exceptions import ConcurrentModificationError

logger = logging.getLogger(__name__)

# Track if a settlement is running to prevent concurrent executions
_settlement_running = False

# Strong references to in-flight notification tasks
_notification_tasks: set[asyncio.Task] = set()


async def _announce(dispatcher: LineNotificationDispatcher, report: WeeklyReport) -> None:
    try:
        delivered = await dispatcher.send_weekly_report(report)
    except Exception as e:
        logger.error(f"Weekly report notification for {report.week_id} failed: {e}", exc_info=True)
        return
    if not delivered:
        logger.warning(f"Weekly report for {report.week_id} was settled but not announced")


async def run_weekly_settlement(
    settlement_service: SettlementService,
    inputs: SettlementInputs,
    week_start: Optional[date] = None,
    dispatcher: Optional[LineNotificationDispatcher] = None,
) -> WeeklyReport:
    """Settle one week and hand the report to the dispatcher without waiting for it.

    The report is committed before any notification is attempted, so a
    delivery failure never undoes the settlement.
    """
    global _settlement_running

    if _settlement_running:
        raise ConcurrentModificationError("A weekly settlement is already running")

    _settlement_running = True
    try:
        report = await settlement_service.settle_week(week_start, inputs)
    finally:
        _settlement_running = False

    if dispatcher is not None:
        task = asyncio.create_task(_announce(dispatcher, report))
        _notification_tasks.add(task)
        task.add_done_callback(_notification_tasks.discard)

    return report


async def drain_notifications(timeout: float = 5.0) -> None:
    """Wait for in-flight announcements, e.g. on shutdown."""
    if not _notification_tasks:
        return
    done, pending = await asyncio.wait(list(_notification_tasks), timeout=timeout)
    for task in pending:
        task.cancel()
    if pending:
        logger.warning(f"Cancelled {len(pending)} undelivered weekly report notifications")

