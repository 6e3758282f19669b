"""Weekly settlement report router."""
import logging

from fastapi import APIRouter, Depends, Query, status

from shuttle_wallet.dependencies import get_dispatcher, get_settlement_service
from shuttle_wallet.schemas.report import (
    ResetRunningBalanceRequest,
    RunningBalance,
    SettleWeekRequest,
    SettlementInputs,
    WeeklyReport,
)
from shuttle_wallet.services.notification_service import LineNotificationDispatcher
from shuttle_wallet.services.settlement_service import SettlementService
from shuttle_wallet.tasks.weekly_settlement import run_weekly_settlement

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/weekly", response_model=WeeklyReport, status_code=status.HTTP_201_CREATED)
async def settle_week(
    request: SettleWeekRequest,
    notify: bool = Query(default=True),
    settlement_service: SettlementService = Depends(get_settlement_service),
    dispatcher: LineNotificationDispatcher = Depends(get_dispatcher),
):
    """Settle a week; the LINE announcement is sent in the background."""
    inputs = SettlementInputs(
        session_count=request.session_count,
        total_players=request.total_players,
        court_cost=request.court_cost,
        shuttlecock_cost=request.shuttlecock_cost,
        base_price=request.base_price,
    )
    return await run_weekly_settlement(
        settlement_service,
        inputs,
        week_start=request.week_start,
        dispatcher=dispatcher if notify else None,
    )


@router.get("/weekly", response_model=list[WeeklyReport])
async def latest_reports(
    limit: int = Query(default=2),
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    return await settlement_service.latest_reports(limit)


@router.get("/running-balance", response_model=RunningBalance)
async def get_running_balance(settlement_service: SettlementService = Depends(get_settlement_service)):
    return await settlement_service.get_running_balance()


@router.put("/running-balance", response_model=RunningBalance)
async def reset_running_balance(
    request: ResetRunningBalanceRequest,
    settlement_service: SettlementService = Depends(get_settlement_service),
):
    """Admin reset of the settlement accumulator."""
    return await settlement_service.reset_running_balance(request.running_balance)
