"""Weekly settlement schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from shuttle_wallet.schemas.base import BaseSchema


class SettlementInputs(BaseSchema):
    """Externally supplied figures for one week.

    Costs are optional at the schema level so that a missing figure reaches
    the engine and is rejected there rather than defaulting to zero.
    """

    session_count: int = Field(default=0, ge=0)
    total_players: int = Field(default=0, ge=0)
    court_cost: Optional[Decimal] = None
    shuttlecock_cost: Optional[Decimal] = None
    base_price: Optional[Decimal] = None  # Falls back to settings.settlement_base_price


class SettleWeekRequest(SettlementInputs):
    week_start: Optional[date] = None  # Any day in the week; defaults to the previous week


class WeeklyReport(BaseSchema):
    week_id: str
    start_date: datetime
    end_date: datetime
    session_count: int
    total_players: int
    total_income: Decimal
    court_cost: Decimal
    shuttlecock_cost: Decimal
    total_expenses: Decimal
    gross_profit: Decimal
    balance_before: Decimal
    running_balance: Decimal
    base_price: Decimal
    price_adjustment: Decimal
    recommended_price: Decimal
    price_clamped: bool
    weeks_to_distribute: int
    players_per_week: int
    price_floor: Decimal


class RunningBalance(BaseSchema):
    running_balance: Decimal
    version: int
    updated_at: Optional[datetime] = None


class ResetRunningBalanceRequest(BaseSchema):
    running_balance: Decimal
