"""Weekly settlement models."""
from decimal import Decimal

from sqlalchemy import Column, String, Integer, DateTime, Boolean

from shuttle_wallet.database import Base
from shuttle_wallet.models.base import get_id_column, get_money_column, utc_now

SETTLEMENT_STATE_ID = "ledger"


class SettlementState(Base):
    """Single record carrying the running balance from week to week."""
    __tablename__ = "settlement_state"

    id = get_id_column(primary_key=True, default=SETTLEMENT_STATE_ID)
    running_balance = get_money_column(nullable=False, default=Decimal("0"))
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<SettlementState(running_balance={self.running_balance}, version={self.version})>"


class WeeklyReportRecord(Base):
    """Persisted outcome of one settled week."""
    __tablename__ = "weekly_reports"

    week_id = Column(String(10), primary_key=True)  # ISO week, e.g. 2025-W46
    start_date = Column(DateTime(timezone=True), nullable=False, index=True)
    end_date = Column(DateTime(timezone=True), nullable=False, index=True)
    session_count = Column(Integer, nullable=False)
    total_players = Column(Integer, nullable=False)
    total_income = get_money_column(nullable=False)
    court_cost = get_money_column(nullable=False)
    shuttlecock_cost = get_money_column(nullable=False)
    total_expenses = get_money_column(nullable=False)
    gross_profit = get_money_column(nullable=False)
    balance_before = get_money_column(nullable=False)
    balance_after = get_money_column(nullable=False)
    base_price = get_money_column(nullable=False)
    price_adjustment = get_money_column(nullable=False)
    recommended_price = get_money_column(nullable=False)
    price_clamped = Column(Boolean, nullable=False, default=False)
    weeks_to_distribute = Column(Integer, nullable=False)
    players_per_week = Column(Integer, nullable=False)
    price_floor = get_money_column(nullable=False)
    settled_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<WeeklyReportRecord(week_id={self.week_id}, gross_profit={self.gross_profit})>"
