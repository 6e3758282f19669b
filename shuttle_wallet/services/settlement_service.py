"""Weekly settlement: income/expense report and next week's price recommendation."""
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import Iterable, Optional
from zoneinfo import ZoneInfo
import logging

from sqlalchemy import select, update

from shuttle_wallet.models.base import utc_now
from shuttle_wallet.models.settlement import SETTLEMENT_STATE_ID, SettlementState, WeeklyReportRecord
from shuttle_wallet.schemas.report import RunningBalance, SettlementInputs, WeeklyReport
from shuttle_wallet.schemas.transaction import Transaction
from shuttle_wallet.services.ledger_store import to_money
from shuttle_wallet.services.transaction_log import TransactionLog
from shuttle_wallet.store import DocumentStore, WEEKLY_REPORTS
from shuttle_wallet.utils import lock_client as default_lock_client
from shuttle_wallet.utils.datetime_helpers import ensure_utc, week_bounds
from shuttle_wallet.utils.exceptions import ConcurrentModificationError, InvalidArgumentError
from shuttle_wallet.utils.lock_client import LockClient

logger = logging.getLogger(__name__)

HALF_UNIT = Decimal("0.5")
SETTLEMENT_LOCK = "settlement:ledger"


def round_to_unit(value: Decimal) -> Decimal:
    """Round to whole baht with halves going toward +infinity (-2.5 becomes -2, 2.5 becomes 3)."""
    return (value + HALF_UNIT).to_integral_value(rounding=ROUND_FLOOR)


class SettlementReportEngine:
    """
    Pure weekly report computation.

    Income counts top-ups only: deductions are corrections, not revenue.
    The running balance is spread over ``weeks_to_distribute`` weeks (and
    ``players_per_week`` players) as a per-player price adjustment, so a
    surplus lowers next week's price and a deficit raises it. The
    recommended price never drops below ``price_floor``; ``price_clamped``
    records when the floor was applied.
    """

    def __init__(
        self,
        base_price: Decimal,
        weeks_to_distribute: int = 4,
        players_per_week: int = 1,
        price_floor: Decimal = Decimal("0"),
    ):
        if weeks_to_distribute < 1:
            raise InvalidArgumentError("weeks_to_distribute must be at least 1")
        if players_per_week < 1:
            raise InvalidArgumentError("players_per_week must be at least 1")
        self.base_price = to_money(base_price, "base_price")
        self.weeks_to_distribute = weeks_to_distribute
        self.players_per_week = players_per_week
        self.price_floor = to_money(price_floor, "price_floor")

    @staticmethod
    def total_income(transactions: Iterable[Transaction], start: datetime, end: datetime) -> Decimal:
        start, end = ensure_utc(start), ensure_utc(end)
        return sum(
            (t.amount for t in transactions if t.amount > 0 and start <= t.timestamp < end),
            Decimal("0"),
        )

    def price_adjustment(self, running_balance: Decimal) -> Decimal:
        return round_to_unit(running_balance / self.weeks_to_distribute / self.players_per_week)

    def compute(
        self,
        week_id: str,
        start: datetime,
        end: datetime,
        transactions: Iterable[Transaction],
        inputs: SettlementInputs,
        previous_running_balance: Decimal,
    ) -> WeeklyReport:
        if inputs.court_cost is None or inputs.shuttlecock_cost is None:
            raise InvalidArgumentError("court_cost and shuttlecock_cost are both required")
        court_cost = to_money(inputs.court_cost, "court_cost")
        shuttlecock_cost = to_money(inputs.shuttlecock_cost, "shuttlecock_cost")
        if court_cost < 0 or shuttlecock_cost < 0:
            raise InvalidArgumentError("Costs cannot be negative")

        base_price = self.base_price if inputs.base_price is None else to_money(inputs.base_price, "base_price")

        total_income = self.total_income(transactions, start, end)
        total_expenses = court_cost + shuttlecock_cost
        gross_profit = total_income - total_expenses
        running_balance = to_money(previous_running_balance + gross_profit, "running_balance")

        adjustment = self.price_adjustment(running_balance)
        recommended_price = base_price - adjustment
        price_clamped = recommended_price < self.price_floor
        if price_clamped:
            logger.warning(
                f"Recommended price {recommended_price} for {week_id} below floor {self.price_floor}; clamping"
            )
            recommended_price = self.price_floor

        return WeeklyReport(
            week_id=week_id,
            start_date=ensure_utc(start),
            end_date=ensure_utc(end),
            session_count=inputs.session_count,
            total_players=inputs.total_players,
            total_income=total_income,
            court_cost=court_cost,
            shuttlecock_cost=shuttlecock_cost,
            total_expenses=total_expenses,
            gross_profit=gross_profit,
            balance_before=previous_running_balance,
            running_balance=running_balance,
            base_price=base_price,
            price_adjustment=adjustment,
            recommended_price=recommended_price,
            price_clamped=price_clamped,
            weeks_to_distribute=self.weeks_to_distribute,
            players_per_week=self.players_per_week,
            price_floor=self.price_floor,
        )


class SettlementService:
    """Owns the persisted running balance and the settled weekly reports."""

    def __init__(
        self,
        store: DocumentStore,
        transaction_log: Optional[TransactionLog] = None,
        engine: Optional[SettlementReportEngine] = None,
        lock_client: Optional[LockClient] = None,
    ):
        self.store = store
        self.settings = store.settings
        self.transaction_log = transaction_log or TransactionLog(store)
        self.engine = engine or SettlementReportEngine(
            base_price=self.settings.settlement_base_price,
            weeks_to_distribute=self.settings.settlement_weeks_to_distribute,
            players_per_week=self.settings.settlement_players_per_week,
            price_floor=self.settings.settlement_price_floor,
        )
        self.lock_client = lock_client or default_lock_client

    def previous_week_start(self, today: Optional[date] = None) -> date:
        """A day in last week, where "today" is the calendar date in the settlement timezone."""
        if today is None:
            today = utc_now().astimezone(ZoneInfo(self.settings.settlement_timezone)).date()
        return today - timedelta(days=7)

    async def get_running_balance(self) -> RunningBalance:
        async with self.store.unit_of_work("settlement.read") as session:
            state = await self._load_state(session)
            return RunningBalance(
                running_balance=state.running_balance,
                version=state.version,
                updated_at=ensure_utc(state.updated_at),
            )

    async def reset_running_balance(self, value) -> RunningBalance:
        """Explicit admin action; the only way the accumulator changes outside a settlement."""
        value = to_money(value, "running_balance")
        async with self.lock_client.lock(SETTLEMENT_LOCK, timeout=self.settings.balance_lock_timeout_seconds):
            async with self.store.unit_of_work("settlement.reset") as session:
                state = await self._load_state(session)
                previous = state.running_balance
                await self._swap_state(session, state.version, value)
                refreshed = RunningBalance(running_balance=value, version=state.version + 1, updated_at=utc_now())

        logger.warning(f"Running balance reset by admin: {previous} -> {value}")
        return refreshed

    async def settle_week(self, week_start: Optional[date], inputs: SettlementInputs) -> WeeklyReport:
        """Compute and persist the report for the week containing ``week_start``.

        The report record and the new running balance commit together. A week
        that has not ended yet, or that has already been settled, is rejected.
        """
        week_start = week_start or self.previous_week_start()
        week_id, start, end = week_bounds(week_start, self.settings.settlement_timezone)
        if end > utc_now():
            raise InvalidArgumentError(f"Week {week_id} is still open until {end.isoformat()}")

        async with self.lock_client.lock(SETTLEMENT_LOCK, timeout=self.settings.balance_lock_timeout_seconds):
            transactions = await self.transaction_log.in_period(start, end)

            async with self.store.unit_of_work("settlement.settle_week") as session:
                if await session.get(WeeklyReportRecord, week_id) is not None:
                    raise InvalidArgumentError(f"Week {week_id} has already been settled")

                state = await self._load_state(session)
                report = self.engine.compute(
                    week_id, start, end, transactions, inputs, Decimal(state.running_balance)
                )
                await self._swap_state(session, state.version, report.running_balance)
                session.add(self._to_record(report))

        logger.info(
            f"Week {week_id} settled: income={report.total_income}, expenses={report.total_expenses}, "
            f"profit={report.gross_profit}, running_balance={report.balance_before}->{report.running_balance}, "
            f"recommended_price={report.recommended_price}"
        )
        await self.store.publish(WEEKLY_REPORTS)
        return report

    async def latest_reports(self, limit: int = 2) -> list[WeeklyReport]:
        if limit < 1:
            raise InvalidArgumentError(f"limit must be positive, got {limit}")

        async with self.store.unit_of_work("settlement.latest_reports") as session:
            result = await session.execute(
                select(WeeklyReportRecord).order_by(WeeklyReportRecord.end_date.desc()).limit(limit)
            )
            return [self._from_record(record) for record in result.scalars().all()]

    # ------------------------------------------------------------------

    @staticmethod
    async def _load_state(session) -> SettlementState:
        state = await session.get(SettlementState, SETTLEMENT_STATE_ID)
        if state is None:
            state = SettlementState(
                id=SETTLEMENT_STATE_ID, running_balance=Decimal("0"), version=0, updated_at=utc_now()
            )
            session.add(state)
            await session.flush()
            logger.info("Settlement state created with running balance 0")
        return state

    @staticmethod
    async def _swap_state(session, expected_version: int, running_balance: Decimal) -> None:
        result = await session.execute(
            update(SettlementState)
            .where(SettlementState.id == SETTLEMENT_STATE_ID)
            .where(SettlementState.version == expected_version)
            .values(running_balance=running_balance, version=expected_version + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                f"Settlement state changed since version {expected_version} was read"
            )

    @staticmethod
    def _to_record(report: WeeklyReport) -> WeeklyReportRecord:
        return WeeklyReportRecord(
            week_id=report.week_id,
            start_date=report.start_date,
            end_date=report.end_date,
            session_count=report.session_count,
            total_players=report.total_players,
            total_income=report.total_income,
            court_cost=report.court_cost,
            shuttlecock_cost=report.shuttlecock_cost,
            total_expenses=report.total_expenses,
            gross_profit=report.gross_profit,
            balance_before=report.balance_before,
            balance_after=report.running_balance,
            base_price=report.base_price,
            price_adjustment=report.price_adjustment,
            recommended_price=report.recommended_price,
            price_clamped=report.price_clamped,
            weeks_to_distribute=report.weeks_to_distribute,
            players_per_week=report.players_per_week,
            price_floor=report.price_floor,
            settled_at=utc_now(),
        )

    @staticmethod
    def _from_record(record: WeeklyReportRecord) -> WeeklyReport:
        return WeeklyReport(
            week_id=record.week_id,
            start_date=ensure_utc(record.start_date),
            end_date=ensure_utc(record.end_date),
            session_count=record.session_count,
            total_players=record.total_players,
            total_income=record.total_income,
            court_cost=record.court_cost,
            shuttlecock_cost=record.shuttlecock_cost,
            total_expenses=record.total_expenses,
            gross_profit=record.gross_profit,
            balance_before=record.balance_before,
            running_balance=record.balance_after,
            base_price=record.base_price,
            price_adjustment=record.price_adjustment,
            recommended_price=record.recommended_price,
            price_clamped=record.price_clamped,
            weeks_to_distribute=record.weeks_to_distribute,
            players_per_week=record.players_per_week,
            price_floor=record.price_floor,
        )
