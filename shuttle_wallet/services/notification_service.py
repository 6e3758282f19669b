"""LINE push client for group announcements such as the weekly report."""
import asyncio
import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

import aiohttp
from aiohttp import ClientError, ClientTimeout

from shuttle_wallet.config import Settings, get_settings
from shuttle_wallet.schemas.report import WeeklyReport

logger = logging.getLogger(__name__)


def _signed(value: Decimal) -> str:
    return f"+{value}" if value >= 0 else f"{value}"


def build_weekly_report_message(report: WeeklyReport, currency: str = "THB", tz_name: str = "UTC") -> str:
    """Bilingual (EN/TH) weekly report text for the group chat."""
    tz = ZoneInfo(tz_name)
    first_day = report.start_date.astimezone(tz).date()
    # end_date is exclusive
    last_day = (report.end_date.astimezone(tz) - timedelta(microseconds=1)).date()
    # A positive adjustment lowers the price, so it is shown as a discount
    adjustment_sign = "-" if report.price_adjustment >= 0 else "+"

    lines = [
        "📊 WEEKLY REPORT / รายงานประจำสัปดาห์",
        "",
        f"📅 Week {report.week_id}",
        f"📆 {first_day.isoformat()} to {last_day.isoformat()}",
        "",
        "🏸 SESSIONS / เซสชัน",
        f"• Sessions: {report.session_count}",
        f"• Total players: {report.total_players}",
        "",
        "💰 INCOME / รายได้",
        f"• Total: {report.total_income} {currency}",
        "",
        "💸 EXPENSES / ค่าใช้จ่าย",
        f"• Courts: {report.court_cost} {currency}",
        f"• Shuttlecocks: {report.shuttlecock_cost} {currency}",
        f"• Total: {report.total_expenses} {currency}",
        "",
        "📈 PROFIT / กำไร",
        f"• Gross profit: {_signed(report.gross_profit)} {currency}",
        f"• Running balance: {_signed(report.running_balance)} {currency}",
        "",
        "💵 NEXT WEEK PRICE / ราคาสัปดาห์หน้า",
        f"• Base price: {report.base_price} {currency}",
        f"• Balance adjustment: {adjustment_sign}{abs(report.price_adjustment)} {currency}",
        f"• Recommended price: {report.recommended_price} {currency}",
    ]
    if report.price_clamped:
        lines.append(f"• Price floor applied / ใช้ราคาขั้นต่ำ: {report.price_floor} {currency}")
    lines += [
        "",
        f"(Balance distributed over {report.weeks_to_distribute} weeks / "
        f"กระจายยอดคงเหลือ {report.weeks_to_distribute} สัปดาห์)",
    ]
    return "\n".join(lines)


class LineNotificationDispatcher:
    """
    Best-effort client for the LINE Messaging API push endpoint.

    The HTTP session is created lazily on first use and should be closed on
    shutdown. ``send`` never raises: delivery failures are logged and
    reported as ``False`` so callers in the ledger path are unaffected.
    """

    def __init__(self, settings: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings or get_settings()
        self.api_url = self.settings.line_api_url
        self.access_token = self.settings.line_access_token
        self.default_destination = self.settings.line_group_id
        self.timeout = ClientTimeout(total=self.settings.notification_timeout_seconds)
        self._session = session

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token)

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            logger.debug("Created new aiohttp session for LINE dispatcher")

    async def close(self):
        """Close the underlying aiohttp client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session for LINE dispatcher")
        self._session = None

    async def send(self, destination: Optional[str], text: str) -> bool:
        """
        Push one text message.

        Args:
            destination: LINE group/user id; falls back to ``line_group_id``
            text: Message body

        Returns:
            True if LINE accepted the message, False otherwise
        """
        destination = destination or self.default_destination
        if not self.is_configured or not destination:
            logger.warning("LINE access token or destination not configured, skipping notification")
            return False
        if not text:
            logger.warning("Refusing to send an empty LINE message")
            return False

        await self._ensure_session()
        payload = {"to": destination, "messages": [{"type": "text", "text": text}]}
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

        try:
            async with self._session.post(self.api_url, json=payload, headers=headers) as response:
                if response.status == 200:
                    logger.info(f"LINE message sent to {destination}")
                    return True
                error_text = await response.text()
                logger.error(f"LINE API error {response.status}: {error_text}")
                return False

        except asyncio.TimeoutError:
            logger.error(f"LINE API timeout sending to {destination}")
            return False
        except ClientError as e:
            logger.error(f"LINE API client error sending to {destination}: {e}")
            return False
        except Exception as e:
            logger.error(f"LINE API unexpected error sending to {destination}: {e}")
            return False

    async def send_weekly_report(self, report: WeeklyReport, destination: Optional[str] = None) -> bool:
        text = build_weekly_report_message(
            report, currency=self.settings.currency, tz_name=self.settings.settlement_timezone
        )
        logger.info(f"Sending weekly report for {report.week_id}")
        return await self.send(destination, text)
