"""
告警评估任务
定时扫描所有启用的告警：防抖 -> 取行情 -> 判断条件 -> 记账 -> 发送通知
通知失败只记录在历史里，不回滚触发计数
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID

from ..exchange.base_exchange import MarketDataSource
from ..exchange.market_id import Exchange, MarketId, MarketType
from .notification_service import NotificationError, NotificationService

logger = logging.getLogger(__name__)


@dataclass
class ActiveAlert:
    id: int
    user_id: UUID
    coin_id: int
    symbol: str
    condition_type: str
    condition_value: float
    notification_type: str
    last_triggered_at: Optional[datetime]
    email: Optional[str] = None
    telegram_chat_id: Optional[int] = None


@dataclass
class EvaluationResult:
    evaluated: int = 0
    skipped: int = 0
    triggered: int = 0
    errors: int = 0


def evaluate_condition(condition_type: str, value: float, price: float, volume: float) -> bool:
    """阈值比较，边界值视为满足"""
    if condition_type == "price_above":
        return price >= value
    if condition_type == "price_below":
        return price <= value
    if condition_type == "volume_above":
        return volume >= value
    if condition_type == "volume_below":
        return volume <= value
    return False


class AlertEvaluator:
    def __init__(
        self,
        db,
        source: MarketDataSource,
        notifications: NotificationService,
        interval_seconds: float = 60.0,
        debounce_seconds: int = 300,
    ):
        self.db = db
        self.source = source
        self.notifications = notifications
        self.interval_seconds = interval_seconds
        self.debounce = timedelta(seconds=debounce_seconds)
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.evaluate_all()
            except Exception as e:
                logger.error(f"❌ 告警评估失败: {e}", exc_info=True)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    async def load_active_alerts(self) -> List[ActiveAlert]:
        rows = await self.db.pg_pool.fetch(
            """
            SELECT a.id, a.user_id, a.coin_id, c.symbol, a.condition_type, a.condition_value,
                   a.notification_type, a.last_triggered_at, u.email, u.telegram_chat_id
            FROM alerts a
            JOIN coins c ON a.coin_id = c.id
            JOIN users u ON a.user_id = u.id
            WHERE a.is_active = true
            """
        )
        return [
            ActiveAlert(
                id=r["id"],
                user_id=r["user_id"],
                coin_id=r["coin_id"],
                symbol=r["symbol"],
                condition_type=r["condition_type"],
                condition_value=float(r["condition_value"]),
                notification_type=r["notification_type"],
                last_triggered_at=r["last_triggered_at"],
                email=r["email"],
                telegram_chat_id=r["telegram_chat_id"],
            )
            for r in rows
        ]

    def is_debounced(self, alert: ActiveAlert, now: datetime) -> bool:
        if alert.last_triggered_at is None:
            return False
        last = alert.last_triggered_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        return now - last < self.debounce

    async def evaluate_all(self, now: Optional[datetime] = None) -> EvaluationResult:
        """执行一轮评估"""
        now = now or datetime.now(timezone.utc)
        logger.info("🔍 开始告警评估...")
        result = EvaluationResult()
        alerts = await self.load_active_alerts()

        # 同一币种只取一次行情
        quotes: Dict[str, Optional[tuple]] = {}
        for alert in alerts:
            result.evaluated += 1
            if self.is_debounced(alert, now):
                result.skipped += 1
                continue

            if alert.symbol not in quotes:
                quotes[alert.symbol] = await self._get_quote(alert.symbol)
            quote = quotes[alert.symbol]
            if quote is None:
                result.errors += 1
                continue

            price, volume = quote
            if not evaluate_condition(alert.condition_type, alert.condition_value, price, volume):
                continue

            result.triggered += 1
            try:
                await self.process_triggered(alert, price)
            except Exception as e:
                # 单条告警的处理失败不影响本轮其余告警
                result.errors += 1
                logger.error(f"❌ 告警 {alert.id} 处理失败: {e}", exc_info=True)

        logger.info(f"✅ Evaluated {result.evaluated} alerts, triggered {result.triggered}")
        return result

    async def _get_quote(self, symbol: str) -> Optional[tuple]:
        market = MarketId(Exchange.BINANCE, MarketType.SPOT, symbol)
        try:
            ticker = await self.source.fetch_ticker(market)
        except Exception as e:
            logger.warning(f"⚠️ 获取 {symbol} 行情失败: {e}")
            return None
        return ticker.price, ticker.quote_volume

    async def process_triggered(self, alert: ActiveAlert, current_price: float) -> None:
        logger.info(f"🚨 Alert {alert.id} triggered for {alert.symbol} (price: ${current_price:.2f})")
        pool = self.db.pg_pool

        await pool.execute(
            """
            UPDATE alerts
            SET triggered_count = triggered_count + 1,
                last_triggered_at = NOW(),
                updated_at = NOW()
            WHERE id = $1
            """,
            alert.id,
        )
        history_id = await pool.fetchval(
            """
            INSERT INTO alert_history (alert_id, triggered_at, notification_status, notification_channel)
            VALUES ($1, NOW(), 'pending', $2)
            RETURNING id
            """,
            alert.id,
            alert.notification_type,
        )

        message = self.notifications.format_alert_message(
            alert.symbol, alert.condition_type, alert.condition_value, current_price
        )
        status = "sent"
        error_message = ""
        try:
            await self._dispatch(alert, message)
        except NotificationError as e:
            status = "failed"
            error_message = str(e)
            logger.warning(f"告警 {alert.id} 通知失败 ({alert.notification_type}): {e}")

        await pool.execute(
            """
            UPDATE alert_history
            SET notification_status = $1, error_message = $2
            WHERE id = $3
            """,
            status,
            error_message,
            history_id,
        )

    async def _dispatch(self, alert: ActiveAlert, message: str) -> None:
        channel = alert.notification_type
        if channel == "telegram":
            await self.notifications.send_telegram(alert.telegram_chat_id, message)
        elif channel == "email":
            await self.notifications.send_email(alert.email, "Alert Triggered", message)
        else:
            logger.info(f"📱 In-app notification (user={alert.user_id}): {message}")
