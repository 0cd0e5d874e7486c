"""
服务容器 - 统一持有所有服务实例
在应用 lifespan 中按 Settings 构建，挂在 app.state.services 上，供依赖注入和测试替换
"""
import logging
from typing import Optional

from ..config import Settings
from ..exchange import ExchangeMarketDataSource, MarketDataSource
from .ai_provider_service import AIProviderService
from .alert_evaluator import AlertEvaluator
from .alert_service import AlertService
from .coin_service import CoinService
from .market_cache import CachedTickerReader, MarketDataCache
from .market_stream_service import MarketDataStreamer
from .notification_service import NotificationService
from .subscription_hub import Connection, SubscriptionHub
from .watchlist_service import WatchlistService

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    服务容器 - 依赖注入容器
    每个应用实例一份，不做全局单例
    """

    def __init__(
        self,
        settings: Settings,
        db,
        market_source: MarketDataSource,
        cache: Optional[MarketDataCache] = None,
        hub: Optional[SubscriptionHub] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.settings = settings
        self.db = db
        self.market_source = market_source
        self.cache = cache
        self.tickers = CachedTickerReader(cache, market_source) if cache is not None else None

        self.hub = hub or SubscriptionHub()
        self.streamer = MarketDataStreamer(
            self.hub,
            market_source,
            tick_interval=settings.STREAM_TICK_INTERVAL,
            fetch_concurrency=settings.STREAM_FETCH_CONCURRENCY,
            fetch_timeout=settings.STREAM_FETCH_TIMEOUT,
        )

        self.coins = CoinService(db, self.tickers)
        self.watchlist = WatchlistService(db)
        self.alerts = AlertService(db)
        self.ai_providers = AIProviderService(db, timeout_seconds=settings.AI_HTTP_TIMEOUT)

        self.notifications = notifications or NotificationService(settings)
        self.evaluator = AlertEvaluator(
            db,
            market_source,
            self.notifications,
            interval_seconds=settings.ALERT_EVAL_INTERVAL,
            debounce_seconds=settings.ALERT_DEBOUNCE_SECONDS,
        )

    @classmethod
    def build(cls, settings: Settings, db) -> "ServiceContainer":
        """按配置构建生产环境的服务容器（数据库需已初始化）"""
        logger.info("🔧 初始化服务容器...")
        source = ExchangeMarketDataSource.create(
            timeout_seconds=settings.EXCHANGE_HTTP_TIMEOUT,
            binance_spot_url=settings.BINANCE_SPOT_BASE_URL,
            binance_futures_url=settings.BINANCE_FUTURES_BASE_URL,
            bybit_url=settings.BYBIT_BASE_URL,
        )
        cache = MarketDataCache(db.redis, ttl_seconds=settings.MARKET_CACHE_TTL)
        container = cls(settings, db, source, cache=cache)
        logger.info("✅ 服务容器初始化完成")
        return container

    async def start(self) -> None:
        await self.streamer.start()
        logger.info("✅ 行情推送服务已启动")
        if self.settings.ALERTS_ENABLED:
            await self.evaluator.start()
            logger.info("✅ 告警评估服务已启动")

    async def stop(self) -> None:
        await self.streamer.stop()
        logger.info("✅ 行情推送服务已停止")
        await self.evaluator.stop()
        for conn in await self.hub.connections():
            await self.hub.unregister(conn)
        await self.market_source.close()


__all__ = [
    'AIProviderService',
    'AlertEvaluator',
    'AlertService',
    'CachedTickerReader',
    'CoinService',
    'Connection',
    'MarketDataCache',
    'MarketDataStreamer',
    'NotificationService',
    'ServiceContainer',
    'SubscriptionHub',
    'WatchlistService',
]
