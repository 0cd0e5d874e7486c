"""
币种数据访问 + 实时行情补全
"""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..exchange.market_id import Exchange, MarketId, MarketType
from .market_cache import CachedTickerReader

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {"symbol", "name", "created_at"}
_ENRICH_CONCURRENCY = 10

_COIN_COLUMNS = """
    id, symbol, exchange, COALESCE(name, '') AS name, COALESCE(logo_url, '') AS logo_url,
    decimals, is_active, created_at, updated_at
"""


def coin_to_dict(row) -> Dict:
    return {
        "id": row["id"],
        "symbol": row["symbol"],
        "exchange": row["exchange"],
        "name": row["name"],
        "logoUrl": row["logo_url"],
        "decimals": row["decimals"],
        "isActive": row["is_active"],
        "createdAt": row["created_at"].isoformat() if row["created_at"] else None,
        "updatedAt": row["updated_at"].isoformat() if row["updated_at"] else None,
    }


class CoinService:
    def __init__(self, db, tickers: Optional[CachedTickerReader] = None):
        self.db = db
        self.tickers = tickers

    async def list_coins(
        self,
        limit: int,
        offset: int,
        sort_by: str = "symbol",
        sort_order: str = "asc",
    ) -> Tuple[List[Dict], int]:
        # 排序字段白名单，防止 SQL 注入
        if sort_by not in _SORT_COLUMNS:
            sort_by = "symbol"
        sort_order = (sort_order or "").lower()
        if sort_order not in {"asc", "desc"}:
            sort_order = "asc"

        pool = self.db.pg_pool
        total = await pool.fetchval("SELECT COUNT(*) FROM coins WHERE is_active = true")
        rows = await pool.fetch(
            f"""
            SELECT {_COIN_COLUMNS}
            FROM coins
            WHERE is_active = true
            ORDER BY {sort_by} {sort_order}
            LIMIT $1 OFFSET $2
            """,
            limit,
            offset,
        )
        return [coin_to_dict(r) for r in rows], int(total or 0)

    async def get_coin_by_symbol(self, symbol: str) -> Optional[Dict]:
        row = await self.db.pg_pool.fetchrow(
            f"SELECT {_COIN_COLUMNS} FROM coins WHERE symbol = $1 AND is_active = true",
            (symbol or "").strip().upper(),
        )
        return coin_to_dict(row) if row else None

    async def list_active_symbols(self, limit: int = 2000) -> List[Dict]:
        rows = await self.db.pg_pool.fetch(
            """
            SELECT id, symbol FROM coins
            WHERE is_active = true
            ORDER BY symbol ASC
            LIMIT $1
            """,
            limit,
        )
        return [{"id": r["id"], "symbol": r["symbol"]} for r in rows]

    # ============================================
    # 行情补全
    # ============================================

    async def market_data(self, symbol: str, exchange: Exchange) -> Dict:
        market = MarketId(exchange, MarketType.SPOT, symbol)
        ticker = await self.tickers.get_ticker(market)
        return {
            "price": ticker.price,
            "change24h": ticker.change_percent,
            "volume24h": ticker.quote_volume,
        }

    async def enrich(self, coins: List[Dict], exchange: Exchange) -> List[Dict]:
        """为币种列表补充实时行情，单个失败时该币种行情字段为 None"""
        if self.tickers is None:
            return coins
        semaphore = asyncio.Semaphore(_ENRICH_CONCURRENCY)

        async def _one(coin: Dict) -> Dict:
            async with semaphore:
                try:
                    data = await self.market_data(coin["symbol"], exchange)
                except Exception as e:
                    logger.warning(f"行情补全失败 {coin['symbol']}@{exchange.wire_name}: {e}")
                    data = {"price": None, "change24h": None, "volume24h": None}
            return {**coin, **data}

        return list(await asyncio.gather(*[_one(c) for c in coins]))
