import logging
from typing import Dict, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


class WatchlistService:
    def __init__(self, db):
        self.db = db

    async def list_items(self, user_id: UUID) -> List[Dict]:
        rows = await self.db.pg_pool.fetch(
            """
            SELECT w.id, w.user_id, w.coin_id, c.symbol, w.added_at
            FROM watchlists w
            JOIN coins c ON w.coin_id = c.id
            WHERE w.user_id = $1
            ORDER BY w.added_at DESC
            """,
            user_id,
        )
        return [
            {
                "id": r["id"],
                "userId": str(r["user_id"]),
                "coinId": r["coin_id"],
                "symbol": r["symbol"],
                "addedAt": r["added_at"].isoformat() if r["added_at"] else None,
            }
            for r in rows
        ]

    async def resolve_coin_id(self, symbol: str) -> Optional[int]:
        return await self.db.pg_pool.fetchval(
            "SELECT id FROM coins WHERE symbol = $1 AND is_active = true",
            (symbol or "").strip().upper(),
        )

    async def add(self, user_id: UUID, coin_id: int) -> None:
        """重复添加视为成功"""
        await self.db.pg_pool.execute(
            """
            INSERT INTO watchlists (user_id, coin_id)
            VALUES ($1, $2)
            ON CONFLICT (user_id, coin_id) DO NOTHING
            """,
            user_id,
            coin_id,
        )

    async def remove(self, user_id: UUID, coin_id: int) -> None:
        await self.db.pg_pool.execute(
            "DELETE FROM watchlists WHERE user_id = $1 AND coin_id = $2",
            user_id,
            coin_id,
        )
