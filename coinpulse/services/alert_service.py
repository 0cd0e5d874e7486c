"""
告警 CRUD 及触发历史
"""
import logging
from typing import Dict, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)

CONDITION_TYPES = ("price_above", "price_below", "volume_above", "volume_below")
NOTIFICATION_TYPES = ("in_app", "telegram", "email")


def _iso(value):
    return value.isoformat() if value else None


def alert_to_dict(row) -> Dict:
    return {
        "id": row["id"],
        "userId": str(row["user_id"]),
        "coinId": row["coin_id"],
        "coinSymbol": row["symbol"],
        "conditionType": row["condition_type"],
        "conditionValue": row["condition_value"],
        "notificationType": row["notification_type"],
        "isActive": row["is_active"],
        "triggeredCount": row["triggered_count"],
        "lastTriggeredAt": _iso(row["last_triggered_at"]),
        "createdAt": _iso(row["created_at"]),
        "updatedAt": _iso(row["updated_at"]),
    }


_ALERT_SELECT = """
    SELECT a.id, a.user_id, a.coin_id, c.symbol, a.condition_type, a.condition_value,
           a.notification_type, a.is_active, a.triggered_count, a.last_triggered_at,
           a.created_at, a.updated_at
    FROM alerts a
    JOIN coins c ON a.coin_id = c.id
"""


class AlertService:
    def __init__(self, db):
        self.db = db

    async def list_alerts(self, user_id: UUID) -> List[Dict]:
        rows = await self.db.pg_pool.fetch(
            _ALERT_SELECT + " WHERE a.user_id = $1 ORDER BY a.created_at DESC",
            user_id,
        )
        return [alert_to_dict(r) for r in rows]

    async def get_alert(self, user_id: UUID, alert_id: int) -> Optional[Dict]:
        row = await self.db.pg_pool.fetchrow(
            _ALERT_SELECT + " WHERE a.id = $1 AND a.user_id = $2",
            alert_id,
            user_id,
        )
        return alert_to_dict(row) if row else None

    async def coin_exists(self, coin_id: int) -> bool:
        return bool(await self.db.pg_pool.fetchval("SELECT 1 FROM coins WHERE id = $1", coin_id))

    async def create_alert(
        self,
        user_id: UUID,
        coin_id: int,
        condition_type: str,
        condition_value: float,
        notification_type: str = "in_app",
    ) -> Dict:
        alert_id = await self.db.pg_pool.fetchval(
            """
            INSERT INTO alerts (user_id, coin_id, condition_type, condition_value, notification_type)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id
            """,
            user_id,
            coin_id,
            condition_type,
            condition_value,
            notification_type,
        )
        return await self.get_alert(user_id, alert_id)

    async def update_alert(
        self,
        user_id: UUID,
        alert_id: int,
        is_active: Optional[bool] = None,
        condition_value: Optional[float] = None,
        notification_type: Optional[str] = None,
    ) -> Optional[Dict]:
        """部分更新；告警不存在或不属于该用户时返回 None"""
        updated = await self.db.pg_pool.fetchval(
            """
            UPDATE alerts
            SET is_active = COALESCE($1, is_active),
                condition_value = COALESCE($2, condition_value),
                notification_type = COALESCE($3, notification_type),
                updated_at = NOW()
            WHERE id = $4 AND user_id = $5
            RETURNING id
            """,
            is_active,
            condition_value,
            notification_type,
            alert_id,
            user_id,
        )
        if updated is None:
            return None
        return await self.get_alert(user_id, alert_id)

    async def delete_alert(self, user_id: UUID, alert_id: int) -> bool:
        deleted = await self.db.pg_pool.fetchval(
            "DELETE FROM alerts WHERE id = $1 AND user_id = $2 RETURNING id",
            alert_id,
            user_id,
        )
        return deleted is not None

    async def get_history(self, user_id: UUID, alert_id: int, limit: int = 100) -> List[Dict]:
        rows = await self.db.pg_pool.fetch(
            """
            SELECT ah.id, ah.alert_id, ah.triggered_at, ah.notification_status,
                   ah.notification_channel, COALESCE(ah.error_message, '') AS error_message
            FROM alert_history ah
            JOIN alerts a ON ah.alert_id = a.id
            WHERE ah.alert_id = $1 AND a.user_id = $2
            ORDER BY ah.triggered_at DESC
            LIMIT $3
            """,
            alert_id,
            user_id,
            limit,
        )
        return [
            {
                "id": r["id"],
                "alertId": r["alert_id"],
                "triggeredAt": _iso(r["triggered_at"]),
                "notificationStatus": r["notification_status"],
                "notificationChannel": r["notification_channel"],
                "errorMessage": r["error_message"],
            }
            for r in rows
        ]
