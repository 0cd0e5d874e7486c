"""
PostgreSQL 表结构
启动时幂等执行（IF NOT EXISTS），并补齐默认币种
"""
import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)

SCHEMA_STATEMENTS: List[str] = [
    "CREATE EXTENSION IF NOT EXISTS pgcrypto",
    """
    CREATE TABLE IF NOT EXISTS users (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        email VARCHAR(255) UNIQUE NOT NULL,
        username VARCHAR(50) UNIQUE NOT NULL,
        password_hash TEXT NOT NULL,
        telegram_chat_id BIGINT,
        is_active BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS coins (
        id SERIAL PRIMARY KEY,
        symbol VARCHAR(30) NOT NULL,
        exchange VARCHAR(20) NOT NULL DEFAULT 'binance',
        name VARCHAR(100) NOT NULL DEFAULT '',
        logo_url TEXT NOT NULL DEFAULT '',
        decimals INT NOT NULL DEFAULT 2,
        is_active BOOLEAN NOT NULL DEFAULT true,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (symbol, exchange)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS watchlists (
        id SERIAL PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        coin_id INT NOT NULL REFERENCES coins(id) ON DELETE CASCADE,
        added_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (user_id, coin_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alerts (
        id SERIAL PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        coin_id INT NOT NULL REFERENCES coins(id) ON DELETE CASCADE,
        condition_type VARCHAR(30) NOT NULL,
        condition_value DOUBLE PRECISION NOT NULL,
        notification_type VARCHAR(20) NOT NULL DEFAULT 'in_app',
        is_active BOOLEAN NOT NULL DEFAULT true,
        triggered_count INT NOT NULL DEFAULT 0,
        last_triggered_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS alert_history (
        id SERIAL PRIMARY KEY,
        alert_id INT NOT NULL REFERENCES alerts(id) ON DELETE CASCADE,
        triggered_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        notification_status VARCHAR(20) NOT NULL DEFAULT 'pending',
        notification_channel VARCHAR(20) NOT NULL,
        error_message TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_providers (
        id SERIAL PRIMARY KEY,
        user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        provider_type VARCHAR(30) NOT NULL,
        provider_name VARCHAR(100) NOT NULL,
        api_key_encrypted TEXT NOT NULL,
        api_endpoint TEXT,
        model_name VARCHAR(100) NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT true,
        is_default BOOLEAN NOT NULL DEFAULT false,
        max_tokens INT NOT NULL DEFAULT 2000,
        temperature DOUBLE PRECISION NOT NULL DEFAULT 0.7,
        monthly_budget DOUBLE PRECISION,
        monthly_spent DOUBLE PRECISION NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_alerts_active ON alerts (is_active) WHERE is_active = true",
    "CREATE INDEX IF NOT EXISTS idx_alert_history_alert ON alert_history (alert_id, triggered_at DESC)",
]

DEFAULT_COINS: List[Tuple[str, str]] = [
    ("BTCUSDT", "Bitcoin"),
    ("ETHUSDT", "Ethereum"),
    ("BNBUSDT", "BNB"),
    ("SOLUSDT", "Solana"),
    ("XRPUSDT", "XRP"),
    ("DOGEUSDT", "Dogecoin"),
]


async def ensure_schema(conn) -> None:
    """建表并写入默认币种（已存在则跳过）"""
    for statement in SCHEMA_STATEMENTS:
        await conn.execute(statement)
    for symbol, name in DEFAULT_COINS:
        await conn.execute(
            """
            INSERT INTO coins (symbol, exchange, name)
            VALUES ($1, 'binance', $2)
            ON CONFLICT (symbol, exchange) DO NOTHING
            """,
            symbol,
            name,
        )
    logger.info(f"✅ 数据库表结构已就绪 ({len(SCHEMA_STATEMENTS)} statements)")
