"""
数据库连接层 (asyncpg + redis.asyncio)
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

# PostgreSQL 异步驱动
import asyncpg

# Redis 异步驱动
import redis.asyncio as redis
from redis.exceptions import RedisError

from ..config import Settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Postgres 连接池 + Redis 客户端
    由应用 lifespan 创建、初始化和关闭
    """

    PG_POOL_MIN_SIZE = 2
    PG_POOL_MAX_SIZE = 20

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pg_pool: Optional[asyncpg.Pool] = None
        self._redis_client: Optional[redis.Redis] = None

    async def initialize(self) -> None:
        logger.info("📊 连接 PostgreSQL / Redis ...")
        self._pg_pool = await self._connect_postgres()
        self._redis_client = await self._connect_redis()
        logger.info("🎉 数据库连接就绪")

    async def _connect_postgres(self) -> asyncpg.Pool:
        """建池失败时按指数退避重试，超过次数后抛出最后一次异常"""
        s = self.settings
        attempts = max(1, s.PG_INIT_RETRIES)
        delay = s.PG_INIT_RETRY_DELAY_SECONDS
        attempt = 0
        while True:
            attempt += 1
            try:
                pool = await asyncpg.create_pool(
                    dsn=s.postgres_url,
                    min_size=self.PG_POOL_MIN_SIZE,
                    max_size=self.PG_POOL_MAX_SIZE,
                    command_timeout=60,
                    server_settings={"application_name": "coinpulse", "statement_timeout": "30000"},
                )
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                if attempt >= attempts:
                    logger.error(f"❌ PostgreSQL 不可用 ({s.POSTGRES_HOST}:{s.POSTGRES_PORT}): {e}")
                    raise
                logger.warning(f"PostgreSQL 连接失败 ({attempt}/{attempts})，{delay:.1f}s 后重试: {e}")
                await asyncio.sleep(delay)
                delay = min(delay * 2, s.PG_INIT_RETRY_MAX_DELAY_SECONDS)
                continue
            logger.info(
                f"✅ PostgreSQL {s.POSTGRES_HOST}:{s.POSTGRES_PORT}/{s.POSTGRES_DB} "
                f"pool={self.PG_POOL_MIN_SIZE}-{self.PG_POOL_MAX_SIZE}"
            )
            return pool

    async def _connect_redis(self) -> redis.Redis:
        s = self.settings
        client = redis.from_url(
            s.redis_url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
        )
        try:
            await client.ping()
        except RedisError as e:
            logger.error(f"❌ Redis 不可用 ({s.REDIS_HOST}:{s.REDIS_PORT}): {e}")
            await client.aclose()
            raise
        logger.info(f"✅ Redis {s.REDIS_HOST}:{s.REDIS_PORT}/{s.REDIS_DB}")
        return client

    async def close(self) -> None:
        if self._pg_pool is not None:
            await self._pg_pool.close()
            self._pg_pool = None
        if self._redis_client is not None:
            await self._redis_client.aclose()
            self._redis_client = None
        logger.info("数据库连接已释放")

    @property
    def pg_pool(self) -> asyncpg.Pool:
        if self._pg_pool is None:
            raise RuntimeError("DatabaseManager.initialize() has not been awaited (postgres)")
        return self._pg_pool

    @property
    def redis(self) -> redis.Redis:
        if self._redis_client is None:
            raise RuntimeError("DatabaseManager.initialize() has not been awaited (redis)")
        return self._redis_client

    @asynccontextmanager
    async def pg_connection(self) -> AsyncGenerator[asyncpg.Connection, None]:
        async with self.pg_pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def pg_transaction(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """单连接事务：块内异常时回滚"""
        async with self.pg_pool.acquire() as conn:
            async with conn.transaction():
                yield conn
