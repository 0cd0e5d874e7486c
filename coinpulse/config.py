"""
配置管理 - 使用Pydantic验证环境变量
所有参数都有默认值，本地开发可直接启动
"""
import logging
from functools import lru_cache
from typing import List, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """应用配置 - 自动从环境变量加载并验证"""

    # PostgreSQL配置
    POSTGRES_HOST: str = Field(default="localhost", description="PostgreSQL主机")
    POSTGRES_PORT: int = Field(default=5432, ge=1, le=65535)
    POSTGRES_USER: str = Field(default="coinpulse")
    POSTGRES_PASSWORD: str = Field(default="coinpulse")
    POSTGRES_DB: str = Field(default="coinpulse")
    PG_INIT_RETRIES: int = Field(default=5, ge=1)
    PG_INIT_RETRY_DELAY_SECONDS: float = Field(default=1.0, gt=0)
    PG_INIT_RETRY_MAX_DELAY_SECONDS: float = Field(default=5.0, gt=0)

    # Redis配置
    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=6379, ge=1, le=65535)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0, ge=0, le=15)

    # 日志级别
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")

    # API配置
    API_HOST: str = Field(default="0.0.0.0")
    API_PORT: int = Field(default=8080, ge=1, le=65535)
    CORS_ALLOWED_ORIGINS: str = Field(default="http://localhost:5173,http://127.0.0.1:5173")
    SESSION_TTL_SECONDS: int = Field(default=60 * 60 * 24 * 7, gt=0)

    # 实时推送
    STREAM_TICK_INTERVAL: float = Field(default=0.25, description="推送周期(秒)")
    STREAM_FETCH_CONCURRENCY: int = Field(default=10)
    STREAM_FETCH_TIMEOUT: float = Field(default=0.2, description="单个市场拉取超时(秒)")
    STREAM_SEND_QUEUE_SIZE: int = Field(default=256, ge=1)
    WS_KEEPALIVE_INTERVAL: float = Field(default=30.0, gt=0)

    # 交易所公开接口
    EXCHANGE_HTTP_TIMEOUT: float = Field(default=10.0, gt=0)
    BINANCE_SPOT_BASE_URL: str = Field(default="https://api.binance.com")
    BINANCE_FUTURES_BASE_URL: str = Field(default="https://fapi.binance.com")
    BYBIT_BASE_URL: str = Field(default="https://api.bybit.com")
    MARKET_CACHE_TTL: int = Field(default=5, ge=1)

    # 告警
    ALERT_EVAL_INTERVAL: float = Field(default=60.0)
    ALERT_DEBOUNCE_SECONDS: int = Field(default=300, ge=0)
    ALERTS_ENABLED: bool = Field(default=True)

    # 通知
    TELEGRAM_BOT_TOKEN: str = Field(default="")
    TELEGRAM_API_BASE_URL: str = Field(default="https://api.telegram.org")
    EMAIL_ALERTS_ENABLED: bool = Field(default=False)
    SMTP_HOST: str = Field(default="")
    SMTP_PORT: int = Field(default=587, ge=1, le=65535)
    SMTP_USER: str = Field(default="")
    SMTP_PASSWORD: str = Field(default="")
    SMTP_FROM: str = Field(default="")
    SMTP_TLS: bool = Field(default=True)
    SMTP_SSL: bool = Field(default=False)
    SMTP_TIMEOUT: int = Field(default=10, gt=0)

    # AI
    AI_HTTP_TIMEOUT: float = Field(default=60.0, gt=0)

    @field_validator('STREAM_TICK_INTERVAL', 'STREAM_FETCH_TIMEOUT', 'ALERT_EVAL_INTERVAL')
    @classmethod
    def validate_positive_interval(cls, v):
        """周期必须为正数"""
        if v <= 0:
            raise ValueError("周期必须大于0")
        return v

    @field_validator('STREAM_FETCH_CONCURRENCY')
    @classmethod
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError("并发数必须至少为1")
        return v

    @model_validator(mode="after")
    def warn_fetch_timeout(self):
        if self.STREAM_FETCH_TIMEOUT >= self.STREAM_TICK_INTERVAL:
            logger.warning(
                "STREAM_FETCH_TIMEOUT (%.3fs) 不小于 STREAM_TICK_INTERVAL (%.3fs)，tick 时长将不再有界",
                self.STREAM_FETCH_TIMEOUT,
                self.STREAM_TICK_INTERVAL,
            )
        return self

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def postgres_url(self) -> str:
        """PostgreSQL连接URL"""
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def redis_url(self) -> str:
        """Redis连接URL"""
        password_part = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{password_part}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """
    获取配置单例
    使用lru_cache确保Settings只被实例化一次
    """
    return Settings()
