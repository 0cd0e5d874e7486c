"""
AI 服务商配置 (ai_providers 表) 与聊天代理
API Key 只在服务端使用，列表接口从不返回
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from uuid import UUID

from ..ai import AVAILABLE_PROVIDERS, ChatProvider, ModelDetail, create_chat_provider

logger = logging.getLogger(__name__)

NO_PROVIDER_MESSAGE = """To use the AI assistant, please configure an AI provider in Settings:
1. Go to Settings → AI Providers
2. Add your API key (OpenAI, Anthropic, etc.)
3. Set it as default

Once configured, I'll be able to:
• Search and filter coins for you
• Provide technical analysis
• Create alerts automatically
• Add coins to your watchlist"""

TEST_PROMPT = "Reply with the single word: pong"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.7


@dataclass
class ProviderCredentials:
    id: int
    provider_type: str
    api_key: str
    api_endpoint: Optional[str]
    model_name: str
    max_tokens: int
    temperature: float


def provider_to_dict(row) -> Dict:
    created_at = row["created_at"]
    return {
        "id": row["id"],
        "providerType": row["provider_type"],
        "providerName": row["provider_name"],
        "modelName": row["model_name"],
        "isActive": row["is_active"],
        "isDefault": row["is_default"],
        "maxTokens": row["max_tokens"],
        "temperature": row["temperature"],
        "monthlyBudget": row["monthly_budget"],
        "monthlySpent": row["monthly_spent"] or 0.0,
        "createdAt": created_at.isoformat() if created_at else None,
    }


class AIProviderService:
    def __init__(
        self,
        db,
        provider_factory: Callable[..., ChatProvider] = create_chat_provider,
        timeout_seconds: float = 60.0,
    ):
        self.db = db
        self.provider_factory = provider_factory
        self.timeout_seconds = timeout_seconds

    def build_provider(self, provider_type: str, api_key: str, endpoint: Optional[str] = None) -> ChatProvider:
        return self.provider_factory(provider_type, api_key, endpoint, timeout_seconds=self.timeout_seconds)

    async def list_providers(self, user_id: UUID) -> Dict:
        rows = await self.db.pg_pool.fetch(
            """
            SELECT id, provider_type, provider_name, model_name, is_active, is_default,
                   max_tokens, temperature, monthly_budget, monthly_spent, created_at
            FROM ai_providers
            WHERE user_id = $1
            ORDER BY is_default DESC, created_at DESC
            """,
            user_id,
        )
        return {
            "configured": [provider_to_dict(r) for r in rows],
            "available": AVAILABLE_PROVIDERS,
        }

    async def create_provider(
        self,
        user_id: UUID,
        provider_type: str,
        provider_name: str,
        api_key: str,
        model_name: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        is_default: bool = False,
        monthly_budget: Optional[float] = None,
    ) -> int:
        if not max_tokens:
            max_tokens = DEFAULT_MAX_TOKENS
        if not temperature:
            temperature = DEFAULT_TEMPERATURE

        async with self.db.pg_transaction() as conn:
            if is_default:
                await conn.execute("UPDATE ai_providers SET is_default = false WHERE user_id = $1", user_id)
            provider_id = await conn.fetchval(
                """
                INSERT INTO ai_providers (user_id, provider_type, provider_name, api_key_encrypted,
                                          model_name, max_tokens, temperature, is_default, monthly_budget)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING id
                """,
                user_id,
                provider_type,
                provider_name,
                api_key,
                model_name,
                max_tokens,
                temperature,
                is_default,
                monthly_budget,
            )
        logger.info(f"✅ AI provider 已添加: {provider_type}/{model_name} (user={user_id})")
        return provider_id

    async def update_provider(self, user_id: UUID, provider_id: int, changes: Dict) -> bool:
        """部分更新，未提供的字段保持原值"""
        async with self.db.pg_transaction() as conn:
            if changes.get("is_default"):
                await conn.execute("UPDATE ai_providers SET is_default = false WHERE user_id = $1", user_id)
            updated = await conn.fetchval(
                """
                UPDATE ai_providers
                SET provider_name = COALESCE($3, provider_name),
                    api_key_encrypted = COALESCE($4, api_key_encrypted),
                    model_name = COALESCE($5, model_name),
                    max_tokens = COALESCE($6, max_tokens),
                    temperature = COALESCE($7, temperature),
                    is_active = COALESCE($8, is_active),
                    is_default = COALESCE($9, is_default),
                    monthly_budget = COALESCE($10, monthly_budget)
                WHERE id = $1 AND user_id = $2
                RETURNING id
                """,
                provider_id,
                user_id,
                changes.get("provider_name"),
                changes.get("api_key"),
                changes.get("model_name"),
                changes.get("max_tokens"),
                changes.get("temperature"),
                changes.get("is_active"),
                changes.get("is_default"),
                changes.get("monthly_budget"),
            )
        return updated is not None

    async def delete_provider(self, user_id: UUID, provider_id: int) -> bool:
        deleted = await self.db.pg_pool.fetchval(
            "DELETE FROM ai_providers WHERE id = $1 AND user_id = $2 RETURNING id",
            provider_id,
            user_id,
        )
        return deleted is not None

    async def get_credentials(self, user_id: UUID, provider_id: int) -> Optional[ProviderCredentials]:
        row = await self.db.pg_pool.fetchrow(
            """
            SELECT id, provider_type, api_key_encrypted, api_endpoint, model_name, max_tokens, temperature
            FROM ai_providers
            WHERE id = $1 AND user_id = $2
            """,
            provider_id,
            user_id,
        )
        return self._credentials(row)

    async def resolve_for_chat(self, user_id: UUID, provider_id: Optional[int] = None) -> Optional[ProviderCredentials]:
        """指定 provider，或用户的默认启用 provider"""
        if provider_id is not None:
            row = await self.db.pg_pool.fetchrow(
                """
                SELECT id, provider_type, api_key_encrypted, api_endpoint, model_name, max_tokens, temperature
                FROM ai_providers
                WHERE id = $1 AND user_id = $2 AND is_active = true
                """,
                provider_id,
                user_id,
            )
        else:
            row = await self.db.pg_pool.fetchrow(
                """
                SELECT id, provider_type, api_key_encrypted, api_endpoint, model_name, max_tokens, temperature
                FROM ai_providers
                WHERE user_id = $1 AND is_default = true AND is_active = true
                LIMIT 1
                """,
                user_id,
            )
        return self._credentials(row)

    @staticmethod
    def _credentials(row) -> Optional[ProviderCredentials]:
        if not row:
            return None
        return ProviderCredentials(
            id=row["id"],
            provider_type=row["provider_type"],
            api_key=row["api_key_encrypted"] or "",
            api_endpoint=row["api_endpoint"],
            model_name=row["model_name"],
            max_tokens=row["max_tokens"],
            temperature=row["temperature"],
        )

    async def chat(self, creds: ProviderCredentials, message: str) -> str:
        provider = self.build_provider(creds.provider_type, creds.api_key, creds.api_endpoint)
        return await provider.chat(
            message,
            model=creds.model_name,
            max_tokens=creds.max_tokens,
            temperature=creds.temperature,
        )

    async def test_provider(self, creds: ProviderCredentials) -> Dict:
        """发一条最短的 ping 请求，返回耗时"""
        provider = self.build_provider(creds.provider_type, creds.api_key, creds.api_endpoint)
        started = time.perf_counter()
        await provider.chat(TEST_PROMPT, model=creds.model_name, max_tokens=16, temperature=0.0)
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        return {
            "status": "success",
            "message": "Connection test passed",
            "responseTimeMs": elapsed_ms,
        }

    async def fetch_models(self, provider_type: str, api_key: str, endpoint: Optional[str] = None) -> Dict:
        provider = self.build_provider(provider_type, api_key, endpoint)
        details: List[ModelDetail] = await provider.list_models()
        return {
            "models": [d.id for d in details],
            "details": [d.to_dict() for d in details],
        }
