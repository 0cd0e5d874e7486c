"""
AI 聊天服务商
三种协议变体: OpenAI 兼容 / Anthropic Messages / Google Gemini
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from ..exchange.base_exchange import UpstreamError
from .catalog import (
    ANTHROPIC_MODELS_URL,
    ANTHROPIC_VERSION,
    CHAT_ENDPOINTS,
    chat_endpoint,
    models_endpoint,
    static_models,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are CoinPulse AI, a helpful cryptocurrency trading assistant. You can:\n"
    "- Analyze market trends and provide insights\n"
    "- Explain technical indicators (RSI, MACD, Bollinger Bands)\n"
    "- Help users understand crypto concepts\n"
    "- Suggest trading strategies (not financial advice)\n\n"
    "Keep responses concise and actionable. Focus on crypto and trading topics."
)

OPENROUTER_REFERER = "https://coinpulse.local"
OPENROUTER_TITLE = "CoinPulse"


@dataclass
class ModelDetail:
    id: str
    context_length: Optional[int] = None

    def to_dict(self) -> Dict:
        data: Dict[str, Any] = {"id": self.id}
        if self.context_length is not None:
            data["contextLength"] = self.context_length
        return data


class ChatProvider(ABC):
    """聊天能力接口"""

    provider_type: str = ""

    def __init__(
        self,
        api_key: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_seconds: float = 60.0,
    ):
        self.api_key = api_key
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @abstractmethod
    async def chat(self, message: str, *, model: str, max_tokens: int = 2000, temperature: float = 0.7) -> str:
        pass

    @abstractmethod
    async def list_models(self) -> List[ModelDetail]:
        pass

    async def _request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        payload: Optional[Dict] = None,
    ) -> Any:
        if self._session is not None:
            return await self._send(self._session, method, url, headers, payload)
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            return await self._send(session, method, url, headers, payload)

    async def _send(self, session, method, url, headers, payload) -> Any:
        try:
            async with session.request(method, url, headers=headers, json=payload) as resp:
                body = await resp.text()
                if resp.status != 200:
                    raise UpstreamError(f"API error ({resp.status}): {body[:500]}", resp.status, self.provider_type)
                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise UpstreamError(f"parse error: {e}", resp.status, self.provider_type)
        except aiohttp.ClientError as e:
            raise UpstreamError(f"request failed: {e}", None, self.provider_type) from e

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                raise UpstreamError(f"API error: {error['message']}", None, self.provider_type)
        return data

    async def _list_openai_style_models(self, url: str, headers: Dict[str, str]) -> List[ModelDetail]:
        data = await self._request("GET", url, headers=headers)
        items = data.get("data") if isinstance(data, dict) else None
        details = []
        for item in items or []:
            if isinstance(item, dict) and item.get("id"):
                details.append(ModelDetail(id=str(item["id"]), context_length=item.get("context_length")))
        return details


class OpenAICompatibleProvider(ChatProvider):
    """openai / xai / deepseek / mistral / groq / together / openrouter"""

    def __init__(self, provider_type: str, api_key: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.provider_type = provider_type
        self.endpoint = endpoint or chat_endpoint(provider_type)

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if self.provider_type == "openrouter":
            headers["HTTP-Referer"] = OPENROUTER_REFERER
            headers["X-Title"] = OPENROUTER_TITLE
        return headers

    async def chat(self, message: str, *, model: str, max_tokens: int = 2000, temperature: float = 0.7) -> str:
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": message},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        logger.info(f"🤖 Calling AI provider: {self.provider_type} ({model})")
        data = await self._request("POST", self.endpoint, headers=self._headers(), payload=payload)
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise UpstreamError("no response from AI", None, self.provider_type)
        return str((choices[0].get("message") or {}).get("content") or "")

    async def list_models(self) -> List[ModelDetail]:
        url = models_endpoint(self.provider_type)
        if url is None:
            return [ModelDetail(id=m) for m in static_models(self.provider_type)]
        return await self._list_openai_style_models(url, {"Authorization": f"Bearer {self.api_key}"})


class AnthropicProvider(ChatProvider):
    provider_type = "anthropic"

    def __init__(self, api_key: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.endpoint = endpoint or CHAT_ENDPOINTS["anthropic"]

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

    async def chat(self, message: str, *, model: str, max_tokens: int = 2000, temperature: float = 0.7) -> str:
        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": message}],
        }
        data = await self._request("POST", self.endpoint, headers=self._headers(), payload=payload)
        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            raise UpstreamError("no response from AI", None, self.provider_type)
        return str(content[0].get("text") or "")

    async def list_models(self) -> List[ModelDetail]:
        return await self._list_openai_style_models(ANTHROPIC_MODELS_URL, self._headers())


class GoogleProvider(ChatProvider):
    provider_type = "google"

    def __init__(self, api_key: str, endpoint: Optional[str] = None, **kwargs):
        super().__init__(api_key, **kwargs)
        self.base_url = (endpoint or CHAT_ENDPOINTS["google"]).rstrip("/")

    async def chat(self, message: str, *, model: str, max_tokens: int = 2000, temperature: float = 0.7) -> str:
        url = f"{self.base_url}/{model}:generateContent?key={self.api_key}"
        payload = {
            "contents": [{"parts": [{"text": message}]}],
            "generationConfig": {"maxOutputTokens": max_tokens, "temperature": temperature},
        }
        data = await self._request("POST", url, headers={"Content-Type": "application/json"}, payload=payload)
        candidates = data.get("candidates") if isinstance(data, dict) else None
        parts = ((candidates or [{}])[0].get("content") or {}).get("parts") if candidates else None
        if not parts:
            raise UpstreamError("no response from AI", None, self.provider_type)
        return "".join(str(p.get("text") or "") for p in parts)

    async def list_models(self) -> List[ModelDetail]:
        return [ModelDetail(id=m) for m in static_models(self.provider_type)]


def create_chat_provider(
    provider_type: str,
    api_key: str,
    endpoint: Optional[str] = None,
    **kwargs,
) -> ChatProvider:
    """按服务商类型构造；唯一的类型分发点"""
    kind = (provider_type or "").strip().lower()
    if kind == "anthropic":
        return AnthropicProvider(api_key, endpoint=endpoint, **kwargs)
    if kind == "google":
        return GoogleProvider(api_key, endpoint=endpoint, **kwargs)
    return OpenAICompatibleProvider(kind or "openai", api_key, endpoint=endpoint, **kwargs)
