import json

import pytest

from coinpulse.ai import (
    AnthropicProvider,
    GoogleProvider,
    ModelDetail,
    OpenAICompatibleProvider,
    create_chat_provider,
)
from coinpulse.exchange import UpstreamError
from coinpulse.services.ai_provider_service import AIProviderService, ProviderCredentials


class _FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def text(self):
        return self._body

    async def json(self, content_type=None):
        return json.loads(self._body)


class _FakeSession:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {}
        self.requests = []

    def request(self, method, url, headers=None, json=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json})
        return _FakeResponse(self.status, self.body)


@pytest.mark.asyncio
async def test_openai_compatible_chat_request_shape():
    session = _FakeSession(body={"choices": [{"message": {"content": "hello"}}]})
    provider = OpenAICompatibleProvider("openrouter", "sk-test", session=session)

    reply = await provider.chat("hi", model="openai/gpt-4-turbo", max_tokens=50, temperature=0.2)

    assert reply == "hello"
    req = session.requests[0]
    assert req["method"] == "POST"
    assert req["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert req["headers"]["Authorization"] == "Bearer sk-test"
    assert "HTTP-Referer" in req["headers"]
    assert req["json"]["messages"][0]["role"] == "system"
    assert req["json"]["messages"][1] == {"role": "user", "content": "hi"}
    assert req["json"]["max_tokens"] == 50


@pytest.mark.asyncio
async def test_custom_endpoint_overrides_default():
    session = _FakeSession(body={"choices": [{"message": {"content": "ok"}}]})
    provider = create_chat_provider("openai", "k", "http://localhost:1234/v1/chat", session=session)
    await provider.chat("x", model="m")
    assert session.requests[0]["url"] == "http://localhost:1234/v1/chat"


@pytest.mark.asyncio
async def test_anthropic_chat_uses_messages_api():
    session = _FakeSession(body={"content": [{"type": "text", "text": "bonjour"}]})
    provider = AnthropicProvider("ak", session=session)

    assert await provider.chat("hi", model="claude-3-haiku") == "bonjour"
    req = session.requests[0]
    assert req["headers"]["x-api-key"] == "ak"
    assert req["headers"]["anthropic-version"] == "2023-06-01"
    assert req["json"]["messages"] == [{"role": "user", "content": "hi"}]
    assert "system" in req["json"]


@pytest.mark.asyncio
async def test_google_chat_joins_parts():
    session = _FakeSession(body={"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]})
    provider = GoogleProvider("gk", session=session)

    assert await provider.chat("hi", model="gemini-pro") == "ab"
    url = session.requests[0]["url"]
    assert url.endswith("/gemini-pro:generateContent?key=gk")
    assert session.requests[0]["json"]["generationConfig"]["maxOutputTokens"] == 2000


@pytest.mark.asyncio
async def test_non_200_raises_upstream_error():
    provider = OpenAICompatibleProvider("openai", "bad", session=_FakeSession(401, "unauthorized"))
    with pytest.raises(UpstreamError) as exc_info:
        await provider.chat("hi", model="gpt-4o")
    assert exc_info.value.status == 401
    assert "API error (401)" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_payload_and_empty_choices():
    provider = OpenAICompatibleProvider("openai", "k", session=_FakeSession(body={"error": {"message": "quota"}}))
    with pytest.raises(UpstreamError, match="quota"):
        await provider.chat("hi", model="gpt-4o")

    provider = OpenAICompatibleProvider("openai", "k", session=_FakeSession(body={"choices": []}))
    with pytest.raises(UpstreamError, match="no response"):
        await provider.chat("hi", model="gpt-4o")


@pytest.mark.asyncio
async def test_invalid_json_raises_upstream_error():
    provider = AnthropicProvider("k", session=_FakeSession(body="<html>"))
    with pytest.raises(UpstreamError):
        await provider.chat("hi", model="claude-3-haiku")


@pytest.mark.asyncio
async def test_list_models_remote_and_static():
    session = _FakeSession(body={"data": [{"id": "gpt-4o", "context_length": 128000}, {"id": "gpt-4o-mini"}, {}]})
    models = await OpenAICompatibleProvider("openai", "k", session=session).list_models()
    assert [m.id for m in models] == ["gpt-4o", "gpt-4o-mini"]
    assert models[0].to_dict() == {"id": "gpt-4o", "contextLength": 128000}
    assert session.requests[0]["method"] == "GET"

    # xai 没有模型列表接口，用内置清单
    static = await OpenAICompatibleProvider("xai", "k", session=_FakeSession()).list_models()
    assert "grok-beta" in [m.id for m in static]
    assert "gemini-pro" in [m.id for m in await GoogleProvider("k").list_models()]


def test_factory_dispatch():
    assert isinstance(create_chat_provider("anthropic", "k"), AnthropicProvider)
    assert isinstance(create_chat_provider("Google", "k"), GoogleProvider)
    provider = create_chat_provider("deepseek", "k")
    assert isinstance(provider, OpenAICompatibleProvider)
    assert provider.endpoint == "https://api.deepseek.com/chat/completions"
    # 未知类型按 OpenAI 兼容处理
    assert create_chat_provider("kwaipilot", "k").endpoint == "https://api.openai.com/v1/chat/completions"


class _StubProvider:
    def __init__(self):
        self.calls = []

    async def chat(self, message, *, model, max_tokens=2000, temperature=0.7):
        self.calls.append((message, model, max_tokens, temperature))
        return "pong"

    async def list_models(self):
        return [ModelDetail("m1", 4096), ModelDetail("m2")]


def _service_with_stub():
    stub = _StubProvider()
    built = []

    def factory(provider_type, api_key, endpoint=None, **kwargs):
        built.append((provider_type, api_key, endpoint, kwargs))
        return stub

    return AIProviderService(db=None, provider_factory=factory, timeout_seconds=5), stub, built


@pytest.mark.asyncio
async def test_service_test_provider_reports_latency():
    service, stub, built = _service_with_stub()
    creds = ProviderCredentials(1, "openai", "sk", None, "gpt-4o", 2000, 0.7)

    result = await service.test_provider(creds)

    assert result["status"] == "success"
    assert result["message"] == "Connection test passed"
    assert result["responseTimeMs"] >= 0
    assert stub.calls[0][1] == "gpt-4o"
    assert built[0] == ("openai", "sk", None, {"timeout_seconds": 5})


@pytest.mark.asyncio
async def test_service_chat_uses_stored_settings():
    service, stub, _ = _service_with_stub()
    creds = ProviderCredentials(1, "anthropic", "ak", None, "claude-3-haiku", 512, 0.3)

    assert await service.chat(creds, "how is BTC?") == "pong"
    assert stub.calls[0] == ("how is BTC?", "claude-3-haiku", 512, 0.3)


@pytest.mark.asyncio
async def test_service_fetch_models_shape():
    service, _, _ = _service_with_stub()
    result = await service.fetch_models("openai", "sk")
    assert result == {
        "models": ["m1", "m2"],
        "details": [{"id": "m1", "contextLength": 4096}, {"id": "m2"}],
    }
