"""
AI 服务商目录：聊天端点、模型列表端点、内置模型清单
"""
from typing import Dict, List, Optional

CHAT_ENDPOINTS: Dict[str, str] = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "anthropic": "https://api.anthropic.com/v1/messages",
    "google": "https://generativelanguage.googleapis.com/v1beta/models",
    "xai": "https://api.x.ai/v1/chat/completions",
    "deepseek": "https://api.deepseek.com/chat/completions",
    "mistral": "https://api.mistral.ai/v1/chat/completions",
    "groq": "https://api.groq.com/openai/v1/chat/completions",
    "together": "https://api.together.xyz/v1/chat/completions",
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
}

# 支持 OpenAI 标准 /models 接口的服务商
MODEL_LIST_ENDPOINTS: Dict[str, str] = {
    "openai": "https://api.openai.com/v1/models",
    "groq": "https://api.groq.com/openai/v1/models",
    "openrouter": "https://openrouter.ai/api/v1/models",
    "deepseek": "https://api.deepseek.com/models",
    "mistral": "https://api.mistral.ai/v1/models",
}

ANTHROPIC_MODELS_URL = "https://api.anthropic.com/v1/models"
ANTHROPIC_VERSION = "2023-06-01"

AVAILABLE_PROVIDERS: List[Dict] = [
    {"type": "openai", "name": "OpenAI", "models": ["gpt-5.2", "gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-4", "gpt-3.5-turbo", "gpt-oss-120b"]},
    {"type": "anthropic", "name": "Anthropic", "models": ["claude-opus-4.5", "claude-sonnet-4.5", "claude-haiku-4.5", "claude-3-opus", "claude-3-sonnet", "claude-3-haiku"]},
    {"type": "google", "name": "Google", "models": ["gemini-3-pro-preview", "gemini-3-flash-preview", "gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.5-flash-lite", "gemini-2.0-flash", "gemini-pro"]},
    {"type": "xai", "name": "xAI (Grok)", "models": ["grok-4.1-fast", "grok-4-fast", "grok-code-fast-1", "grok-2", "grok-beta"]},
    {"type": "deepseek", "name": "DeepSeek", "models": ["deepseek-v3.2", "deepseek-v3-0324", "deepseek-coder", "deepseek-chat"]},
    {"type": "mistral", "name": "Mistral AI", "models": ["devstral-2-2512", "mistral-large-latest", "mistral-medium-latest", "mistral-small-latest", "codestral-latest"]},
    {"type": "groq", "name": "Groq (Fast)", "models": ["llama-3.3-70b", "llama-3.1-70b", "mixtral-8x7b-32768", "gemma2-9b"]},
    {"type": "together", "name": "Together AI", "models": ["meta-llama/Llama-3.3-70B", "mistralai/Mixtral-8x22B", "Qwen/Qwen2.5-72B"]},
    {"type": "openrouter", "name": "OpenRouter", "models": ["anthropic/claude-3-opus", "openai/gpt-4-turbo", "google/gemini-pro", "meta-llama/llama-3-70b"]},
    {"type": "xiaomi", "name": "Xiaomi", "models": ["mimo-v2-flash"]},
    {"type": "kwaipilot", "name": "Kwaipilot", "models": ["kat-coder-pro-v1"]},
]


def static_models(provider_type: str) -> List[str]:
    for item in AVAILABLE_PROVIDERS:
        if item["type"] == provider_type:
            return list(item["models"])
    return []


def chat_endpoint(provider_type: str) -> str:
    """未知服务商按 OpenAI 兼容处理"""
    return CHAT_ENDPOINTS.get(provider_type) or CHAT_ENDPOINTS["openai"]


def models_endpoint(provider_type: str) -> Optional[str]:
    return MODEL_LIST_ENDPOINTS.get(provider_type)
