# AI 服务商模块
from .catalog import AVAILABLE_PROVIDERS
from .providers import (
    AnthropicProvider,
    ChatProvider,
    GoogleProvider,
    ModelDetail,
    OpenAICompatibleProvider,
    create_chat_provider,
)

__all__ = [
    'AVAILABLE_PROVIDERS',
    'AnthropicProvider',
    'ChatProvider',
    'GoogleProvider',
    'ModelDetail',
    'OpenAICompatibleProvider',
    'create_chat_provider',
]
