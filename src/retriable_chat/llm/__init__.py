"""Chat client package."""

from retriable_chat.llm.backoff import BackoffPolicy, ExponentialBackoff
from retriable_chat.llm.base import (
    BuildError,
    BuildErrorKind,
    ChatClient,
    ChatClientError,
    ChatError,
    ChatErrorKind,
    CreateClientError,
    CreateClientErrorKind,
)
from retriable_chat.llm.credentials import (
    CredentialSource,
    EnvironmentCredentials,
    MappingCredentials,
)
from retriable_chat.llm.models import (
    ModelRegistry,
    ModelSpec,
    StaticModelRegistry,
    TiktokenModelRegistry,
)
from retriable_chat.llm.openai_client import ClientConfig, RetriableChatClient, live
from retriable_chat.llm.request_builder import ChatMessage, ChatRequest, build_request
from retriable_chat.llm.transport import (
    ChatResponse,
    ChatTransport,
    RateLimitError,
    RequestsTransport,
    TransportError,
)

__all__ = [
    "BackoffPolicy",
    "BuildError",
    "BuildErrorKind",
    "ChatClient",
    "ChatClientError",
    "ChatError",
    "ChatErrorKind",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "ClientConfig",
    "CreateClientError",
    "CreateClientErrorKind",
    "CredentialSource",
    "EnvironmentCredentials",
    "ExponentialBackoff",
    "MappingCredentials",
    "ModelRegistry",
    "ModelSpec",
    "RateLimitError",
    "RequestsTransport",
    "RetriableChatClient",
    "StaticModelRegistry",
    "TiktokenModelRegistry",
    "TransportError",
    "build_request",
    "live",
]
