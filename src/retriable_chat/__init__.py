"""Token-budgeted OpenAI chat client with rate-limit backoff."""

from retriable_chat.llm import (
    BuildError,
    ChatClient,
    ChatError,
    CreateClientError,
    RetriableChatClient,
    build_request,
    live,
)

__all__ = [
    "BuildError",
    "ChatClient",
    "ChatError",
    "CreateClientError",
    "RetriableChatClient",
    "build_request",
    "live",
]

__version__ = "0.1.0"
