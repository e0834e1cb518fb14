"""Construction of chat-completion requests with a token budget."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Final

from retriable_chat.llm.base import BuildError, BuildErrorKind
from retriable_chat.llm.models import ModelRegistry, TiktokenModelRegistry, TokenCountError

# ``max_tokens`` is a 16-bit unsigned field on the wire.
MAX_RESPONSE_TOKENS_LIMIT: Final[int] = 65_535
CHAT_ROLES: Final[frozenset[str]] = frozenset({"system", "user"})


@dataclass(frozen=True)
class ChatMessage:
    """A role-tagged chat message.

    Attributes:
        role: Either ``system`` or ``user``.
        content: Message text.
    """

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in CHAT_ROLES:
            raise ValueError(f"unsupported message role '{self.role}'")
        if not isinstance(self.content, str):
            raise ValueError(
                f"message content must be a string, got {type(self.content).__name__}"
            )

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    """A validated chat-completion request ready to submit."""

    model_id: str
    temperature: float
    max_response_tokens: int
    messages: tuple[ChatMessage, ...]

    @property
    def system_prompt(self) -> str:
        return self._content_for("system")

    @property
    def user_prompt(self) -> str:
        return self._content_for("user")

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON body sent to ``/chat/completions``."""

        return {
            "model": self.model_id,
            "temperature": self.temperature,
            "max_tokens": self.max_response_tokens,
            "messages": [message.to_dict() for message in self.messages],
        }

    def _content_for(self, role: str) -> str:
        return next((m.content for m in self.messages if m.role == role), "")


@lru_cache(maxsize=1)
def default_model_registry() -> ModelRegistry:
    """Return the process-wide tiktoken-backed registry."""

    return TiktokenModelRegistry()


def build_request(
    system: str,
    question: str,
    model: str,
    temperature: float,
    *,
    models: ModelRegistry | None = None,
) -> ChatRequest:
    """Build a chat request whose ``max_tokens`` fills the remaining context.

    Args:
        system: System prompt.
        question: User question.
        model: Model identifier.
        temperature: Sampling temperature, passed through unchanged.
        models: Model registry; defaults to the tiktoken-backed registry.

    Returns:
        The assembled request.

    Raises:
        BuildError: If a message is rejected, the model's tokens cannot be
            counted, or the remaining budget does not fit ``max_tokens``.
    """

    registry = models or default_model_registry()
    system_message = _message("system", system)
    user_message = _message("user", question)
    messages = (system_message, user_message)

    try:
        budget = registry.max_completion_tokens(model, messages)
    except TokenCountError as exc:
        raise BuildError(BuildErrorKind.TOKEN_COUNT_UNAVAILABLE, str(exc)) from exc

    if not 0 < budget <= MAX_RESPONSE_TOKENS_LIMIT:
        raise BuildError(
            BuildErrorKind.TOKEN_BUDGET_OUT_OF_RANGE,
            f"max tokens out of range: {budget} not in 1..{MAX_RESPONSE_TOKENS_LIMIT}",
        )

    return ChatRequest(
        model_id=model,
        temperature=temperature,
        max_response_tokens=budget,
        messages=messages,
    )


def _message(role: str, content: str) -> ChatMessage:
    try:
        return ChatMessage(role=role, content=content)
    except ValueError as exc:
        raise BuildError(BuildErrorKind.INVALID_MESSAGE, str(exc)) from exc
