"""Base interface and error taxonomy for chat clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum


class ChatClientError(RuntimeError):
    """Base exception for chat client failures."""


class CreateClientErrorKind(str, Enum):
    """Reasons a client could not be constructed."""

    MISSING_CREDENTIAL = "missing_credential"
    TRANSPORT_INIT = "transport_init"


class CreateClientError(ChatClientError):
    """Raised when a chat client cannot be created.

    Attributes:
        timeout_s: Timeout the client was being created with.
        kind: Which construction step failed.
    """

    def __init__(self, timeout_s: float, kind: CreateClientErrorKind) -> None:
        super().__init__(f"error creating openai client with timeout {timeout_s}s")
        self.timeout_s = timeout_s
        self.kind = kind


class BuildErrorKind(str, Enum):
    """Reasons a chat request could not be built."""

    INVALID_MESSAGE = "invalid_message"
    TOKEN_COUNT_UNAVAILABLE = "token_count_unavailable"
    TOKEN_BUDGET_OUT_OF_RANGE = "token_budget_out_of_range"


class BuildError(ChatClientError):
    """Raised when a request fails validation before any network call."""

    def __init__(self, kind: BuildErrorKind, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail


class ChatErrorKind(str, Enum):
    """Stage at which ``ask_question`` failed."""

    BUILD_REQUEST = "build_request"
    REQUEST = "request"


class ChatError(ChatClientError):
    """Raised by ``ask_question``; the underlying failure is the ``__cause__``.

    Attributes:
        model: Model identifier the question was addressed to.
        kind: Whether building or sending the request failed.
        detail: Human-readable detail for build failures.
    """

    def __init__(self, model: str, kind: ChatErrorKind, detail: str | None = None) -> None:
        if kind is ChatErrorKind.BUILD_REQUEST:
            message = f"error building chat request {detail or ''}".rstrip()
        else:
            message = f"error asking chat model {model}"
        super().__init__(message)
        self.model = model
        self.kind = kind
        self.detail = detail


class ChatClient(ABC):
    """Abstract interface for asking a chat model a single question."""

    @abstractmethod
    async def ask_question(
        self,
        system: str,
        question: str,
        model: str,
        temperature: float,
    ) -> str:
        """Ask the chat API a question and return the response text.

        Args:
            system: System prompt that frames the conversation.
            question: The user's question.
            model: Model identifier, e.g. ``gpt-3.5-turbo``.
            temperature: Sampling temperature for the model.

        Returns:
            The concatenated text of every returned choice.

        Raises:
            ChatError: If the request could not be built or sent.
        """
