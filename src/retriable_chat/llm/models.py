"""Model metadata: context windows and chat token accounting."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, Protocol, Sequence

import tiktoken

if TYPE_CHECKING:
    from retriable_chat.llm.request_builder import ChatMessage

# Tokens added after the last message to prime the assistant reply.
REPLY_PRIMING_TOKENS = 3


class TokenCountError(ValueError):
    """Raised when tokens cannot be counted for a model."""


class UnknownModelError(TokenCountError):
    """Raised when a model identifier is not present in the registry."""

    def __init__(self, model: str) -> None:
        super().__init__(f"unknown model '{model}'")
        self.model = model


class Encoding(Protocol):
    def encode(self, text: str, **kwargs: Any) -> list[int]: ...


@dataclass(frozen=True)
class ModelSpec:
    """Static metadata for a family of chat models.

    Attributes:
        name: Model name or name prefix, e.g. ``gpt-4-32k``.
        context_window: Total tokens shared by prompt and completion.
        encoding: tiktoken encoding name used by the model.
        tokens_per_message: Framing tokens added for each message.
    """

    name: str
    context_window: int
    encoding: str = "cl100k_base"
    tokens_per_message: int = 3


# Longest prefix wins, so order here does not matter.
DEFAULT_MODEL_SPECS: tuple[ModelSpec, ...] = (
    ModelSpec("gpt-4o-mini", 128_000, encoding="o200k_base"),
    ModelSpec("gpt-4o", 128_000, encoding="o200k_base"),
    ModelSpec("gpt-4-turbo", 128_000),
    ModelSpec("gpt-4-1106-preview", 128_000),
    ModelSpec("gpt-4-0125-preview", 128_000),
    ModelSpec("gpt-4-32k", 32_768),
    ModelSpec("gpt-4", 8_192),
    ModelSpec("gpt-3.5-turbo-16k", 16_384),
    ModelSpec("gpt-3.5-turbo-1106", 16_385),
    ModelSpec("gpt-3.5-turbo-0125", 16_385),
    ModelSpec("gpt-3.5-turbo-0301", 4_096, tokens_per_message=4),
    ModelSpec("gpt-3.5-turbo", 4_096),
)


class ModelRegistry(ABC):
    """Lookup of context windows and prompt token counts per model."""

    @abstractmethod
    def context_window(self, model: str) -> int:
        """Return the total context window for ``model``.

        Raises:
            UnknownModelError: If the model is not known.
        """

    @abstractmethod
    def count_message_tokens(self, model: str, messages: Sequence[ChatMessage]) -> int:
        """Return the prompt tokens ``messages`` consume for ``model``.

        Raises:
            TokenCountError: If the model is unknown or tokenization fails.
        """

    def max_completion_tokens(self, model: str, messages: Sequence[ChatMessage]) -> int:
        """Return the tokens left for the completion, never below zero."""

        window = self.context_window(model)
        consumed = self.count_message_tokens(model, messages)
        return max(window - consumed, 0)


class _SpecTable:
    def __init__(self, specs: Iterable[ModelSpec]) -> None:
        self._specs = sorted(specs, key=lambda spec: len(spec.name), reverse=True)

    def resolve(self, model: str) -> ModelSpec:
        for spec in self._specs:
            if model == spec.name or model.startswith(f"{spec.name}-"):
                return spec
        raise UnknownModelError(model)

    def __iter__(self) -> Iterator[ModelSpec]:
        return iter(sorted(self._specs, key=lambda spec: spec.name))


class TiktokenModelRegistry(ModelRegistry):
    """Registry backed by a versioned ModelSpec table and tiktoken encodings."""

    def __init__(
        self,
        specs: Iterable[ModelSpec] = DEFAULT_MODEL_SPECS,
        *,
        encoding_loader: Callable[[str], Encoding] = tiktoken.get_encoding,
    ) -> None:
        self._table = _SpecTable(specs)
        self._encoding_loader = encoding_loader
        self._encodings: dict[str, Encoding] = {}

    @property
    def specs(self) -> list[ModelSpec]:
        return list(self._table)

    def context_window(self, model: str) -> int:
        return self._table.resolve(model).context_window

    def count_message_tokens(self, model: str, messages: Sequence[ChatMessage]) -> int:
        spec = self._table.resolve(model)
        encoding = self._encoding(spec.encoding)
        try:
            total = 0
            for message in messages:
                total += spec.tokens_per_message
                total += len(encoding.encode(message.role, disallowed_special=()))
                total += len(encoding.encode(message.content, disallowed_special=()))
        except Exception as exc:
            raise TokenCountError(f"failed to tokenize messages for '{model}'") from exc
        return total + REPLY_PRIMING_TOKENS

    def _encoding(self, name: str) -> Encoding:
        encoding = self._encodings.get(name)
        if encoding is None:
            try:
                encoding = self._encoding_loader(name)
            except Exception as exc:
                raise TokenCountError(f"failed to load encoding '{name}'") from exc
            self._encodings[name] = encoding
        return encoding


class StaticModelRegistry(ModelRegistry):
    """Registry over caller-supplied specs and a plain token counter.

    Useful for synthetic models: ``count_tokens`` receives each message's
    content and the per-message framing from the ModelSpec is added on top.
    """

    def __init__(
        self,
        specs: Iterable[ModelSpec],
        count_tokens: Callable[[str], int] = lambda text: len(text.split()),
    ) -> None:
        self._table = _SpecTable(specs)
        self._count_tokens = count_tokens

    def context_window(self, model: str) -> int:
        return self._table.resolve(model).context_window

    def count_message_tokens(self, model: str, messages: Sequence[ChatMessage]) -> int:
        spec = self._table.resolve(model)
        return sum(
            spec.tokens_per_message + self._count_tokens(message.content)
            for message in messages
        )
