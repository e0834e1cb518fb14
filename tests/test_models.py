from __future__ import annotations

from typing import Any

import pytest

from retriable_chat.llm.models import (
    ModelSpec,
    StaticModelRegistry,
    TiktokenModelRegistry,
    TokenCountError,
    UnknownModelError,
)
from retriable_chat.llm.request_builder import ChatMessage


class _WordEncoding:
    def encode(self, text: str, **_kwargs: Any) -> list[str]:
        return text.split()


def _registry(loaded: list[str] | None = None) -> TiktokenModelRegistry:
    def loader(name: str) -> _WordEncoding:
        if loaded is not None:
            loaded.append(name)
        return _WordEncoding()

    return TiktokenModelRegistry(encoding_loader=loader)


MESSAGES = (
    ChatMessage(role="system", content="You are helpful"),
    ChatMessage(role="user", content="What is two plus two"),
)


def test_counts_chat_framing_tokens() -> None:
    registry = _registry()

    # (3 + role + 3 words) + (3 + role + 5 words) + 3 reply priming
    assert registry.count_message_tokens("gpt-4", MESSAGES) == 19
    assert registry.max_completion_tokens("gpt-4", MESSAGES) == 8192 - 19


def test_legacy_turbo_uses_four_tokens_per_message() -> None:
    registry = _registry()

    assert registry.count_message_tokens("gpt-3.5-turbo-0301", MESSAGES) == 21


def test_matches_real_cl100k_counts() -> None:
    tiktoken = pytest.importorskip("tiktoken")
    try:
        tiktoken.get_encoding("cl100k_base")
    except Exception as exc:  # encoding files are fetched on first use
        pytest.skip(f"cl100k_base unavailable: {exc}")
    registry = TiktokenModelRegistry()
    messages = (
        ChatMessage(role="system", content="You are a helpful assistant."),
        ChatMessage(role="user", content="Hello!"),
    )

    # (3 + 1 + 6) + (3 + 1 + 2) + 3 reply priming
    assert registry.count_message_tokens("gpt-4", messages) == 19
    assert registry.max_completion_tokens("gpt-4", messages) == 8192 - 19


@pytest.mark.parametrize(
    ("model", "window"),
    [
        ("gpt-4-0613", 8_192),
        ("gpt-4-32k-0613", 32_768),
        ("gpt-3.5-turbo-16k-0613", 16_384),
        ("gpt-4o-mini-2024-07-18", 128_000),
        ("gpt-4o", 128_000),
    ],
)
def test_resolves_longest_matching_prefix(model: str, window: int) -> None:
    assert _registry().context_window(model) == window


def test_unknown_model_raises_without_loading_encoding() -> None:
    loaded: list[str] = []
    registry = _registry(loaded)

    with pytest.raises(UnknownModelError):
        registry.count_message_tokens("gpt-4omni", MESSAGES)
    with pytest.raises(UnknownModelError):
        registry.context_window("llama-3")
    assert loaded == []


def test_encodings_are_loaded_once_per_name() -> None:
    loaded: list[str] = []
    registry = _registry(loaded)

    registry.count_message_tokens("gpt-4o-mini", MESSAGES)
    registry.count_message_tokens("gpt-4o", MESSAGES)
    registry.count_message_tokens("gpt-4", MESSAGES)

    assert loaded == ["o200k_base", "cl100k_base"]


def test_encoding_load_failure_is_a_token_count_error() -> None:
    def failing_loader(name: str) -> _WordEncoding:
        raise OSError(f"cannot fetch {name}")

    registry = TiktokenModelRegistry(encoding_loader=failing_loader)

    with pytest.raises(TokenCountError) as excinfo:
        registry.count_message_tokens("gpt-4", MESSAGES)
    assert isinstance(excinfo.value.__cause__, OSError)


def test_max_completion_tokens_never_negative() -> None:
    registry = StaticModelRegistry([ModelSpec("tiny", 5)])
    messages = [ChatMessage(role="user", content="one two three four five six")]

    assert registry.max_completion_tokens("tiny", messages) == 0


def test_specs_listing_is_sorted_by_name() -> None:
    names = [spec.name for spec in _registry().specs]

    assert names == sorted(names)
    assert "gpt-4" in names
