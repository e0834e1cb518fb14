from __future__ import annotations

import asyncio
import threading
import time
from typing import Any

import pytest
import requests  # type: ignore[import-untyped]

from retriable_chat.llm.request_builder import ChatMessage, ChatRequest
from retriable_chat.llm.transport import (
    ChatResponse,
    RateLimitError,
    RequestsTransport,
    TransportError,
    parse_chat_response,
)

REQUEST = ChatRequest(
    model_id="gpt-4",
    temperature=0.3,
    max_response_tokens=100,
    messages=(
        ChatMessage(role="system", content="be brief"),
        ChatMessage(role="user", content="hi"),
    ),
)


class _MockResponse:
    def __init__(self, status_code: int, payload: Any = None, text: str = "mock response") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class _MockSession:
    def __init__(self, *responses: _MockResponse | Exception) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def post(self, url: str, **kwargs: Any) -> _MockResponse:
        self.calls.append({"url": url, **kwargs})
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _transport(session: _MockSession) -> RequestsTransport:
    return RequestsTransport(
        api_key="test-key",
        timeout_s=12.0,
        base_url="https://example.test/v1/",
        session=session,  # type: ignore[arg-type]
    )


def test_submit_posts_payload_and_concatenates_choices() -> None:
    session = _MockSession(
        _MockResponse(
            200,
            {
                "choices": [
                    {"message": {"content": "Hello, "}},
                    {"message": {"content": "world"}},
                ],
                "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
            },
        )
    )

    response = asyncio.run(_transport(session).submit(REQUEST))

    assert response.text == "Hello, world"
    assert response.usage is not None and response.usage.total_tokens == 7
    call = session.calls[0]
    assert call["url"] == "https://example.test/v1/chat/completions"
    assert call["json"] == REQUEST.to_payload()
    assert call["headers"] == {"Authorization": "Bearer test-key"}
    assert call["timeout"] == 12.0


def test_zero_choices_yield_empty_text() -> None:
    session = _MockSession(_MockResponse(200, {"choices": []}))

    response = asyncio.run(_transport(session).submit(REQUEST))

    assert response == ChatResponse()
    assert response.text == ""


def test_rate_limit_is_classified_as_retriable() -> None:
    session = _MockSession(
        _MockResponse(
            429,
            {"error": {"type": "requests", "message": "Rate limit reached"}},
        )
    )

    with pytest.raises(RateLimitError) as excinfo:
        asyncio.run(_transport(session).submit(REQUEST))

    assert excinfo.value.status_code == 429
    assert "Rate limit reached" in str(excinfo.value)


def test_insufficient_quota_is_not_retriable() -> None:
    session = _MockSession(
        _MockResponse(
            429,
            {"error": {"type": "insufficient_quota", "message": "You exceeded your quota"}},
        )
    )

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_transport(session).submit(REQUEST))

    assert not isinstance(excinfo.value, RateLimitError)
    assert excinfo.value.error_type == "insufficient_quota"


def test_auth_failure_raises_transport_error() -> None:
    session = _MockSession(_MockResponse(401, None, text="unauthorized"))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_transport(session).submit(REQUEST))

    assert excinfo.value.status_code == 401
    assert "unauthorized" in str(excinfo.value)


def test_network_errors_are_chained() -> None:
    session = _MockSession(requests.ConnectionError("connection reset"))

    with pytest.raises(TransportError) as excinfo:
        asyncio.run(_transport(session).submit(REQUEST))

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_invalid_json_is_a_transport_error() -> None:
    session = _MockSession(_MockResponse(200, None))

    with pytest.raises(TransportError):
        asyncio.run(_transport(session).submit(REQUEST))


def test_null_content_contributes_empty_text() -> None:
    response = parse_chat_response(
        {"choices": [{"message": {"content": None}}, {"message": {"content": "x"}}]}
    )

    assert response.choices == ("", "x")
    assert response.text == "x"


@pytest.mark.parametrize(
    "payload",
    [[], {"choices": None}, {"choices": [{"delta": {}}]}, {"choices": [{"message": {"content": 3}}]}],
)
def test_malformed_bodies_are_rejected(payload: Any) -> None:
    with pytest.raises(TransportError):
        parse_chat_response(payload)


def test_transport_requires_api_key() -> None:
    with pytest.raises(ValueError):
        RequestsTransport(api_key="", timeout_s=10.0)


def test_transport_defaults_to_public_endpoint() -> None:
    transport = RequestsTransport(api_key="test-key", timeout_s=10.0)

    assert transport.url == "https://api.openai.com/v1/chat/completions"


class _StalledSession:
    """Session whose response trickles in until released."""

    def __init__(self) -> None:
        self.release = threading.Event()

    def post(self, url: str, **kwargs: Any) -> _MockResponse:
        self.release.wait(timeout=5.0)
        return _MockResponse(200, {"choices": [{"message": {"content": "late"}}]})


def test_slow_response_is_abandoned_at_timeout() -> None:
    session = _StalledSession()
    transport = RequestsTransport(
        api_key="test-key",
        timeout_s=0.2,
        session=session,  # type: ignore[arg-type]
    )

    async def submit_and_time() -> tuple[TransportError | None, float]:
        start = time.monotonic()
        try:
            await transport.submit(REQUEST)
        except TransportError as exc:
            return exc, time.monotonic() - start
        finally:
            session.release.set()
        return None, time.monotonic() - start

    error, elapsed = asyncio.run(submit_and_time())

    assert isinstance(error, TransportError)
    assert not isinstance(error, RateLimitError)
    assert "timed out" in str(error)
    assert isinstance(error.__cause__, TimeoutError)
    assert elapsed < 1.0
