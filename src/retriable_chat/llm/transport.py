"""HTTP transport for the chat-completion endpoint."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import requests  # type: ignore[import-untyped]
from requests.adapters import HTTPAdapter  # type: ignore[import-untyped]

from retriable_chat.llm.request_builder import ChatRequest
from retriable_chat.util.logging import get_logger

DEFAULT_BASE_URL = "https://api.openai.com/v1"
RATE_LIMIT_STATUS = 429
# A 429 of this type means the account is out of credit; retrying cannot help.
INSUFFICIENT_QUOTA = "insufficient_quota"


class TransportError(RuntimeError):
    """Raised when the remote call fails.

    Attributes:
        status_code: HTTP status, or ``None`` when no response was received.
        error_type: The ``error.type`` reported by the API, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class RateLimitError(TransportError):
    """Raised for rate-limit responses, the only failures worth retrying."""


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class ChatResponse:
    """Ordered choice texts returned by the API."""

    choices: tuple[str, ...] = ()
    usage: TokenUsage | None = None

    @property
    def text(self) -> str:
        return "".join(self.choices)


class ChatTransport(ABC):
    """Submits a built request to the remote service."""

    @abstractmethod
    async def submit(self, request: ChatRequest) -> ChatResponse:
        """Send ``request`` once and return the parsed response.

        Raises:
            RateLimitError: If the service asked the caller to slow down.
            TransportError: For every other failure.
        """


class RequestsTransport(ChatTransport):
    """Transport over a pooled ``requests.Session``.

    The blocking call runs in a worker thread so the event loop stays free
    while a request is outstanding.
    """

    def __init__(
        self,
        *,
        api_key: str,
        timeout_s: float,
        base_url: str | None = None,
        pool_size: int = 10,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            api_key: Bearer token for the API.
            timeout_s: Per-request timeout in seconds.
            base_url: API root; defaults to the public OpenAI endpoint.
            pool_size: Connections kept per host.
            session: Optional session for testing or reuse.
        """

        if not api_key:
            raise ValueError("api_key is required for RequestsTransport.")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive.")
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1.")

        self._url = f"{(base_url or DEFAULT_BASE_URL).rstrip('/')}/chat/completions"
        self._headers = {"Authorization": f"Bearer {api_key}"}
        self._timeout_s = timeout_s
        self._session = session or _build_session(pool_size)
        self._logger = get_logger(self.__class__.__name__)

    @property
    def url(self) -> str:
        return self._url

    async def submit(self, request: ChatRequest) -> ChatResponse:
        # ``requests`` only bounds each socket read; this bounds the whole attempt.
        # A timed-out worker thread is abandoned, not interrupted.
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._post, request.to_payload()),
                self._timeout_s,
            )
        except TimeoutError as exc:
            raise TransportError(
                f"OpenAI API request timed out after {self._timeout_s}s."
            ) from exc

    def _post(self, payload: dict[str, Any]) -> ChatResponse:
        self._logger.debug("POST %s model=%s", self._url, payload.get("model"))
        try:
            response = self._session.post(
                self._url,
                json=payload,
                headers=self._headers,
                timeout=self._timeout_s,
            )
        except requests.RequestException as exc:
            raise TransportError("OpenAI API request failed.") from exc

        if response.status_code >= 400:
            raise classify_error(response)

        try:
            data = response.json()
        except ValueError as exc:
            raise TransportError("Unexpected response format from OpenAI API.") from exc
        return parse_chat_response(data)


def classify_error(response: requests.Response) -> TransportError:
    """Turn an error response into a ``RateLimitError`` or ``TransportError``."""

    error_type, message = _error_details(response)
    text = (
        f"OpenAI API request failed with status {response.status_code}: "
        f"{message or response.text}"
    )
    if response.status_code == RATE_LIMIT_STATUS and error_type != INSUFFICIENT_QUOTA:
        return RateLimitError(text, status_code=response.status_code, error_type=error_type)
    return TransportError(text, status_code=response.status_code, error_type=error_type)


def parse_chat_response(data: Any) -> ChatResponse:
    """Extract choice texts and usage from a decoded response body."""

    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        raise TransportError("Unexpected response format from OpenAI API.")
    choices: list[str] = []
    for choice in data["choices"]:
        try:
            content = choice["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise TransportError("Unexpected response format from OpenAI API.") from exc
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise TransportError("Unexpected response format from OpenAI API.")
        choices.append(content)
    return ChatResponse(choices=tuple(choices), usage=_parse_usage(data.get("usage")))


def _parse_usage(usage: Any) -> TokenUsage | None:
    if not isinstance(usage, dict):
        return None
    values = (
        usage.get("prompt_tokens"),
        usage.get("completion_tokens"),
        usage.get("total_tokens"),
    )
    if not all(isinstance(value, int) for value in values):
        return None
    return TokenUsage(*values)


def _error_details(response: requests.Response) -> tuple[str | None, str | None]:
    try:
        body = response.json()
    except ValueError:
        return None, None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return None, None
    error_type = error.get("type")
    message = error.get("message")
    return (
        error_type if isinstance(error_type, str) else None,
        message if isinstance(message, str) else None,
    )


def _build_session(pool_size: int) -> requests.Session:
    session = requests.Session()
    # Retries are handled by the client's backoff, not by urllib3.
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session
