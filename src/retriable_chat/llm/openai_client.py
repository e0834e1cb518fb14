"""OpenAI chat client that retries rate-limited requests with backoff."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field, replace
from typing import Awaitable, Callable

import requests  # type: ignore[import-untyped]

from retriable_chat.llm.backoff import BackoffPolicy, Clock
from retriable_chat.llm.base import (
    BuildError,
    ChatClient,
    ChatError,
    ChatErrorKind,
    CreateClientError,
    CreateClientErrorKind,
)
from retriable_chat.llm.credentials import (
    OPENAI_API_KEY_ENV,
    CredentialSource,
    EnvironmentCredentials,
)
from retriable_chat.llm.models import ModelRegistry
from retriable_chat.llm.request_builder import ChatRequest, build_request
from retriable_chat.llm.transport import (
    ChatResponse,
    ChatTransport,
    RateLimitError,
    RequestsTransport,
    TransportError,
)
from retriable_chat.util.logging import get_logger
from retriable_chat.util.observability import ObservabilityManager

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class ClientConfig:
    """Configuration fixed for the lifetime of a client."""

    api_key: str = field(repr=False)
    timeout_s: float
    backoff: BackoffPolicy
    base_url: str | None = None

    @classmethod
    def for_timeout(
        cls,
        api_key: str,
        timeout_s: float,
        *,
        base_url: str | None = None,
        backoff: BackoffPolicy | None = None,
    ) -> ClientConfig:
        """Build a config whose retries never outlive ``timeout_s``."""

        policy = replace(backoff or BackoffPolicy(), max_elapsed_s=timeout_s)
        return cls(api_key=api_key, timeout_s=timeout_s, backoff=policy, base_url=base_url)


class RetriableChatClient(ChatClient):
    """Chat client with a token-budgeted request and rate-limit retries.

    Holds only immutable configuration plus a transport, so one instance can
    serve concurrent ``ask_question`` calls.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: ChatTransport,
        *,
        models: ModelRegistry | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Timeout, backoff and credential settings.
            transport: Transport used to submit requests.
            models: Model registry for token budgeting.
            sleep: Awaitable used between retries.
            clock: Monotonic clock used to measure the retry budget.
            observability: Optional event logger and metrics.
        """

        self._config = config
        self._transport = transport
        self._models = models
        self._sleep = sleep
        self._clock = clock
        self._observability = observability
        self._logger = get_logger(self.__class__.__name__)

    @property
    def config(self) -> ClientConfig:
        return self._config

    async def ask_question(
        self,
        system: str,
        question: str,
        model: str,
        temperature: float,
    ) -> str:
        """Ask the chat API a question and return the response text."""

        try:
            request = build_request(system, question, model, temperature, models=self._models)
        except BuildError as exc:
            raise ChatError(model, ChatErrorKind.BUILD_REQUEST, exc.detail) from exc

        self._emit(
            "chat.requested",
            {
                "model": model,
                "temperature": temperature,
                "max_tokens": request.max_response_tokens,
            },
        )
        start = time.perf_counter()
        try:
            response = await self._submit_with_backoff(request)
        except TransportError as exc:
            self._record_failure(model, exc)
            raise ChatError(model, ChatErrorKind.REQUEST) from exc

        self._record_success(model, response, time.perf_counter() - start)
        return response.text

    async def _submit_with_backoff(self, request: ChatRequest) -> ChatResponse:
        backoff = self._config.backoff.start(self._clock)
        attempt = 1
        while True:
            try:
                return await self._transport.submit(request)
            except RateLimitError as exc:
                delay = backoff.next_backoff()
                if delay is None:
                    self._logger.warning(
                        "Rate limited by model '%s'; retry budget of %ss exhausted after %d attempts.",
                        request.model_id,
                        self._config.timeout_s,
                        attempt,
                    )
                    raise
                self._logger.warning(
                    "Rate limited by model '%s' (attempt %d); retrying in %.1fs.",
                    request.model_id,
                    attempt,
                    delay,
                )
                self._emit(
                    "chat.retry_scheduled",
                    {
                        "model": request.model_id,
                        "attempt": attempt,
                        "delay_s": delay,
                        "error": str(exc),
                    },
                    level="WARNING",
                )
                if self._observability:
                    self._observability.metrics.increment("chat.retries")
                await self._sleep(delay)
                attempt += 1

    def _record_success(self, model: str, response: ChatResponse, duration: float) -> None:
        if not self._observability:
            return
        metrics = self._observability.metrics
        metrics.increment("chat.requests")
        metrics.record_duration("chat.duration", duration)
        if response.usage:
            metrics.record_tokens(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )
        self._emit(
            "chat.completed",
            {"model": model, "duration_s": duration, "choices": len(response.choices)},
        )

    def _record_failure(self, model: str, exc: TransportError) -> None:
        if self._observability:
            self._observability.metrics.increment("chat.failures")
        self._emit(
            "chat.failed",
            {"model": model, "status_code": exc.status_code, "error": str(exc)},
            level="ERROR",
        )

    def _emit(self, event_type: str, payload: dict[str, object], *, level: str = "INFO") -> None:
        if self._observability:
            self._observability.log_event(event_type, payload, level=level)


def live(
    timeout_s: float,
    *,
    credentials: CredentialSource | None = None,
    api_key_env: str = OPENAI_API_KEY_ENV,
    base_url: str | None = None,
    models: ModelRegistry | None = None,
    session: requests.Session | None = None,
    backoff: BackoffPolicy | None = None,
    observability: ObservabilityManager | None = None,
) -> RetriableChatClient:
    """Create a client talking to the OpenAI API.

    ``timeout_s`` bounds each HTTP request and is also the backoff's maximum
    elapsed time, so retries never outlive the caller's budget.

    Raises:
        CreateClientError: If the API key (``OPENAI_API_KEY`` by default) is
            missing or the transport cannot be built.
    """

    source = credentials or EnvironmentCredentials()
    api_key = source.get(api_key_env)
    if not api_key:
        raise CreateClientError(
            timeout_s, CreateClientErrorKind.MISSING_CREDENTIAL
        ) from KeyError(api_key_env)

    try:
        config = ClientConfig.for_timeout(api_key, timeout_s, base_url=base_url, backoff=backoff)
        transport = RequestsTransport(
            api_key=config.api_key,
            timeout_s=config.timeout_s,
            base_url=config.base_url,
            session=session,
        )
    except (ValueError, requests.RequestException) as exc:
        raise CreateClientError(timeout_s, CreateClientErrorKind.TRANSPORT_INIT) from exc

    return RetriableChatClient(
        config,
        transport,
        models=models,
        observability=observability,
    )
