"""Application wiring for CLI-friendly usage."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from retriable_chat.config import AppConfig, load_config, update_llm
from retriable_chat.llm.credentials import CredentialSource
from retriable_chat.llm.models import ModelRegistry, ModelSpec, TiktokenModelRegistry
from retriable_chat.llm.openai_client import RetriableChatClient, live
from retriable_chat.llm.request_builder import build_request, default_model_registry
from retriable_chat.util.logging import get_logger
from retriable_chat.util.observability import ObservabilityManager, create_observability_manager

_LOGGER = get_logger("retriable_chat.app")


@dataclass(frozen=True)
class Question:
    """A fully resolved question, defaults from config already applied."""

    system: str
    text: str
    model: str
    temperature: float


def resolve_config(
    config_path: Path | None = None,
    *,
    model: str | None = None,
    temperature: float | None = None,
    timeout_s: float | None = None,
) -> AppConfig:
    """Load configuration and apply command-line overrides."""

    config = load_config(config_path)
    return update_llm(config, model=model, temperature=temperature, timeout_s=timeout_s)


def create_client(
    config: AppConfig,
    *,
    credentials: CredentialSource | None = None,
    models: ModelRegistry | None = None,
    observability: ObservabilityManager | None = None,
) -> RetriableChatClient:
    """Create a live client from configuration.

    Raises:
        CreateClientError: If the credential is missing or the transport
            cannot be built.
    """

    return live(
        config.llm.timeout_s,
        credentials=credentials,
        api_key_env=config.llm.api_key_env,
        base_url=config.llm.base_url,
        models=models,
        backoff=config.backoff.to_policy(),
        observability=observability or create_observability_manager(),
    )


def make_question(config: AppConfig, text: str, *, system: str | None = None) -> Question:
    return Question(
        system=system if system is not None else config.llm.system_prompt,
        text=text,
        model=config.llm.model,
        temperature=config.llm.temperature,
    )


def ask(
    question: Question,
    config: AppConfig,
    *,
    credentials: CredentialSource | None = None,
) -> str:
    """Synchronously ask a single question.

    Raises:
        CreateClientError: If the client cannot be created.
        ChatError: If the request cannot be built or sent.
    """

    client = create_client(config, credentials=credentials)
    _LOGGER.debug("Asking model '%s' with timeout %ss.", question.model, config.llm.timeout_s)
    return asyncio.run(
        client.ask_question(question.system, question.text, question.model, question.temperature)
    )


def compute_budget(question: Question, *, models: ModelRegistry | None = None) -> int:
    """Return the ``max_tokens`` a request for ``question`` would carry.

    Raises:
        BuildError: If the request cannot be built.
    """

    request = build_request(
        question.system,
        question.text,
        question.model,
        question.temperature,
        models=models,
    )
    return request.max_response_tokens


def known_models(models: ModelRegistry | None = None) -> list[ModelSpec]:
    """Return the model specs known to a tiktoken-backed registry."""

    registry = models or default_model_registry()
    if isinstance(registry, TiktokenModelRegistry):
        return registry.specs
    return []
