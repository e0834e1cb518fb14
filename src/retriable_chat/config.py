"""Configuration models and loaders for retriable-chat."""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from retriable_chat.llm.backoff import BackoffPolicy
from retriable_chat.llm.credentials import OPENAI_API_KEY_ENV
from retriable_chat.llm.transport import DEFAULT_BASE_URL

CONFIG_FILE_NAMES: tuple[str, ...] = ("retriable_chat.yaml", "retriable_chat.yml")
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass(frozen=True)
class LLMConfig:
    """Defaults for questions sent from the CLI.

    Attributes:
        model: Model identifier used when none is given.
        temperature: Sampling temperature used when none is given.
        timeout_s: Per-request timeout, also the retry budget.
        base_url: Root of the OpenAI-compatible API.
        api_key_env: Environment variable holding the API key.
        system_prompt: System prompt used when none is given.
    """

    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    timeout_s: float = 60.0
    base_url: str = DEFAULT_BASE_URL
    api_key_env: str = OPENAI_API_KEY_ENV
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass(frozen=True)
class BackoffConfig:
    """Retry spacing for rate-limited requests."""

    initial_interval_s: float = 4.0
    multiplier: float = 2.0
    max_interval_s: float = 20.0
    randomization_factor: float = 0.0

    def to_policy(self, max_elapsed_s: float | None = None) -> BackoffPolicy:
        return BackoffPolicy(
            initial_interval_s=self.initial_interval_s,
            multiplier=self.multiplier,
            max_interval_s=self.max_interval_s,
            max_elapsed_s=max_elapsed_s,
            randomization_factor=self.randomization_factor,
        )


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration for the application."""

    llm: LLMConfig = field(default_factory=lambda: LLMConfig())
    backoff: BackoffConfig = field(default_factory=lambda: BackoffConfig())
    log_level: str = "WARNING"


def load_config(path: Path | None = None) -> AppConfig:
    """Load application configuration from disk.

    Args:
        path: Optional path to a configuration file or directory.

    Returns:
        Parsed AppConfig with defaults applied when no config exists.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return AppConfig()

    if config_path.suffix in {".yaml", ".yml"}:
        raw_data = _load_yaml(config_path)
    elif config_path.suffix == ".toml":
        raw_data = _load_toml(config_path)
    else:
        raise ValueError(f"Unsupported config file type: {config_path}")

    return _parse_app_config(raw_data)


def config_to_dict(config: AppConfig) -> dict[str, Any]:
    """Serialize an AppConfig into a JSON-compatible dictionary."""

    return {
        "llm": {
            "model": config.llm.model,
            "temperature": config.llm.temperature,
            "timeout_s": config.llm.timeout_s,
            "base_url": config.llm.base_url,
            "api_key_env": config.llm.api_key_env,
            "system_prompt": config.llm.system_prompt,
        },
        "backoff": {
            "initial_interval_s": config.backoff.initial_interval_s,
            "multiplier": config.backoff.multiplier,
            "max_interval_s": config.backoff.max_interval_s,
            "randomization_factor": config.backoff.randomization_factor,
        },
        "log_level": config.log_level,
    }


def update_llm(config: AppConfig, **changes: Any) -> AppConfig:
    """Return a config copy with LLM fields replaced, ignoring ``None`` values."""

    overrides = {key: value for key, value in changes.items() if value is not None}
    if not overrides:
        return config
    return replace(config, llm=replace(config.llm, **overrides))


def _resolve_config_path(path: Path | None) -> Path | None:
    candidate_paths: list[Path] = []
    if path is None:
        candidate_paths.extend(Path(name) for name in CONFIG_FILE_NAMES)
        candidate_paths.append(Path("pyproject.toml"))
    elif path.is_dir():
        candidate_paths.extend(path / name for name in CONFIG_FILE_NAMES)
        candidate_paths.append(path / "pyproject.toml")
    else:
        if not path.exists():
            raise ValueError(f"Config file not found: {path}")
        return path

    for candidate in candidate_paths:
        if candidate.exists():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    if path.name == "pyproject.toml":
        tool_config = data.get("tool", {}).get("retriable_chat", {})
        if not isinstance(tool_config, dict):
            raise ValueError("tool.retriable_chat must be a mapping.")
        return tool_config
    return data


def _load_yaml(path: Path) -> dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = yaml.safe_load(text)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("YAML configuration must be a mapping.")
    return data


def _parse_app_config(raw_data: dict[str, Any]) -> AppConfig:
    return AppConfig(
        llm=_parse_llm_config(raw_data.get("llm", {})),
        backoff=_parse_backoff_config(raw_data.get("backoff", {})),
        log_level=str(raw_data.get("log_level", AppConfig.log_level)),
    )


def _parse_llm_config(raw: Any) -> LLMConfig:
    if not isinstance(raw, dict):
        return LLMConfig()
    defaults = LLMConfig()
    timeout_s = float(raw.get("timeout_s", defaults.timeout_s))
    if timeout_s <= 0:
        raise ValueError("llm.timeout_s must be positive.")
    return LLMConfig(
        model=str(raw.get("model", defaults.model)),
        temperature=float(raw.get("temperature", defaults.temperature)),
        timeout_s=timeout_s,
        base_url=_optional_str(raw.get("base_url")) or defaults.base_url,
        api_key_env=str(raw.get("api_key_env", defaults.api_key_env)),
        system_prompt=str(raw.get("system_prompt", defaults.system_prompt)),
    )


def _parse_backoff_config(raw: Any) -> BackoffConfig:
    if not isinstance(raw, dict):
        return BackoffConfig()
    defaults = BackoffConfig()
    config = BackoffConfig(
        initial_interval_s=float(raw.get("initial_interval_s", defaults.initial_interval_s)),
        multiplier=float(raw.get("multiplier", defaults.multiplier)),
        max_interval_s=float(raw.get("max_interval_s", defaults.max_interval_s)),
        randomization_factor=float(
            raw.get("randomization_factor", defaults.randomization_factor)
        ),
    )
    # Surface invalid combinations at load time rather than on first retry.
    config.to_policy()
    return config


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
