"""Credential sources consulted when a client is created."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Mapping

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"


class CredentialSource(ABC):
    """Read-only lookup of named secrets."""

    @abstractmethod
    def get(self, name: str) -> str | None:
        """Return the value for ``name`` or ``None`` when it is not set."""


class EnvironmentCredentials(CredentialSource):
    """Credentials read from the process environment at lookup time."""

    def get(self, name: str) -> str | None:
        value = os.getenv(name)
        return value or None


class MappingCredentials(CredentialSource):
    """Credentials from a fixed mapping."""

    def __init__(self, values: Mapping[str, str]) -> None:
        self._values = dict(values)

    def get(self, name: str) -> str | None:
        return self._values.get(name) or None
