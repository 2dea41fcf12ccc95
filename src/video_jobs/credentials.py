"""Credential providers for bearer-token authentication."""

from __future__ import annotations

import os
from typing import Protocol

API_KEY_ENV_VARS = ("VIDEO_JOBS_API_KEY", "OPENAI_API_KEY")


class CredentialProvider(Protocol):
    """Source of the API key; returns None when no key is configured."""

    def get_credential(self) -> str | None: ...


class EnvCredentialProvider:
    """Reads the API key from the environment on every call."""

    def __init__(self, env_vars: tuple[str, ...] = API_KEY_ENV_VARS) -> None:
        self.env_vars = env_vars

    def get_credential(self) -> str | None:
        for name in self.env_vars:
            value = os.getenv(name, "").strip()
            if value:
                return value
        return None


class StaticCredentialProvider:
    """Fixed credential, mostly for tests and embedding."""

    def __init__(self, credential: str | None) -> None:
        self._credential = credential

    def get_credential(self) -> str | None:
        if self._credential is None or not self._credential.strip():
            return None
        return self._credential
