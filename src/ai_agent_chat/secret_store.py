from __future__ import annotations

import os
from typing import Protocol, runtime_checkable

SERVICE_ID = "ai-agent"
API_KEY_ACCOUNT = "openai-api-key"


@runtime_checkable
class SecretStore(Protocol):
    def get(self, service: str, account: str) -> str | None: ...

    def set(self, value: str, service: str, account: str) -> bool: ...

    def delete(self, service: str, account: str) -> bool: ...


class InMemorySecretStore:
    def __init__(self) -> None:
        self._values: dict[tuple[str, str], str] = {}

    def get(self, service: str, account: str) -> str | None:
        return self._values.get((service, account))

    def set(self, value: str, service: str, account: str) -> bool:
        self._values[(service, account)] = value
        return True

    def delete(self, service: str, account: str) -> bool:
        return self._values.pop((service, account), None) is not None


class EnvironmentSecretStore:
    """Maps (service, account) pairs onto process environment variables."""

    def __init__(self, env_vars: dict[tuple[str, str], str] | None = None):
        self._env_vars = env_vars or {(SERVICE_ID, API_KEY_ACCOUNT): "OPENAI_API_KEY"}

    def get(self, service: str, account: str) -> str | None:
        name = self._env_vars.get((service, account))
        if name is None:
            return None
        return os.environ.get(name) or None

    def set(self, value: str, service: str, account: str) -> bool:
        name = self._env_vars.get((service, account))
        if name is None:
            return False
        os.environ[name] = value
        return True

    def delete(self, service: str, account: str) -> bool:
        name = self._env_vars.get((service, account))
        if name is None or name not in os.environ:
            return False
        del os.environ[name]
        return True
