from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from ai_agent_chat.models import ProviderSettings


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    temperature: float
    web_search_enabled: bool
    api_base_url: str | None
    sessions_path: str
    preferences_path: str
    connect_timeout_seconds: float
    read_timeout_seconds: float
    auto_generate_title: bool
    save_conversations: bool
    log_level: str
    log_consumers: list | None

    def default_provider_settings(self, api_key: str = "") -> ProviderSettings:
        return ProviderSettings(
            api_key=api_key,
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            web_search_enabled=self.web_search_enabled,
        )


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        provider_name=config.get("Provider", "openai").strip().lower(),
        model=config.get("Model", "gpt-4o-mini"),
        max_tokens=int(config.get("MaxTokens", 4000)),
        temperature=float(config.get("Temperature", 0.7)),
        web_search_enabled=_to_bool(config.get("WebSearchEnabled", False), default=False),
        api_base_url=str(config.get("ApiBaseUrl", "")).strip() or None,
        sessions_path=str(config.get("SessionsPath", ".ai_agent/chat-sessions.json")),
        preferences_path=str(config.get("PreferencesPath", ".ai_agent/preferences.json")),
        connect_timeout_seconds=float(config.get("ConnectTimeoutSeconds", 10)),
        read_timeout_seconds=float(config.get("ReadTimeoutSeconds", 60)),
        auto_generate_title=_to_bool(config.get("AutoGenerateTitle", True), default=True),
        save_conversations=_to_bool(config.get("SaveConversations", True), default=True),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        provider_api_key=os.environ.get("OPENAI_API_KEY", ""),
        provider_env_var="OPENAI_API_KEY",
    )


def resolve_path(value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path
