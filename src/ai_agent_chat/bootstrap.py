from __future__ import annotations

from dataclasses import dataclass

from ai_agent_chat.app_config import AppConfig, resolve_path
from ai_agent_chat.engine import ChatEngine, EngineConfig
from ai_agent_chat.logging_config import setup_logging
from ai_agent_chat.provider import create_provider
from ai_agent_chat.secret_store import EnvironmentSecretStore, SecretStore
from ai_agent_chat.settings import SettingsManager
from ai_agent_chat.storage import SessionStore


@dataclass
class AppRuntime:
    engine: ChatEngine
    settings: SettingsManager
    store: SessionStore
    log_descriptions: list[str]


def bootstrap_runtime(app: AppConfig, *, secret_store: SecretStore | None = None) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    settings = SettingsManager(
        app.default_provider_settings(),
        secret_store or EnvironmentSecretStore(),
        resolve_path(app.preferences_path),
        auto_generate_title=app.auto_generate_title,
        save_conversations=app.save_conversations,
    )
    settings.load()

    store = SessionStore(resolve_path(app.sessions_path))
    provider = create_provider(
        app.provider_name,
        base_url=app.api_base_url,
        connect_timeout=app.connect_timeout_seconds,
        read_timeout=app.read_timeout_seconds,
    )
    engine = ChatEngine(
        EngineConfig(
            provider=provider,
            store=store,
            settings_provider=settings.current,
            save_conversations=settings.save_conversations,
            auto_generate_title=settings.auto_generate_title,
        )
    )

    return AppRuntime(
        engine=engine,
        settings=settings,
        store=store,
        log_descriptions=log_descriptions,
    )
