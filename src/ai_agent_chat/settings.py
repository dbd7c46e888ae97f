from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

from loguru import logger

from ai_agent_chat.app_config import _to_bool
from ai_agent_chat.models import ProviderSettings
from ai_agent_chat.secret_store import API_KEY_ACCOUNT, SERVICE_ID, SecretStore
from ai_agent_chat.storage import write_atomically


class SettingsManager:
    """Provider settings backed by a preferences file plus a secret store for the key."""

    def __init__(
        self,
        defaults: ProviderSettings,
        secret_store: SecretStore,
        preferences_path: str | Path | None = None,
        *,
        auto_generate_title: bool = True,
        save_conversations: bool = True,
    ):
        self._defaults = replace(defaults, api_key="")
        self._secrets = secret_store
        self._path = Path(preferences_path) if preferences_path is not None else None
        self._default_auto_title = auto_generate_title
        self._default_save_conversations = save_conversations
        self.provider_settings = self._defaults
        self.auto_generate_title = auto_generate_title
        self.save_conversations = save_conversations

    def current(self) -> ProviderSettings:
        return self.provider_settings

    @property
    def is_configured(self) -> bool:
        return self.validate_api_key(self.provider_settings.api_key)

    @staticmethod
    def validate_api_key(key: str) -> bool:
        return key.startswith("sk-") and len(key) > 20

    def load(self) -> None:
        prefs = self._read_preferences()
        api_key = self._secrets.get(SERVICE_ID, API_KEY_ACCOUNT) or ""
        self.provider_settings = ProviderSettings(
            api_key=api_key,
            model=str(prefs.get("model", self._defaults.model)),
            temperature=self._number(prefs, "temperature", float, self._defaults.temperature),
            max_tokens=self._number(prefs, "maxTokens", int, self._defaults.max_tokens),
            web_search_enabled=_to_bool(prefs.get("webSearchEnabled"), default=self._defaults.web_search_enabled),
        )
        self.auto_generate_title = _to_bool(prefs.get("autoGenerateTitle"), default=self._default_auto_title)
        self.save_conversations = _to_bool(
            prefs.get("saveConversations"), default=self._default_save_conversations
        )
        logger.debug(
            f"Settings loaded: model={self.provider_settings.model}, "
            f"api_key={'set' if api_key else 'missing'}"
        )

    def update(self, **changes) -> ProviderSettings:
        # replace() re-runs clamping
        self.provider_settings = replace(self.provider_settings, **changes)
        return self.provider_settings

    def save(self) -> None:
        settings = self.provider_settings
        if settings.api_key:
            self._secrets.set(settings.api_key, SERVICE_ID, API_KEY_ACCOUNT)
        if self._path is None:
            return
        prefs = {
            "model": settings.model,
            "temperature": settings.temperature,
            "maxTokens": settings.max_tokens,
            "webSearchEnabled": settings.web_search_enabled,
            "autoGenerateTitle": self.auto_generate_title,
            "saveConversations": self.save_conversations,
        }
        write_atomically(self._path, json.dumps(prefs, indent=2).encode("utf-8"))

    def reset(self) -> None:
        self.provider_settings = self._defaults
        self.auto_generate_title = self._default_auto_title
        self.save_conversations = self._default_save_conversations
        self._secrets.delete(SERVICE_ID, API_KEY_ACCOUNT)
        if self._path is not None:
            self._path.unlink(missing_ok=True)

    def _read_preferences(self) -> dict:
        if self._path is None or not self._path.exists():
            return {}
        try:
            prefs = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as ex:
            logger.warning(f"Ignoring unreadable preferences {self._path}: {ex}")
            return {}
        if not isinstance(prefs, dict):
            logger.warning(f"Ignoring preferences {self._path}: expected an object")
            return {}
        return prefs

    def _number(self, prefs: dict, key: str, convert, default):
        if key not in prefs:
            return default
        try:
            return convert(prefs[key])
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid preference {key}={prefs[key]!r} in {self._path}")
            return default
