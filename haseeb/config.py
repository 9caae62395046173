import os
from pathlib import Path

import keyring
import yaml

HASEEB_DIR = Path.home() / ".haseeb"
DB_PATH = HASEEB_DIR / "local.db"
CONFIG_PATH = HASEEB_DIR / "config.yaml"

KEYRING_SERVICE = "haseeb-cli/remote"
API_KEY_ENV = "HASEEB_REMOTE_KEY"
ACCESS_TOKEN_ENV = "HASEEB_ACCESS_TOKEN"

DEFAULT_NOTIFICATION_TIMEOUT = 2.0
LANGUAGES = ("en", "ar")


class Config:
    """Single-instance config manager. Load once, cache in memory."""

    _instance: "Config | None" = None
    _data: dict[str, object]

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._data = {}
            cls._instance._load()
        return cls._instance

    def _load(self) -> None:
        """Load config from disk."""
        if not CONFIG_PATH.exists():
            self._data = {}
            return
        try:
            with CONFIG_PATH.open() as f:
                self._data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError):
            self._data = {}

    def _save(self) -> None:
        """Persist config to disk."""
        CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with CONFIG_PATH.open("w") as f:
            yaml.dump(self._data, f, default_flow_style=False, allow_unicode=True)

    def get(self, key: str, default: object = None) -> object:
        return self._data.get(key, default)

    def set(self, key: str, value: object) -> None:
        self._data[key] = value
        self._save()

    @classmethod
    def reset(cls) -> None:
        """Drop the cached instance so the next access re-reads CONFIG_PATH."""
        cls._instance = None


def _config() -> Config:
    return Config()


def get_remote_url() -> str | None:
    val = _config().get("remote_url")
    return str(val).rstrip("/") if val else None


def set_remote_url(url: str) -> None:
    _config().set("remote_url", url.rstrip("/"))


def get_remote_key() -> str | None:
    """Public API key for the remote store: env first, then the system keyring."""
    return os.environ.get(API_KEY_ENV) or keyring.get_password(KEYRING_SERVICE, "api_key")


def store_remote_key(api_key: str) -> None:
    keyring.set_password(KEYRING_SERVICE, "api_key", api_key)


def get_remote_user() -> str | None:
    val = _config().get("remote_user_id")
    return str(val) if val else None


def set_remote_user(user_id: str) -> None:
    _config().set("remote_user_id", user_id)


def get_access_token() -> str | None:
    return os.environ.get(ACCESS_TOKEN_ENV) or keyring.get_password(KEYRING_SERVICE, "access_token")


def store_access_token(token: str) -> None:
    keyring.set_password(KEYRING_SERVICE, "access_token", token)


def get_language() -> str:
    val = _config().get("language", "en")
    return val if val in LANGUAGES else "en"


def set_language(language: str) -> None:
    if language not in LANGUAGES:
        raise ValueError(f"unsupported language '{language}'")
    _config().set("language", language)


def get_notification_timeout() -> float:
    val = _config().get("notification_timeout", DEFAULT_NOTIFICATION_TIMEOUT)
    try:
        return float(val)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_NOTIFICATION_TIMEOUT


def seed_presets_enabled() -> bool:
    """Whether an empty cloud account is seeded with the built-in preset habits."""
    return bool(_config().get("seed_presets", True))
