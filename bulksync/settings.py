"""Settings management for bulksync."""
import copy
import json
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .baserow import BASEROW_BASE_URL, DEFAULT_TIMEOUT, TABLES, BaserowConfig
from .batch import DEFAULT_BATCH_SIZE, DEFAULT_DELAY_MS
from .parser import DEFAULT_PROXY_URL


# ---------------------------------------------------------------------------
# Platform-appropriate settings directory
# ---------------------------------------------------------------------------

def settings_dir() -> Path:
    """Return the platform settings directory, creating it if needed."""
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home()))
    elif sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    d = base / "bulksync"
    d.mkdir(parents=True, exist_ok=True)
    return d


SETTINGS_FILE_NAME = "settings.json"


# ---------------------------------------------------------------------------
# Default values for every known key
# ---------------------------------------------------------------------------

DEFAULT_SETTINGS: dict[str, Any] = {
    # Baserow
    "api_token": "",
    "base_url": BASEROW_BASE_URL,
    "table_ids": {table: "" for table in TABLES},
    "request_timeout": DEFAULT_TIMEOUT,

    # Batch behaviour
    "batch_size": DEFAULT_BATCH_SIZE,
    "delay_ms": DEFAULT_DELAY_MS,

    # http:// URLs are routed through this endpoint ("" disables it)
    "proxy_url": DEFAULT_PROXY_URL,
}

# Environment variables overriding the settings file
ENV_KEYS = {
    "api_token": "BASEROW_API_TOKEN",
    "base_url": "BASEROW_BASE_URL",
    "request_timeout": "BULKSYNC_TIMEOUT",
    "batch_size": "BULKSYNC_BATCH_SIZE",
    "delay_ms": "BULKSYNC_DELAY_MS",
    "proxy_url": "BULKSYNC_PROXY_URL",
}

INT_KEYS = {"batch_size", "delay_ms"}
FLOAT_KEYS = {"request_timeout"}


def table_env_key(table: str) -> str:
    return f"BASEROW_TABLE_{table.upper()}"


def load_env_files() -> None:
    """
    Load ``.env`` files into the environment.

    Priority:
    1. Variables already set in the environment
    2. .env file in current directory
    3. .env file in user home directory
    """
    for env_path in (Path.cwd() / ".env", Path.home() / ".env"):
        if env_path.exists():
            load_dotenv(env_path, override=False)


def coerce(key: str, value: Any) -> Any:
    """Convert a raw string setting to the type of its default."""
    if key in INT_KEYS:
        return int(value)
    if key in FLOAT_KEYS:
        return float(value)
    return value


# ---------------------------------------------------------------------------
# SettingsManager -- single authority for reading / writing settings
# ---------------------------------------------------------------------------

class SettingsManager:
    """Centralised settings store backed by a JSON file.

    Usage:
        mgr = SettingsManager()
        token = mgr.get("api_token")
        mgr.set("table_ids.contents", "1234")
        mgr.save()
    """

    _instance: "SettingsManager | None" = None

    def __new__(cls, path: Path | None = None) -> "SettingsManager":
        """Singleton -- one instance per process (a new *path* replaces it)."""
        if cls._instance is None or (path is not None and path != cls._instance.path):
            instance = super().__new__(cls)
            instance.path = path or settings_dir() / SETTINGS_FILE_NAME
            instance._data = instance._load()
            cls._instance = instance
        return cls._instance

    # -- public API -------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Read a key; dotted keys reach into ``table_ids``."""
        if "." in key:
            section, name = key.split(".", 1)
            return self.all().get(section, {}).get(name, default)
        fallback = DEFAULT_SETTINGS.get(key, default)
        return self._data.get(key, fallback)

    def set(self, key: str, value: Any) -> None:
        if "." in key:
            section, name = key.split(".", 1)
            if section not in DEFAULT_SETTINGS or not isinstance(DEFAULT_SETTINGS[section], dict):
                raise KeyError(key)
            self._data.setdefault(section, {})[name] = value
            return
        if key not in DEFAULT_SETTINGS:
            raise KeyError(key)
        self._data[key] = coerce(key, value)

    def save(self) -> bool:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            return True
        except IOError:
            return False

    def all(self) -> dict[str, Any]:
        """Return a merged view: defaults + saved values."""
        merged = copy.deepcopy(DEFAULT_SETTINGS)
        for key, value in self._data.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return merged

    def reload(self) -> None:
        self._data = self._load()

    # -- private ----------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    return data
            except (json.JSONDecodeError, IOError):
                pass
        return {}


# ---------------------------------------------------------------------------
# Free functions
# ---------------------------------------------------------------------------

def load_settings(path: Path | None = None) -> dict[str, Any]:
    """
    Load settings: defaults, then the settings file, then the
    environment (including ``.env`` files).
    """
    load_env_files()
    settings = SettingsManager(path).all()

    for key, env_key in ENV_KEYS.items():
        value = os.environ.get(env_key)
        if value:
            settings[key] = coerce(key, value)

    table_ids = dict(settings.get("table_ids") or {})
    for table in TABLES:
        value = os.environ.get(table_env_key(table))
        if value:
            table_ids[table] = value
    settings["table_ids"] = table_ids
    return settings


def save_settings(settings: dict[str, Any], path: Path | None = None) -> bool:
    """Persist *settings* dict to disk."""
    mgr = SettingsManager(path)
    for k, v in settings.items():
        if isinstance(v, dict):
            for name, value in v.items():
                mgr.set(f"{k}.{name}", value)
        else:
            mgr.set(k, v)
    return mgr.save()


def load_config(settings: dict[str, Any] | None = None) -> BaserowConfig:
    """Build the Baserow connection settings from merged settings."""
    settings = settings if settings is not None else load_settings()
    return BaserowConfig(
        api_token=str(settings.get("api_token") or "").strip(),
        base_url=str(settings.get("base_url") or BASEROW_BASE_URL),
        table_ids={
            table: str(value).strip()
            for table, value in (settings.get("table_ids") or {}).items()
            if value not in (None, "")
        },
        timeout=float(settings.get("request_timeout") or DEFAULT_TIMEOUT),
    )


def masked(settings: dict[str, Any]) -> dict[str, Any]:
    """Copy of *settings* safe to print (token hidden)."""
    shown = copy.deepcopy(settings)
    token = shown.get("api_token") or ""
    if token:
        shown["api_token"] = token[:4] + "***" if len(token) > 8 else "***"
    return shown
