"""App configuration: model connection, auth, and rate-limit settings.

get_config() returns the defaults merged with an optional JSON file named by
$MAMASTALE_CONFIG, then with environment overrides. Nested sections merge key
by key (rate_limits per route class), scalars are overwritten. The result is
cached; reload_config() drops the cache.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_CONFIG_DEFAULTS: dict[str, Any] = {
    "anthropic": {
        "api_key": "",
        "model": "claude-sonnet-4-20250514",
        "max_tokens": 2000,
        "base_url": "https://api.anthropic.com",
        "timeout": 120.0,
        "max_retries": 2,
    },
    "auth": {
        "jwt_secret": "",
        "jwt_audience": "authenticated",
    },
    "system_prompt_file": "",
    "rate_limits": {
        "chat":   {"limit": 20, "window": 60,   "max_entries": 500, "ip_only": False},
        "like":   {"limit": 5,  "window": 60,   "max_entries": 300, "ip_only": True},
        "review": {"limit": 3,  "window": 3600, "max_entries": 500, "ip_only": False},
        "pdf":    {"limit": 10, "window": 3600, "max_entries": 500, "ip_only": False},
    },
}

_ENV_OVERRIDES: list[tuple[str, tuple[str, str]]] = [
    ("ANTHROPIC_API_KEY", ("anthropic", "api_key")),
    ("ANTHROPIC_MODEL", ("anthropic", "model")),
    ("SUPABASE_JWT_SECRET", ("auth", "jwt_secret")),
]

_cached: dict[str, Any] | None = None


def _merge(base: dict[str, Any], stored: dict[str, Any]) -> None:
    for key, value in stored.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value


def _config_path() -> Path | None:
    raw = os.getenv("MAMASTALE_CONFIG", "")
    return Path(raw) if raw else None


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Build a fresh config dict from defaults, the JSON file and the environment."""
    config = copy.deepcopy(_CONFIG_DEFAULTS)
    path = path or _config_path()
    if path is not None:
        if path.is_file():
            stored = json.loads(path.read_text())
            if isinstance(stored, dict):
                _merge(config, stored)
        else:
            logger.warning(f"Config file {path} not found; using defaults")
    for env_name, (section, key) in _ENV_OVERRIDES:
        value = os.getenv(env_name)
        if value:
            config[section][key] = value
    return config


def get_config() -> dict[str, Any]:
    """Return the cached app config, loading it on first use."""
    global _cached
    if _cached is None:
        _cached = load_config()
    return _cached


def reload_config() -> dict[str, Any]:
    global _cached
    _cached = None
    return get_config()


def system_template(config: dict[str, Any]) -> str | None:
    """Custom base system prompt (Handlebars) from system_prompt_file, if set.

    An unreadable file is logged and the built-in prompt is used instead.
    """
    raw = config.get("system_prompt_file", "")
    if not raw:
        return None
    try:
        return Path(raw).read_text()
    except OSError as e:
        logger.warning(f"System prompt file {raw} unreadable ({e}); using the default prompt")
        return None
