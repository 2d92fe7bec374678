"""Shared configuration file loading for the CLI and the CI runner."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG_NAME = "ffgate.yaml"
ENV_PREFIX = "FFGATE_"

_CONFIG_CACHE: Dict[str, Dict[str, Any]] = {}


def default_config_path() -> Path:
    """Resolve the default config path (supports FFGATE_CONFIG_PATH override)."""
    env_path = os.getenv(f"{ENV_PREFIX}CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return Path.cwd() / DEFAULT_CONFIG_NAME


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    _CONFIG_CACHE.clear()


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Load a YAML or JSON configuration file with caching.

    Args:
        path: Optional custom path. Defaults to FFGATE_CONFIG_PATH or ./ffgate.yaml.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the file does not parse or its top level is not a mapping.
    """
    resolved = Path(path).expanduser() if path else default_config_path()
    if not resolved.exists():
        raise FileNotFoundError(f"Config file not found: {resolved}")

    key = str(resolved.resolve())
    if key not in _CONFIG_CACHE:
        content = resolved.read_text(encoding="utf-8")
        try:
            if resolved.suffix == ".json":
                data = json.loads(content) if content.strip() else {}
            else:
                data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file {resolved}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {resolved}")
        _CONFIG_CACHE[key] = data
    return _CONFIG_CACHE[key]


def get_env_settings(environ: Dict[str, str] | None = None) -> Dict[str, str]:
    """
    Collect ``FFGATE_*`` variables as lower-case setting names.

    ``FFGATE_BUDGET_AMOUNT=100`` becomes ``{"budget_amount": "100"}``.
    FFGATE_CONFIG_PATH is a locator, not a setting, and is left out.
    """
    env = os.environ if environ is None else environ
    settings: Dict[str, str] = {}
    for name, value in env.items():
        if not name.startswith(ENV_PREFIX) or name == f"{ENV_PREFIX}CONFIG_PATH":
            continue
        settings[name[len(ENV_PREFIX):].lower()] = value
    return settings


def parse_bool(value: Any, default: bool) -> bool:
    """Interpret ``true``/``yes``/``1`` (any case) as True; blank keeps the default."""
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    if not text:
        return default
    return text in ("true", "yes", "1")
