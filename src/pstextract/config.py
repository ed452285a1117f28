from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import yaml

DEFAULT_CONFIG: Dict[str, Any] = {
    "io": {
        "output_dir": "out",
        "root_prefix": "extraction",
    },
    "batching": {
        "max_tokens": 2500,
    },
    "chat": {
        "enabled": True,
    },
    "attachments": {
        "enabled": True,
    },
    "logging": {
        "verbose": False,
    },
}


class ConfigError(Exception):
    pass


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for section in DEFAULT_CONFIG:
        if not isinstance(cfg.get(section), dict):
            raise ConfigError(f"'{section}' must be a mapping")
    try:
        max_tokens = int(cfg["batching"]["max_tokens"])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"batching.max_tokens must be an integer: {e}") from e
    if max_tokens < 1:
        raise ConfigError("batching.max_tokens must be >= 1")
    cfg["batching"]["max_tokens"] = max_tokens
    if not str(cfg["io"].get("root_prefix") or "").strip():
        raise ConfigError("io.root_prefix must be a non-empty string")
    return cfg


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load YAML config and merge it over the defaults.
    With no path the defaults are returned as-is.
    """
    if path is None:
        return deepcopy(DEFAULT_CONFIG)
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML at {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config at {p} must be a mapping at the top level")
    return validate_config(_merge(DEFAULT_CONFIG, data))
