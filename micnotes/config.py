"""Persisted configuration management."""

from __future__ import annotations

import json
import os
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .models import Config

CONFIG_PATH = (Path.home() / ".micnotes" / "config.json").expanduser()
API_KEY_ENV = "OPENAI_API_KEY"
API_KEY_PREFIX = "sk-"


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or saved."""


def load_config() -> Config:
    if not CONFIG_PATH.exists():
        return Config()
    try:
        payload = json.loads(CONFIG_PATH.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
    try:
        return Config(**payload)
    except TypeError as exc:
        raise ConfigError(f"Invalid configuration file: {exc}") from exc


def save_config(config: Config) -> None:
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in asdict(config).items() if v is not None}
    CONFIG_PATH.write_text(json.dumps(data, indent=2))


def update_config(**kwargs: Any) -> Config:
    config = load_config()
    for key, value in kwargs.items():
        if hasattr(config, key):
            setattr(config, key, value)
        else:
            raise ConfigError(f"Unknown configuration key: {key}")
    save_config(config)
    return config


def resolve_api_key(config: Config) -> str:
    """The environment wins over the stored key."""

    env_key = os.environ.get(API_KEY_ENV)
    if env_key:
        return env_key
    return config.openai_api_key or ""


def validate_api_key(key: str) -> str:
    key = key.strip()
    if not key.startswith(API_KEY_PREFIX):
        raise ConfigError(f"Invalid API key format. OpenAI API keys start with '{API_KEY_PREFIX}'.")
    return key


def data_dir(config: Config) -> Path:
    if config.data_dir:
        return Path(config.data_dir).expanduser()
    return CONFIG_PATH.parent
