"""Config loader — reads YAML, applies SIGNAL_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from signal_desk.config.schema import AppConfig

# env var -> (section, key)
_ENV_OVERRIDES = {
    "SIGNAL_DATABASE_URL": ("database", "url"),
    "SIGNAL_LOG_LEVEL": ("logging", "level"),
    "SIGNAL_LOG_FORMAT": ("logging", "format"),
    "SIGNAL_SCORER_API_KEY": ("scorer", "api_key"),
    "SIGNAL_TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "SIGNAL_TELEGRAM_CHAT_ID": ("telegram", "chat_id"),
}


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        SIGNAL_DATABASE_URL        -> database.url
        SIGNAL_LOG_LEVEL           -> logging.level
        SIGNAL_LOG_FORMAT          -> logging.format
        SIGNAL_SCORER_API_KEY      -> scorer.api_key (and scorer.enabled)
        SIGNAL_TELEGRAM_BOT_TOKEN  -> telegram.bot_token (and telegram.enabled)
        SIGNAL_TELEGRAM_CHAT_ID    -> telegram.chat_id
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    for env_name, (section, key) in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            data.setdefault(section, {})[key] = value

    if os.environ.get("SIGNAL_SCORER_API_KEY"):
        data["scorer"]["enabled"] = True
    if os.environ.get("SIGNAL_TELEGRAM_BOT_TOKEN"):
        data["telegram"]["enabled"] = True

    return AppConfig.model_validate(data)
