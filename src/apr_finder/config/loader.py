"""Config loader — reads YAML, applies APR_* env var overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml

from apr_finder.config.schema import AppConfig

_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_flag(value: str) -> bool:
    return value.strip().lower() not in _FALSE_VALUES


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load config from a YAML file, then apply env var overrides.

    If *path* is None or the file doesn't exist, returns defaults.

    Environment variable overrides:
        APR_DATABASE_URL        -> database.url
        APR_LOG_LEVEL           -> logging.level
        APR_LOG_FORMAT          -> logging.format
        APR_COLLECTION_ENABLED  -> collection.enabled
        ENABLE_DATA_COLLECTION  -> collection.enabled (legacy name)
    """
    data: dict = {}
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p) as f:
                data = yaml.safe_load(f) or {}

    db_url = os.environ.get("APR_DATABASE_URL")
    if db_url:
        data.setdefault("database", {})["url"] = db_url

    log_level = os.environ.get("APR_LOG_LEVEL")
    if log_level:
        data.setdefault("logging", {})["level"] = log_level

    log_format = os.environ.get("APR_LOG_FORMAT")
    if log_format:
        data.setdefault("logging", {})["format"] = log_format

    # The explicit APR_ name wins over the legacy one when both are set.
    for var in ("ENABLE_DATA_COLLECTION", "APR_COLLECTION_ENABLED"):
        flag = os.environ.get(var)
        if flag:
            data.setdefault("collection", {})["enabled"] = _env_flag(flag)

    return AppConfig.model_validate(data)
