# src/packagebug/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/packagebug/config/defaults.yaml`, then optionally overridden by:
- environment variables (e.g., `DATABASE_URL`, `PACKAGEBUG_GITHUB_CLIENT_ID`)
- an external YAML file via `PACKAGEBUG_CONFIG_PATH`

Design rule:
- Settings are frozen once loaded and passed explicitly to the queue, store, client and
  dispatcher. Nothing reads the environment after startup.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from packagebug.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `packagebug.config`."""
    text = resources.files("packagebug.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class AppSettings(_Frozen):
    name: str = "packagebug"
    http_timeout_seconds: float = Field(15, gt=0)
    log_level: str = "INFO"


class QueueSettings(_Frozen):
    endpoint: str | None = None
    region: str = "us-east-1"
    # SQS long polling caps WaitTimeSeconds at 20.
    wait_seconds: int = Field(10, ge=0, le=20)


class GithubSettings(_Frozen):
    root_endpoint: str = "https://api.github.com"
    client_id: str | None = None
    client_secret: str | None = None
    supported_host: str = "github.com"
    user_agent: str = "pyk"
    accept: str = "application/vnd.github.v3+json"
    issue_labels: str = "bug"
    issue_state: str = "all"
    rate_limit_timeout_seconds: float = Field(5, gt=0)


class StoreSettings(_Frozen):
    url: str | None = None
    table: str = "packages"
    pool_pre_ping: bool = True


class WorkerSettings(_Frozen):
    max_concurrency: int = Field(10, ge=1)


class Settings(_Frozen):
    app: AppSettings = Field(default_factory=AppSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    github: GithubSettings = Field(default_factory=GithubSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)


# (env var, settings section, field) overlaid onto the raw YAML payload.
_ENV_OVERRIDES: tuple[tuple[str, str, str], ...] = (
    ("PACKAGEBUG_LOG_LEVEL", "app", "log_level"),
    ("PACKAGEBUG_SQS_ENDPOINT", "queue", "endpoint"),
    ("PACKAGEBUG_SQS_REGION", "queue", "region"),
    ("PACKAGEBUG_POLL_WAIT_SECONDS", "queue", "wait_seconds"),
    ("PACKAGEBUG_GITHUB_ROOT_ENDPOINT", "github", "root_endpoint"),
    ("PACKAGEBUG_GITHUB_CLIENT_ID", "github", "client_id"),
    ("PACKAGEBUG_GITHUB_CLIENT_SECRET", "github", "client_secret"),
    ("DATABASE_URL", "store", "url"),
    ("PACKAGEBUG_MAX_CONCURRENCY", "worker", "max_concurrency"),
)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay the whitelisted environment variables onto raw settings payload."""
    load_dotenv_if_present()
    data = dict(data)
    for env_name, section, field in _ENV_OVERRIDES:
        value = os.getenv(env_name)
        if value:
            data[section] = {**(data.get(section) or {}), field: value}
    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("PACKAGEBUG_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
