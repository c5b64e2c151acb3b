"""
Environment + project-root helpers.

Operators often keep queue/database credentials in a repo-local `.env` file while
developing. This module provides:
- `get_project_root()`: find the repo root (prefers `.env` / `.git`)
- `load_dotenv_if_present()`: one-shot `.env` loading (never overrides existing env vars)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _iter_parents(start: Path) -> list[Path]:
    start = start.resolve()
    return [start, *list(start.parents)]


def _looks_like_project_root(path: Path) -> bool:
    if (path / ".env").is_file():
        return True
    return (path / ".git").exists()


@lru_cache
def get_project_root() -> Path:
    """Return the best-guess project root directory (cached)."""
    override = os.getenv("PACKAGEBUG_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    env_file = os.getenv("PACKAGEBUG_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    for candidate in _iter_parents(Path.cwd()):
        if _looks_like_project_root(candidate):
            return candidate

    return Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once if present; returns the loaded env path (or None)."""
    explicit = os.getenv("PACKAGEBUG_ENV_FILE")
    if explicit:
        env_path = Path(explicit).expanduser().resolve()
        if env_path.is_file():
            load_dotenv(dotenv_path=env_path, override=False)
            return env_path
        return None

    env_path = get_project_root() / ".env"
    if env_path.is_file():
        load_dotenv(dotenv_path=env_path, override=False)
        return env_path
    return None
