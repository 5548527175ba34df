"""
Settings loaded from reviewflow.toml.

The file is optional; every setting has a default. REVIEWFLOW_STORE
overrides the store directory.
"""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "reviewflow.toml"
STORE_ENV_VAR = "REVIEWFLOW_STORE"


@dataclass
class Settings:
    store_dir: Path = Path(".reviewflow")
    max_attempts: int = 3  # Optimistic-concurrency retries per operation
    due_window_days: int = 30
    budgets: dict[str, float] = field(default_factory=dict)  # category -> ceiling
    source: Path | None = None  # File the settings were read from


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _int_setting(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def find_config(start: Path) -> Path | None:
    """Find reviewflow.toml by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_settings(path: Path | None = None) -> Settings:
    """
    Load settings from `path`, or defaults when no file is given.

    Relative store paths are resolved against the config file's directory.
    """
    settings = Settings()

    if path is not None:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
        base = path.parent

        store = str(data.get("store_dir", "")).strip()
        if store:
            settings.store_dir = (base / store) if not Path(store).is_absolute() else Path(store)
        else:
            settings.store_dir = base / settings.store_dir

        max_attempts = _int_setting(data, "max_attempts", settings.max_attempts)
        if max_attempts <= 0:
            raise ValueError("max_attempts must be a positive integer")
        settings.max_attempts = max_attempts

        window = _int_setting(data, "due_window_days", settings.due_window_days)
        if window < 0:
            raise ValueError("due_window_days must not be negative")
        settings.due_window_days = window

        budgets: dict[str, float] = {}
        for category, ceiling in _coerce_dict(data.get("budgets")).items():
            if isinstance(ceiling, bool) or not isinstance(ceiling, (int, float)):
                raise ValueError(f"Budget for {category!r} must be a number")
            budgets[str(category)] = float(ceiling)
        settings.budgets = budgets
        settings.source = path
        logger.debug("Loaded settings from %s", path)

    override = os.environ.get(STORE_ENV_VAR, "").strip()
    if override:
        settings.store_dir = Path(override)
        logger.debug("Store directory overridden by %s: %s", STORE_ENV_VAR, override)

    return settings
