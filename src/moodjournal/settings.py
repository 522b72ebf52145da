from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent


def _resolve_config_dir() -> Path:
    env_override = os.environ.get("MOODJOURNAL_CONFIG_DIR")
    candidates: list[Path] = []

    if env_override:
        candidates.append(Path(env_override).expanduser())

    candidates.append(PROJECT_ROOT / "config")
    candidates.append(PROJECT_ROOT.parent / "config")

    for candidate in candidates:
        expanded = candidate.expanduser()
        if expanded.is_dir():
            return expanded.resolve()

    if env_override:
        searched = ", ".join(str(path) for path in candidates)
        raise RuntimeError(
            f"Unable to locate configuration directory. Searched: {searched}. "
            "Set MOODJOURNAL_CONFIG_DIR to a valid directory."
        )
    # Installed without a config checkout: run on defaults and env vars only.
    return Path.cwd() / "config"


CONFIG_DIR = _resolve_config_dir()


DEFAULTS: dict[str, Any] = {
    "APP_NAME": "Mood Journal",
    "LOG_LEVEL": "INFO",
    "API": {
        "base_url": "http://localhost:4000",
        "prefix": "/api/",
        "token": None,
    },
    "DATABASE": {
        "path": "offline.sqlite3",
        "pool_size": 5,
        "pool_acquire_timeout": 10,
        "timeout": 5.0,
        "busy_timeout": 5000,
    },
    "CACHE": {
        "dedupe_interval": 5,
        "maxsize": 256,
        "ttl": 300,
    },
    "OPTIMISTIC": {
        "freshness_seconds": 5 * 60,
    },
    "SYNC": {
        "exclude_paths": ["/api/signin", "/api/signout", "/api/signup"],
        "probe_interval": 30,
    },
    "MONTHLY": {
        "page": 1,
        "limit": 31,
    },
}

settings = Dynaconf(
    envvar_prefix="MOODJOURNAL",
    settings_files=[
        CONFIG_DIR / "settings.toml",
        CONFIG_DIR / ".secrets.toml",
        CONFIG_DIR / "settings.local.toml",
    ],
    environments=True,
    env_switcher="MOODJOURNAL_ENV",
    load_dotenv=True,
    envvar_parse_values=True,
    merge_enabled=True,
    defaults=DEFAULTS,
)


_MISSING = object()


def _ensure_defaults(prefix: str, defaults: dict[str, Any]) -> None:
    for key, value in defaults.items():
        dotted = f"{prefix}.{key}" if prefix else key
        existing = settings.get(dotted, _MISSING)

        if isinstance(value, dict):
            if existing is _MISSING:
                settings.set(dotted, value.copy())
                existing = settings.get(dotted, _MISSING)
            if isinstance(existing, Mapping):
                _ensure_defaults(dotted, value)
            continue

        if existing is _MISSING:
            settings.set(dotted, value)


_ensure_defaults("", DEFAULTS)


def _normalise_prefix() -> None:
    prefix = str(settings.get("API.prefix") or "/api/").strip()
    if not prefix.startswith("/"):
        prefix = "/" + prefix
    if not prefix.endswith("/"):
        prefix += "/"
    settings.set("API.prefix", prefix)


def _normalise_base_url() -> None:
    base_url = str(settings.get("API.base_url") or "").strip().rstrip("/")
    if not base_url:
        raise RuntimeError("Set MOODJOURNAL_API__BASE_URL to the journal API origin")
    settings.set("API.base_url", base_url)


_normalise_prefix()
_normalise_base_url()

dedupe_default = DEFAULTS["CACHE"]["dedupe_interval"]
try:
    dedupe_interval = float(settings.get("CACHE.dedupe_interval", dedupe_default))
except (TypeError, ValueError):
    dedupe_interval = dedupe_default
settings.set("CACHE.dedupe_interval", max(dedupe_interval, 0.0))

__all__ = ["settings"]
