from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/launchmem/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "data_dir": "LAUNCHMEM_DATA_DIR",
    "history_file": "LAUNCHMEM_HISTORY_FILE",
    "cache_dir": "LAUNCHMEM_CACHE_DIR",
    "usage_dir": "LAUNCHMEM_USAGE_DIR",
    "history_cache_size": "LAUNCHMEM_HISTORY_CACHE_SIZE",
    "append_debounce_ms": "LAUNCHMEM_APPEND_DEBOUNCE_MS",
    "bulk_debounce_ms": "LAUNCHMEM_BULK_DEBOUNCE_MS",
    "cache_ttl_s": "LAUNCHMEM_CACHE_TTL_S",
    "memory_cache_ttl_s": "LAUNCHMEM_MEMORY_CACHE_TTL_S",
    "memory_cache_max_entries": "LAUNCHMEM_MEMORY_CACHE_MAX_ENTRIES",
    "usage_max_entries": "LAUNCHMEM_USAGE_MAX_ENTRIES",
    "usage_ttl_days": "LAUNCHMEM_USAGE_TTL_DAYS",
    "tail_chunk_size": "LAUNCHMEM_TAIL_CHUNK_SIZE",
    "log_level": "LAUNCHMEM_LOG_LEVEL",
}

# Fields that must stay strings; a null in the config file keeps the default.
REQUIRED_STR_KEYS = {"data_dir", "log_level"}

INT_KEYS = {
    "history_cache_size",
    "append_debounce_ms",
    "bulk_debounce_ms",
    "cache_ttl_s",
    "memory_cache_ttl_s",
    "memory_cache_max_entries",
    "usage_max_entries",
    "usage_ttl_days",
    "tail_chunk_size",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("LAUNCHMEM_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class LaunchmemConfig:
    data_dir: str = "~/.launchmem"
    history_file: str | None = None
    cache_dir: str | None = None
    usage_dir: str | None = None

    # Number of history lines kept in memory and tail-read at startup.
    history_cache_size: int = 200

    # Short window for the history append queue, long window for bulk rewrites.
    append_debounce_ms: int = 100
    bulk_debounce_ms: int = 2000

    cache_ttl_s: int = 3600
    memory_cache_ttl_s: int = 300
    memory_cache_max_entries: int = 20
    usage_max_entries: int = 500
    usage_ttl_days: int = 30
    tail_chunk_size: int = 8192
    log_level: str = "WARNING"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def history_path(self) -> Path:
        if self.history_file:
            return Path(self.history_file).expanduser()
        return self.data_path / "history.jsonl"

    @property
    def cache_path(self) -> Path:
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return self.data_path / "cache" / "projects"

    @property
    def usage_path(self) -> Path:
        if self.usage_dir:
            return Path(self.usage_dir).expanduser()
        return self.data_path / "usage"

    @property
    def log_path(self) -> Path:
        return self.data_path / "launchmem.log"


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def load_config(path: Path | None = None) -> LaunchmemConfig:
    cfg = LaunchmemConfig()
    cfg = _apply_dict(cfg, read_config_file(path))
    cfg = _apply_dict(cfg, get_env_overrides())
    return cfg


def _apply_dict(cfg: LaunchmemConfig, data: dict[str, Any]) -> LaunchmemConfig:
    for key, value in data.items():
        if key not in CONFIG_ENV_OVERRIDES:
            continue
        if value is None and key in REQUIRED_STR_KEYS:
            continue
        if key in INT_KEYS:
            parsed = _parse_int(value, getattr(cfg, key), key=key)
            if parsed <= 0:
                warnings.warn(
                    f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2
                )
                continue
            setattr(cfg, key, parsed)
            continue
        if key == "log_level":
            setattr(cfg, key, str(value).upper())
            continue
        setattr(cfg, key, str(value) if value is not None else None)
    return cfg
