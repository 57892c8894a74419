"""Config file loading and settings resolution for mongo-cloud.

Searches for ``mongo-cloud.yaml`` in the current directory and parent
directories. Every setting can also come from a CLI flag or an
environment variable; ``resolve_settings`` applies the precedence
flag > environment > config file > default.

Also parses the ``--config`` blob given to ``cluster create``: YAML by
default, JSON when prefixed with ``?``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from mongo_cloud.errors import ConfigError

CONFIG_FILENAME = "mongo-cloud.yaml"

DEFAULT_BASE_URL = "https://cloud.mongodb.com/api/atlas/v1.0/"
DEFAULT_CACHE_PATH = "~/.mongo-cloud.cache"
DEFAULT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 10.0

ENV_BASE_URL = "MCLI_BASE_URL"
ENV_PUBLIC_KEY = "MCLI_PUBLIC_API_KEY"
ENV_PRIVATE_KEY = "MCLI_PRIVATE_API_KEY"

JSON_MARKER = "?"


@dataclass(frozen=True)
class CloudConfig:
    """Parsed ``mongo-cloud.yaml``."""

    config_path: Path | None = None
    base_url: str | None = None
    public_key: str | None = None
    private_key: str | None = None
    cache_path: str | None = None
    timeout: float | None = None
    poll_interval: float | None = None


@dataclass(frozen=True)
class Settings:
    """Effective settings after merging flags, environment and config."""

    base_url: str
    public_key: str | None
    private_key: str | None
    cache_path: Path
    timeout: float
    poll_interval: float


def find_config(start: Path | None = None) -> Path | None:
    """Walk from *start* (default ``cwd()``) up to the filesystem root.

    Returns the first ``mongo-cloud.yaml`` found, or ``None``.
    """
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> CloudConfig:
    """Load a mongo-cloud config file.

    Resolution order:

    1. Explicit *path* (error if it doesn't exist).
    2. Auto-discover by walking parent directories.
    3. Return an empty ``CloudConfig`` (all defaults).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            msg = f"Config file not found: {config_path}"
            raise FileNotFoundError(msg)
    elif auto_discover:
        config_path = find_config()

    if config_path is None:
        return CloudConfig()

    return _parse_config(config_path)


def _parse_config(config_path: Path) -> CloudConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    base = config_path.parent

    def _resolve(key: str) -> str | None:
        val = data.get(key)
        if val is None:
            return None
        return str((base / Path(val).expanduser()).resolve())

    def _float(key: str) -> float | None:
        val = data.get(key)
        return None if val is None else float(val)

    return CloudConfig(
        config_path=config_path,
        base_url=data.get("base_url"),
        public_key=data.get("public_key"),
        private_key=data.get("private_key"),
        cache_path=_resolve("cache_path"),
        timeout=_float("timeout"),
        poll_interval=_float("poll_interval"),
    )


def resolve_settings(
    cfg: CloudConfig | None = None,
    *,
    base_url: str | None = None,
    public_key: str | None = None,
    private_key: str | None = None,
    cache_path: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Merge explicit values, environment variables and the config file."""
    cfg = cfg or CloudConfig()
    env = os.environ if environ is None else environ

    def _pick(*candidates: Any) -> Any:
        for value in candidates:
            if value:
                return value
        return None

    return Settings(
        base_url=_pick(base_url, env.get(ENV_BASE_URL), cfg.base_url, DEFAULT_BASE_URL),
        public_key=_pick(public_key, env.get(ENV_PUBLIC_KEY), cfg.public_key),
        private_key=_pick(private_key, env.get(ENV_PRIVATE_KEY), cfg.private_key),
        cache_path=Path(_pick(cache_path, cfg.cache_path, DEFAULT_CACHE_PATH)).expanduser(),
        timeout=cfg.timeout if cfg.timeout is not None else DEFAULT_TIMEOUT,
        poll_interval=(
            cfg.poll_interval if cfg.poll_interval is not None else DEFAULT_POLL_INTERVAL
        ),
    )


def parse_cluster_config(text: str) -> dict[str, Any]:
    """Parse a cluster configuration blob.

    A leading ``?`` marks the rest of the text as JSON; anything else is
    read as YAML. The result is passed through to ``create_cluster``
    untouched, so it must be a mapping.
    """
    stripped = text.strip()
    try:
        if stripped.startswith(JSON_MARKER):
            data = json.loads(stripped[len(JSON_MARKER):])
        else:
            data = yaml.safe_load(stripped)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Invalid cluster configuration: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Cluster configuration must be a mapping, got {type(data).__name__}"
        )
    return data
