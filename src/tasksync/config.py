"""Load sync configuration from `.tasksync/config.yaml` and the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from .constants import (
    CONFIG_FILE,
    DEFAULT_API_BASE_URL,
    DEFAULT_BATCH_SIZE,
    DEFAULT_BATCH_TIMEOUT_SECONDS,
    DEFAULT_HEALTH_TIMEOUT_SECONDS,
    ENV_PREFIX,
    STATE_DIR_NAME,
)
from .errors import ConfigError
from .io_utils import _load_data_with_error


@dataclass(frozen=True)
class SyncConfig:
    """Settings injected into the sync engine at construction.

    ``max_batches_per_cycle`` bounds how many batches one cycle may send;
    ``max_retries`` caps how often a queue entry is retried before it is
    dropped as permanently failed.  ``None`` means unbounded for both.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    batch_size: int = DEFAULT_BATCH_SIZE
    health_timeout: float = DEFAULT_HEALTH_TIMEOUT_SECONDS
    batch_timeout: float = DEFAULT_BATCH_TIMEOUT_SECONDS
    max_batches_per_cycle: Optional[int] = None
    max_retries: Optional[int] = None

    def __post_init__(self) -> None:
        parsed = urlparse(self.api_base_url or "")
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ConfigError(f"api_base_url must be an http(s) URL, got {self.api_base_url!r}")
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.health_timeout <= 0 or self.batch_timeout <= 0:
            raise ConfigError("timeouts must be positive")
        if self.max_batches_per_cycle is not None and self.max_batches_per_cycle < 1:
            raise ConfigError("max_batches_per_cycle must be >= 1 when set")
        if self.max_retries is not None and self.max_retries < 1:
            raise ConfigError("max_retries must be >= 1 when set")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SyncConfig":
        known = {k: data[k] for k in cls.__dataclass_fields__ if data.get(k) is not None}
        try:
            return cls(
                api_base_url=str(known.get("api_base_url", DEFAULT_API_BASE_URL)),
                batch_size=int(known.get("batch_size", DEFAULT_BATCH_SIZE)),
                health_timeout=float(known.get("health_timeout", DEFAULT_HEALTH_TIMEOUT_SECONDS)),
                batch_timeout=float(known.get("batch_timeout", DEFAULT_BATCH_TIMEOUT_SECONDS)),
                max_batches_per_cycle=_opt_int(known.get("max_batches_per_cycle")),
                max_retries=_opt_int(known.get("max_retries")),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid sync config: {exc}") from exc


def _opt_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def _env_key(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


def _first_env(environ: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = environ.get(name)
        if value is not None and value.strip() != "":
            return value.strip()
    return None


def load_config_file(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    path = project_dir.resolve() / STATE_DIR_NAME / CONFIG_FILE
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def get_sync_block(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the `sync` block from the file config, or an empty dict."""
    raw = config.get("sync")
    return dict(raw) if isinstance(raw, dict) else {}


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect overrides from `TASKSYNC_*` variables (legacy names accepted)."""
    out: dict[str, Any] = {}
    url = _first_env(environ, _env_key("API_BASE_URL"), "API_BASE_URL")
    if url:
        out["api_base_url"] = url
    batch = _first_env(environ, _env_key("BATCH_SIZE"), "SYNC_BATCH_SIZE")
    if batch:
        out["batch_size"] = batch
    for field_name in ("health_timeout", "batch_timeout", "max_batches_per_cycle", "max_retries"):
        value = _first_env(environ, _env_key(field_name.upper()))
        if value:
            out[field_name] = value
    return out


def load_sync_config(
    project_dir: Path,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> SyncConfig:
    """Resolve the effective :class:`SyncConfig`.

    Precedence (lowest first): defaults, the ``sync`` block of
    ``.tasksync/config.yaml``, environment variables, explicit *overrides*.

    Raises:
        ConfigError: the file is unreadable or a value fails validation.
    """
    file_config, err = load_config_file(project_dir)
    if err:
        raise ConfigError(err)
    merged: dict[str, Any] = get_sync_block(file_config)
    merged.update(env_overrides(os.environ if environ is None else environ))
    merged.update({k: v for k, v in overrides.items() if v is not None})
    return SyncConfig.from_dict(merged)
