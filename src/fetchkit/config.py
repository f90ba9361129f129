"""Configuration management with XDG paths, atomic writes, and precedence resolution.

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fetchkit/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`.
* **Global config** -- one :class:`~fetchkit.models.GlobalConfig` JSON
  file holding client defaults (base URL, timeout, retry, cache,
  persistence backend) and output preferences.
* **Precedence resolution** -- :func:`resolve_config` layers CLI flags
  over ``FETCHKIT_*`` environment variables over the global config file
  over built-in defaults.

Writes go through :func:`_atomic_write` (temp file in the same directory,
then ``os.replace``) so a crash never leaves a truncated config behind.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from fetchkit.exceptions import ConfigError
from fetchkit.models import GlobalConfig

_APP_NAME = "fetchkit"
_CONFIG_FILENAME = "config.json"

ENV_BASE_URL = "FETCHKIT_BASE_URL"
ENV_TIMEOUT = "FETCHKIT_TIMEOUT"
ENV_RETRY_COUNT = "FETCHKIT_RETRY_COUNT"
ENV_CACHE_TTL = "FETCHKIT_CACHE_TTL"
ENV_CACHE_BACKEND = "FETCHKIT_CACHE_BACKEND"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    system = platform.system()
    return system == "Linux" or system.endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_dir(env_var: str, default_segments: tuple[str, ...], fallback: Optional[str]) -> Path:
    """Resolve and create an application directory.

    On XDG platforms *env_var* (or ``$HOME/<default_segments>``) is the
    base; elsewhere everything lives under ``~/.fetchkit/<fallback>``.
    """
    if _is_xdg_platform():
        env_value = os.environ.get(env_var, "")
        base = Path(env_value) if env_value else Path.home().joinpath(*default_segments)
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
        if fallback:
            path = path / fallback
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fetchkit/`` (default ``~/.config/fetchkit/``).
    On macOS/Windows: ``~/.fetchkit/``.
    """
    return _xdg_dir("XDG_CONFIG_HOME", (".config",), None)


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    Holds the durable response store used by
    :class:`~fetchkit.cache.persistence.LocalPersistence`. Safe to delete
    at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/fetchkit/`` (default ``~/.cache/fetchkit/``).
    On macOS/Windows: ``~/.fetchkit/cache/``.
    """
    return _xdg_dir("XDG_CACHE_HOME", (".cache",), "cache")


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/fetchkit/`` (default ``~/.local/share/fetchkit/``).
    On macOS/Windows: ``~/.fetchkit/logs/``.
    """
    return _xdg_dir("XDG_DATA_HOME", (".local", "share"), "logs")


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Replace *path* with *data* atomically.

    The temp file lives next to *path* so ``os.replace`` stays on one
    filesystem. It is removed on any failure, including interrupts.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


# --- Global config ---


def global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration, or defaults if no file exists.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        return GlobalConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist *config* atomically."""
    data = config.model_dump(mode="json")
    _atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Environment overrides ---


def _env_value(name: str, convert: Callable[[str], Any]) -> Any:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return convert(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid value for {name}: {raw!r}") from exc


def _env_overrides() -> dict[str, Any]:
    """Collect ``FETCHKIT_*`` environment overrides as dotted paths."""
    overrides: dict[str, Any] = {}
    for env_name, dotted, convert in (
        (ENV_BASE_URL, "client.base_url", str),
        (ENV_TIMEOUT, "client.timeout", float),
        (ENV_RETRY_COUNT, "client.retry.count", int),
        (ENV_CACHE_TTL, "client.cache.ttl", float),
        (ENV_CACHE_BACKEND, "client.persistence.kind", str),
    ):
        value = _env_value(env_name, convert)
        if value is not None:
            overrides[dotted] = value
    return overrides


def apply_overrides(config: GlobalConfig, overrides: dict[str, Any]) -> GlobalConfig:
    """Return a validated copy of *config* with dotted-path *overrides* applied.

    Raises:
        ConfigError: If a path does not exist or a value fails validation.
    """
    if not overrides:
        return config
    data = config.model_dump(mode="python")
    for dotted, value in overrides.items():
        set_dotted(data, dotted, value)
    try:
        return GlobalConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration override: {exc}") from exc


def set_dotted(data: dict[str, Any], dotted: str, value: Any) -> None:
    """Set ``a.b.c`` inside nested dicts, failing on unknown segments."""
    parts = dotted.split(".")
    target = data
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            raise ConfigError(f"Unknown config key: '{dotted}'")
        target = child
    if parts[-1] not in target:
        raise ConfigError(f"Unknown config key: '{dotted}'")
    target[parts[-1]] = value


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_timeout: Optional[float] = None,
    cli_retries: Optional[int] = None,
    cli_format: Optional[str] = None,
) -> GlobalConfig:
    """Resolve the effective configuration.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``FETCHKIT_BASE_URL``, ``FETCHKIT_TIMEOUT``,
           ``FETCHKIT_RETRY_COUNT``, ``FETCHKIT_CACHE_TTL``,
           ``FETCHKIT_CACHE_BACKEND``)
        3. User config (``~/.config/fetchkit/config.json``)
        4. Defaults
    """
    config = load_global_config()
    config = apply_overrides(config, _env_overrides())

    cli: dict[str, Any] = {}
    if cli_base_url is not None:
        cli["client.base_url"] = cli_base_url
    if cli_timeout is not None:
        cli["client.timeout"] = cli_timeout
    if cli_retries is not None:
        cli["client.retry.count"] = cli_retries
    if cli_format is not None:
        cli["output.format"] = cli_format
    return apply_overrides(config, cli)
