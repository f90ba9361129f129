"""``fetchkit config`` -- view and modify the global configuration file."""

from __future__ import annotations

import json
from typing import Any

import typer

from fetchkit.exceptions import ConfigError
from fetchkit.output import error, format_response, info, success

config_app = typer.Typer(no_args_is_help=True)


def coerce_value(current: Any, value: str) -> Any:
    """Convert the CLI string *value* to the type of the *current* setting.

    Raises:
        ValueError: If *value* cannot be converted.
    """
    if isinstance(current, bool):
        lowered = value.lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected a boolean, got {value!r}")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(current, dict):
        parsed = json.loads(value)
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {value!r}")
        return parsed
    if current is None:
        if value.lower() in ("null", "none"):
            return None
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


@config_app.command("show")
def config_show() -> None:
    """Print the config directory and the current global configuration.

    Example::

        fetchkit config show --json
    """
    from fetchkit.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. 'client.retry.count'."),
    value: str = typer.Argument(help="New value; converted to the setting's type."),
) -> None:
    """Set one configuration value.

    Example::

        fetchkit config set client.base_url https://api.example.com
        fetchkit config set client.cache.ttl 60
        fetchkit config set client.persistence.kind session
    """
    from fetchkit.config import apply_overrides, load_global_config, save_global_config

    config = load_global_config()
    current: Any = config.model_dump(mode="json")
    for part in key.split("."):
        if not isinstance(current, dict) or part not in current:
            error(f"Unknown config key: {key}")
            raise typer.Exit(code=2)
        current = current[part]

    try:
        coerced = coerce_value(current, value)
        updated = apply_overrides(config, {key: coerced})
    except (ValueError, ConfigError) as exc:
        error(f"Invalid value for {key}: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(updated)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset the configuration to defaults. Asks first unless ``--force``."""
    from fetchkit.config import save_global_config
    from fetchkit.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
