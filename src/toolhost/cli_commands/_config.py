"""Shared configuration handling for CLI commands."""

from __future__ import annotations

from typing import Any

import click

from toolhost.config import ConfigError, HostConfig, load_config


def config_option(fn: Any) -> Any:
    return click.option(
        "--config",
        "-c",
        "config_path",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="YAML configuration file.",
    )(fn)


def tool_option(fn: Any) -> Any:
    return click.option(
        "--tool",
        "-t",
        "tool_modules",
        multiple=True,
        help="Import path of a tool module (repeatable).",
    )(fn)


def resolve_config(config_path: str | None, **overrides: Any) -> HostConfig:
    """Load the config file (if any) and apply CLI overrides.

    Raises:
        click.ClickException: when the configuration is invalid.
    """
    try:
        base = load_config(config_path) if config_path else HostConfig()
        return base.with_overrides(**overrides)
    except ConfigError as exc:
        raise click.ClickException(f"Configuration error: {exc}") from exc
