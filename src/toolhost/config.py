"""Host configuration: pydantic models and the YAML loader.

A tool-provider process is described by one small YAML file::

    name: sqlite-tools
    transport: http
    http:
      host: 0.0.0.0
      port: ${SQLITE_TOOLS_PORT}
    tools:
      - sqlite_tools.tools

The listening address is always an explicit value here; it is never derived
from the process or assembly name.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from toolhost import __version__


class ConfigError(Exception):
    """Raised when a configuration file fails parsing or validation."""


class HttpSettings(BaseModel):
    """Bind address of the unary/broadcast HTTP transport."""

    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=0, le=65535)


class StdioSettings(BaseModel):
    max_line_bytes: int = Field(default=16 * 1024 * 1024, ge=1024)


class HubSettings(BaseModel):
    buffer_size: int = Field(default=256, ge=1)


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class HostConfig(BaseModel):
    """Top-level configuration for one tool-provider process."""

    name: str = "toolhost"
    version: str = __version__
    instructions: str | None = None
    transport: Literal["stdio", "http"] = "stdio"
    tools: list[str] = []
    http: HttpSettings = Field(default_factory=HttpSettings)
    stdio: StdioSettings = Field(default_factory=StdioSettings)
    hub: HubSettings = Field(default_factory=HubSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)
    shutdown_grace_seconds: float = Field(default=5.0, ge=0)
    log_level: str = "INFO"

    def with_overrides(self, **overrides: Any) -> HostConfig:
        """Return a copy with non-``None`` CLI overrides applied.

        ``host`` and ``port`` land in the ``http`` section; ``tools`` is
        appended to the configured tool modules.
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            if key in ("host", "port"):
                data["http"][key] = value
            elif key == "tools":
                data["tools"] = [*data["tools"], *[t for t in value if t not in data["tools"]]]
            else:
                data[key] = value
        try:
            return HostConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc


def load_config(path: str | Path) -> HostConfig:
    """Read YAML, interpolate env vars, and validate.

    Environment variables in the form ``${VAR}`` or ``$VAR`` are expanded
    using :func:`os.path.expandvars` before YAML parsing.

    Raises:
        ConfigError: On read errors, YAML parse errors or schema validation failures.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration YAML must be a mapping")

    try:
        return HostConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
