"""Configuration loading: defaults → taskpilot.toml → environment → CLI flags."""

from __future__ import annotations

import os
import sys

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

CONFIG_FILENAME = "taskpilot.toml"

# Environment variable -> config field
ENV_VARS = {
    "TASKPILOT_API_URL": "api_url",
    "TASKPILOT_ACCESS_TOKEN": "access_token",
}


class ClientConfig(BaseModel):
    """All client settings. Loaded from defaults, then taskpilot.toml, then env, then CLI flags."""

    project_dir: Path = Field(default_factory=lambda: Path.cwd())

    # API
    api_url: str = "http://localhost:8000"
    access_token: str | None = None
    request_timeout_seconds: float = 30.0

    # Polling
    poll_interval_seconds: float = 3.0

    # Interactive approval
    approval_timeout_seconds: float = 300.0

    # Output
    download_dir: Path = Path(".")

    # Logging
    log_level: str = "INFO"
    log_dir: Path = Path(".taskpilot/logs")
    structured_log: bool = False

    @field_validator("poll_interval_seconds", "request_timeout_seconds", "approval_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("must not be empty")
        return value


def load_config(cli_args: dict[str, Any]) -> ClientConfig:
    """Load config from defaults → taskpilot.toml → environment → CLI args."""
    project_dir = Path(cli_args.get("project", ".")).resolve()
    toml_path = project_dir / CONFIG_FILENAME

    config_data: dict[str, Any] = {"project_dir": project_dir}

    if toml_path.exists():
        try:
            with open(toml_path, "rb") as f:
                config_data.update(tomllib.load(f))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"{toml_path}: {e}") from e

    for env_name, key in ENV_VARS.items():
        value = os.environ.get(env_name)
        if value:
            config_data[key] = value

    # CLI overrides (only non-None values)
    for key, value in cli_args.items():
        if value is not None and key != "project":
            config_data[key] = value

    config_data["project_dir"] = project_dir

    try:
        return ClientConfig(**config_data)
    except ValidationError as e:
        raise ConfigError(str(e)) from e
