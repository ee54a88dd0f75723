"""Configuration loader for the nsticky daemon.

Settings come from built-in defaults, an optional JSON file and environment
variables, in that order of precedence (environment wins).
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CLI_SOCKET = Path("/tmp/niri_sticky_cli.sock")
DEFAULT_STAGE_WORKSPACE = "stage"

# Environment variable -> DaemonConfig field
ENV_OVERRIDES = {
    "NSTICKY_SOCKET": "cli_socket_path",
    "NSTICKY_STAGE_WORKSPACE": "stage_workspace",
    "NSTICKY_IPC_TIMEOUT": "ipc_timeout",
    "NSTICKY_NIRI_COMMAND": "niri_command",
    "NIRI_SOCKET": "niri_socket",
    "LOG_LEVEL": "log_level",
}


class DaemonConfig(BaseModel):
    """Runtime settings for the daemon and its niri client."""

    cli_socket_path: Path = Field(DEFAULT_CLI_SOCKET, description="Unix socket the CLI connects to")
    niri_socket: Optional[Path] = Field(None, description="niri IPC socket ($NIRI_SOCKET)")
    niri_command: str = Field("niri", min_length=1, description="niri binary used for queries")
    stage_workspace: str = Field(DEFAULT_STAGE_WORKSPACE, min_length=1, description="Named workspace for staged windows")
    ipc_timeout: float = Field(5.0, gt=0, description="Timeout in seconds for every niri call")
    log_level: str = Field("INFO", description="Root log level")

    @field_validator('stage_workspace')
    @classmethod
    def validate_stage_workspace(cls, v: str) -> str:
        """Strip whitespace; niri workspace names cannot be blank."""
        v = v.strip()
        if not v:
            raise ValueError("stage_workspace cannot be blank")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    def require_niri_socket(self) -> Path:
        """Return the niri socket path or fail if it is not configured."""
        if self.niri_socket is None:
            raise ConfigError("NIRI_SOCKET is not set. Run inside a niri session.")
        return self.niri_socket


def default_config_file(environ: Optional[Mapping[str, str]] = None) -> Path:
    """Location of the optional JSON config file."""
    environ = os.environ if environ is None else environ
    config_home = environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "nsticky" / "config.json"


def _read_config_file(config_file: Path) -> Dict[str, Any]:
    if not config_file.exists():
        logger.debug(f"Config file does not exist: {config_file}, using defaults")
        return {}

    try:
        with open(config_file) as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to load configuration from {config_file}: {e}", source=str(config_file))

    if not isinstance(data, dict):
        raise ConfigError(f"Configuration in {config_file} must be a JSON object", source=str(config_file))

    logger.info(f"Loaded configuration from {config_file}")
    return data


def load_config(
    config_file: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> DaemonConfig:
    """Build the daemon configuration.

    Args:
        config_file: JSON file to read (defaults to $XDG_CONFIG_HOME/nsticky/config.json)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated DaemonConfig

    Raises:
        ConfigError: If the file is unreadable or any value fails validation
    """
    environ = os.environ if environ is None else environ
    if config_file is None:
        config_file = default_config_file(environ)

    values = _read_config_file(config_file)

    for env_name, field_name in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            values[field_name] = value

    try:
        return DaemonConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}", source=str(config_file))
