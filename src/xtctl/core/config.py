"""Configuration management using Pydantic.

Provides:
- Typed configuration models with validation
- YAML file loading with defaults
- Environment variable overrides for tool and lock paths
- Configuration initialization and display
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from xtctl.core.exceptions import ConfigurationError


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/xtctl/config.yaml")
DEFAULT_LOCK_PATH = Path("/run/xtables.lock")
DEFAULT_TABLE = "filter"


class ToolsConfig(BaseModel):
    """Where the xtables binaries and the shared lock file live.

    Leaving a binary path unset means it is looked up on PATH.
    """

    iptables_path: Optional[Path] = None
    ip6tables_path: Optional[Path] = None
    lock_path: Path = DEFAULT_LOCK_PATH
    default_table: str = DEFAULT_TABLE

    @field_validator("lock_path")
    @classmethod
    def validate_lock_path(cls, v: Path) -> Path:
        if not v.is_absolute():
            raise ValueError("lock_path must be an absolute path")
        return v

    @field_validator("default_table")
    @classmethod
    def validate_default_table(cls, v: str) -> str:
        v = v.strip()
        if not v or any(c.isspace() for c in v):
            raise ValueError("default_table must be a single non-empty word")
        return v


class XtctlConfig(BaseModel):
    """Root configuration model loaded from /etc/xtctl/config.yaml."""

    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @classmethod
    def load(cls, path: Path) -> "XtctlConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            Loaded configuration

        Raises:
            ConfigurationError: If file not found or invalid
        """
        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: xtctl config init",
            )

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in configuration file: {path}",
                details=[str(e)],
            ) from e
        except PermissionError:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                hint="Check file permissions or run with sudo",
            )

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid configuration: expected a mapping in {path}",
            )

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                details=[str(e)],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "XtctlConfig":
        """Load configuration, falling back to defaults if file doesn't exist."""
        if path is None:
            path = DEFAULT_CONFIG_PATH

        if path.exists():
            return cls.load(path)
        return cls()

    def to_yaml(self) -> str:
        """Convert configuration to YAML string."""
        data = self.model_dump(mode="json", exclude_none=True)
        return yaml.dump(data, default_flow_style=False, sort_keys=False)


class EnvOverrides(BaseSettings):
    """Path overrides read from the environment.

    These win over the config file.
    """

    iptables: Optional[Path] = Field(None, alias="XTCTL_IPTABLES")
    ip6tables: Optional[Path] = Field(None, alias="XTCTL_IP6TABLES")
    lock_path: Optional[Path] = Field(None, alias="XTCTL_LOCK_PATH")

    class Config:
        extra = "ignore"


class AppConfig:
    """Application configuration combining config file and environment.

    This is the main interface for accessing configuration throughout the app.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[XtctlConfig] = None,
    ) -> None:
        """Initialize application configuration.

        Args:
            config_path: Path to config file (uses default if None)
            config: Pre-loaded config (skips file loading if provided)
        """
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self._config = config or XtctlConfig.load_or_default(self.config_path)
        self._env = EnvOverrides()

    @property
    def config(self) -> XtctlConfig:
        """Get the loaded configuration."""
        return self._config

    @property
    def env(self) -> EnvOverrides:
        """Get the environment overrides."""
        return self._env

    @property
    def iptables_path(self) -> Optional[Path]:
        return self._env.iptables or self._config.tools.iptables_path

    @property
    def ip6tables_path(self) -> Optional[Path]:
        return self._env.ip6tables or self._config.tools.ip6tables_path

    @property
    def lock_path(self) -> Path:
        return self._env.lock_path or self._config.tools.lock_path

    @property
    def default_table(self) -> str:
        return self._config.tools.default_table


def get_example_config() -> str:
    """Generate example configuration file content."""
    return f"""# xtctl configuration
# Environment variables XTCTL_IPTABLES, XTCTL_IP6TABLES and XTCTL_LOCK_PATH
# override the values below.

tools:
  # Leave unset to look the binaries up on PATH
  # iptables_path: /usr/sbin/iptables
  # ip6tables_path: /usr/sbin/ip6tables

  # Lock shared with every other xtables user on this host. Only used
  # when the installed iptables predates --wait (1.4.20).
  lock_path: {DEFAULT_LOCK_PATH}

  default_table: {DEFAULT_TABLE}
"""


def init_config(path: Path, force: bool = False) -> None:
    """Initialize a new configuration file.

    Args:
        path: Path to create config file
        force: Overwrite if exists

    Raises:
        ConfigurationError: If file exists and force is False
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    os.chmod(path, 0o644)
