"""Configuration management for nixdeploy."""

import socket
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nixdeploy.core.exceptions import ConfigurationError
from nixdeploy.core.models import ConfigurationReference, ExecutionMode, OperationKind


class Settings(BaseSettings):
    """Agent configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="NIXDEPLOY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server configuration
    host: str = Field("0.0.0.0", description="Webhook server host")
    port: int = Field(4242, description="Webhook server port")

    # Deployment target
    flake_url: str = Field(".", description="URL of the flake holding the configurations")
    hostname: str = Field(default_factory=socket.gethostname, description="Configuration to deploy")
    state_dir: str = Field("/var/lib/nixdeploy", description="Directory holding gcroots")
    operation: OperationKind = Field(OperationKind.SWITCH, description="switch-to-configuration argument")
    dry_run: bool = Field(False, description="Log state-mutating actions instead of running them")

    # Triggers
    webhook_enabled: bool = Field(True, description="Serve POST /deploy")
    webhook_secret: Optional[str] = Field(None, description="Shared secret required on POST /deploy")
    webhook_secret_header: str = Field("X-Gitlab-Token", description="Header carrying the shared secret")
    poll_interval_seconds: int = Field(0, description="Periodic trigger interval, 0 disables it")

    # Host integration
    agent_unit: str = Field("nixdeploy.service", description="systemd unit running this agent")
    restart_agent_on_change: bool = Field(True, description="Restart the agent unit when activation changed it")
    system_profile: str = Field("/nix/var/nix/profiles/system", description="System profile path")
    machine_id_path: str = Field("/etc/machine-id", description="Local machine identity file")
    machine_id_option: str = Field(
        "services.nixdeploy.machineId",
        description="Configuration option declaring the expected machine id",
    )
    command_timeout_seconds: Optional[float] = Field(
        None,
        description="Kill external commands running longer than this, unbounded if unset",
    )

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError(f"port must be between 1 and 65535, got: {v}")
        return v

    @field_validator("hostname", "flake_url", "webhook_secret_header", "agent_unit")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("value cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"poll_interval_seconds cannot be negative, got: {v}")
        return v

    @field_validator("command_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"command_timeout_seconds must be positive, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL, got: {v}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got: {v}")
        return v

    @property
    def execution_mode(self) -> ExecutionMode:
        return ExecutionMode.SIMULATE if self.dry_run else ExecutionMode.APPLY

    @property
    def reference(self) -> ConfigurationReference:
        return ConfigurationReference(flake_url=self.flake_url, hostname=self.hostname)

    @classmethod
    def from_yaml(cls, path: Path, **overrides: Any) -> "Settings":
        """Load settings from a YAML file; keyword overrides win over file values."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Can not read configuration file '{path}': {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file '{path}': {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)


def load_settings(config_path: Optional[Path] = None, **overrides: Any) -> Settings:
    """Build settings from an optional YAML file, the environment and overrides.

    Raises:
        ConfigurationError: if any value fails validation
    """
    try:
        if config_path is not None:
            return Settings.from_yaml(config_path, **overrides)
        return Settings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {errors}") from e
