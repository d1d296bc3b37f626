"""
Central configuration management for rdsvalidator.

This module provides type-safe configuration management using Pydantic,
read from the environment (and an optional ``.env`` file).
"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudSettings(BaseSettings):
    """AWS connection settings."""

    aws_region: str = Field(
        default="us-west-2",
        validation_alias=AliasChoices("AWS_DEFAULT_REGION", "AWS_REGION"),
    )
    aws_profile: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_PROFILE")
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_ACCESS_KEY_ID")
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_SECRET_ACCESS_KEY")
    )
    aws_session_token: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("AWS_SESSION_TOKEN")
    )

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, populate_by_name=True
    )


class ProvisioningSettings(BaseSettings):
    """Resource provisioning and polling settings (``RV_*``)."""

    # Readiness polling, in seconds
    keypair_poll_interval: float = 1.0
    firewall_poll_interval: float = 1.0
    compute_poll_interval: float = 1.0
    database_poll_interval: float = 5.0
    ssh_poll_interval: float = 1.0
    # None keeps polling until the resource is ready or the run is interrupted
    poll_timeout: Optional[float] = None

    # Ephemeral bastion
    bastion_instance_type: str = "t4g.nano"
    bastion_image_owner: str = "099720109477"
    bastion_image_name: str = "ubuntu/images/*ubuntu-focal-20.*-server-*"
    bastion_architecture: str = "arm64"
    ssh_ingress_cidr: str = "0.0.0.0/0"

    # Restored database
    default_db_instance_class: str = "db.t3.medium"

    # Tunnel
    proxy_user: str = "ubuntu"
    local_port_offset: int = 10000
    tunnel_grace_period: float = 2.0

    resource_prefix: str = "rdsvalidator"

    @field_validator(
        "keypair_poll_interval",
        "firewall_poll_interval",
        "compute_poll_interval",
        "database_poll_interval",
        "ssh_poll_interval",
    )
    @classmethod
    def validate_interval(cls, v):
        """Poll intervals cannot be negative."""
        if v < 0:
            raise ValueError("Poll interval must be >= 0")
        return v

    @field_validator("poll_timeout")
    @classmethod
    def validate_poll_timeout(cls, v):
        """A poll timeout, when given, must be positive."""
        if v is not None and v <= 0:
            raise ValueError("Poll timeout must be > 0")
        return v

    model_config = SettingsConfigDict(env_prefix="RV_", case_sensitive=False)


class MonitoringSettings(BaseSettings):
    """Logging configuration."""

    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    model_config = SettingsConfigDict(env_prefix="RV_", case_sensitive=False)


class AppSettings(BaseSettings):
    """Main application settings."""

    app_name: str = "rdsvalidator"
    app_version: str = "0.1.0"

    cloud: CloudSettings = Field(default_factory=CloudSettings)
    provisioning: ProvisioningSettings = Field(default_factory=ProvisioningSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    def get_safe_dict(self) -> Dict[str, Any]:
        """Get configuration dict with sensitive values masked."""
        config = self.model_dump()

        def mask_sensitive(obj):
            if isinstance(obj, dict):
                for key, value in obj.items():
                    if any(
                        sensitive in key.lower()
                        for sensitive in ["secret", "access_key", "token"]
                    ):
                        if value and str(value).strip():
                            obj[key] = "***MASKED***"
                    elif isinstance(value, dict):
                        mask_sensitive(value)

        mask_sensitive(config)
        return config

    model_config = SettingsConfigDict(
        env_prefix="RV_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Singleton pattern for settings
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings singleton."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Force reload of settings (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()
