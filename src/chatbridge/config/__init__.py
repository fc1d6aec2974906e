"""Configuration module for chatbridge."""

from chatbridge.config.loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    load_config,
)
from chatbridge.config.models import (
    AppConfig,
    AuthConfig,
    BridgeConfig,
    DatabaseConfig,
    GroupMeConfig,
    LoggingConfig,
    RetryConfig,
    ServerConfig,
    TeamsConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "EnvVarNotFoundError",
    # Functions
    "load_config",
    # Models
    "AppConfig",
    "AuthConfig",
    "BridgeConfig",
    "DatabaseConfig",
    "GroupMeConfig",
    "LoggingConfig",
    "RetryConfig",
    "ServerConfig",
    "TeamsConfig",
]
