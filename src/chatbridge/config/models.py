"""Pydantic models for application configuration."""

from typing import Literal

from pydantic import BaseModel, Field


class GroupMeConfig(BaseModel):
    """GroupMe integration configuration."""

    access_token: str = Field(
        ...,
        description="GroupMe API access token of the account that owns bridge groups.",
    )
    base_url: str = Field(
        default="https://api.groupme.com/v3",
        description="Base URL of the GroupMe v3 REST API.",
    )
    bot_name: str = Field(
        default="COBRA",
        description="Display name of the bot registered in each bridged group.",
    )


class TeamsConfig(BaseModel):
    """Microsoft Teams bot service configuration."""

    bot_base_url: str = Field(
        ...,
        description=(
            "Base URL of the Teams bot service that performs proactive sends "
            "(e.g., 'https://teams-bot.example.com')."
        ),
    )
    api_key: str | None = Field(
        default=None,
        description="Shared key sent as X-Api-Key to the Teams bot service.",
    )


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/chatbridge.db",
        description=(
            "SQLAlchemy-style database connection URL "
            "(e.g., 'sqlite+aiosqlite:///path/to/db')."
        ),
    )


class RetryConfig(BaseModel):
    """Retry policy applied to outbound platform calls."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    add_jitter: bool = True
    attempt_timeout: float | None = Field(
        default=10.0,
        description="Upper bound in seconds for a single outbound attempt.",
    )


class BridgeConfig(BaseModel):
    """Message bridge behaviour."""

    outbound_template: str = Field(
        default="[{{ sender }}] {{ text }}",
        description="Jinja2 template for messages relayed to external platforms.",
    )
    group_name_template: str = Field(
        default="COBRA: {{ event_name }}",
        description="Jinja2 template for the name of newly created external groups.",
    )
    announcement_template: str = Field(
        default=(
            "{% if priority == 'urgent' %}[URGENT] {% endif %}"
            "[Announcement] {{ title }}\n{{ message }}\n({{ sender }})"
        ),
        description="Jinja2 template for announcements broadcast to Teams.",
    )
    viewer_queue_size: int = Field(
        default=100,
        ge=1,
        description="Maximum realtime notifications buffered per connected viewer.",
    )


class AuthConfig(BaseModel):
    """Caller identity resolution for the admin API."""

    default_email: str | None = Field(
        default=None,
        description=(
            "Identity used when a request carries no X-User-Email header. "
            "Leave unset to require the header."
        ),
    )
    default_full_name: str | None = None


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    public_base_url: str | None = Field(
        default=None,
        description=(
            "Externally reachable base URL used to build webhook callback URLs "
            "registered with platforms."
        ),
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "text"] = "json"


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    groupme: GroupMeConfig | None = None
    teams: TeamsConfig | None = None
