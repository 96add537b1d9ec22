"""
Pydantic-based configuration models for the Peerspace server.

Every section is a BaseSettings with its own environment prefix, so a value
can be supplied as e.g. ``PRESENCE_BROADCAST_INTERVAL=0.05`` in the process
environment or in a ``.env`` file in the working directory. Process
environment variables win over ``.env`` entries.
"""

import json
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


def _parse_env_list(candidate: Any) -> list[str]:
    """Parse a string from the environment as JSON list or CSV."""
    if candidate is None:
        return []
    if isinstance(candidate, list | tuple):
        return [str(item).strip() for item in candidate if str(item).strip()]
    s = str(candidate).strip()
    if not s:
        return []
    try:
        loaded = json.loads(s)
        if isinstance(loaded, list):
            return [str(item).strip() for item in loaded if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in s.split(",") if item.strip()]


class ServerConfig(BaseSettings):
    """Server network configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8080, description="Server port")
    static_dir: str | None = Field(default="public", description="Directory of client files served at /")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port is in valid range."""
        if not 1024 <= v <= 65535:
            logger.error("Invalid server port", port=v, valid_range="1024-65535")
            raise ValueError("Port must be between 1024 and 65535")
        return v

    model_config = {
        "env_prefix": "SERVER_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    environment: str = Field(default="local", description="Logging environment")
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="colored", description="Log format")
    log_base: str = Field(default="logs", description="Base log directory")
    rotation_max_size: str = Field(default="100MB", description="Log rotation max size")
    rotation_backup_count: int = Field(default=5, description="Number of backup log files")
    disable_logging: bool = Field(default=False, description="Disable all logging")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate logging environment."""
        valid_environments = ["local", "unit_test", "e2e_test", "production"]
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}, got '{v}'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        valid_formats = ["json", "human", "colored"]
        if v not in valid_formats:
            raise ValueError(f"Log format must be one of {valid_formats}, got '{v}'")
        return v

    model_config = {
        "env_prefix": "LOGGING_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    def to_dict(self) -> dict[str, Any]:
        """Convert to the dict shape expected by setup_enhanced_logging."""
        return {
            "environment": self.environment,
            "level": self.level,
            "format": self.format,
            "log_base": self.log_base,
            "rotation": {
                "max_size": self.rotation_max_size,
                "backup_count": self.rotation_backup_count,
            },
            "disable_logging": self.disable_logging,
        }


class PresenceConfig(BaseSettings):
    """Peer presence and broadcast configuration."""

    broadcast_interval: float = Field(default=0.1, description="Seconds between full peer snapshots")
    spawn_position: list[float] = Field(default=[0.0, 0.5, 0.0], description="Default avatar position (x, y, z)")
    spawn_rotation: list[float] = Field(
        default=[0.0, 0.0, 0.0, 1.0], description="Default avatar orientation quaternion (x, y, z, w)"
    )
    username_prefix: str = Field(default="User", description="Prefix of generated placeholder names")
    username_suffix_max: int = Field(default=999, description="Largest number appended to placeholder names")
    max_username_length: int = Field(default=64, description="Longest display name accepted from a client")
    max_message_size: int = Field(default=65536, description="Largest inbound WebSocket frame in bytes")
    send_timeout: float = Field(
        default=5.0, description="Seconds a single outbound send may take before the client is dropped"
    )

    @field_validator("broadcast_interval")
    @classmethod
    def validate_broadcast_interval(cls, v: float) -> float:
        """Validate the broadcast interval is positive and sane."""
        if v <= 0 or v > 10:
            raise ValueError("Broadcast interval must be greater than 0 and at most 10 seconds")
        return v

    @field_validator("send_timeout")
    @classmethod
    def validate_send_timeout(cls, v: float) -> float:
        """Validate the send timeout is positive."""
        if v <= 0:
            raise ValueError("Send timeout must be positive")
        return v

    @field_validator("spawn_position")
    @classmethod
    def validate_spawn_position(cls, v: list[float]) -> list[float]:
        """Validate the spawn position is an (x, y, z) triple."""
        if len(v) != 3:
            raise ValueError("Spawn position must have exactly 3 components")
        return v

    @field_validator("spawn_rotation")
    @classmethod
    def validate_spawn_rotation(cls, v: list[float]) -> list[float]:
        """Validate the spawn rotation is an (x, y, z, w) quaternion."""
        if len(v) != 4:
            raise ValueError("Spawn rotation must have exactly 4 components")
        return v

    @field_validator("username_suffix_max", "max_username_length", "max_message_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate size limits are positive."""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    model_config = {
        "env_prefix": "PRESENCE_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class UrlGenerationConfig(BaseSettings):
    """Prompt-to-URL adapter configuration."""

    provider: str = Field(default="disabled", description="Adapter implementation")
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("URL_GENERATION_API_KEY", "GEMINI_API_KEY", "API_KEY"),
        description="Generative model API key",
    )
    model: str = Field(default="gemini-2.0-flash", description="Generative model name")
    api_base: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta", description="Generative model API base URL"
    )
    temperature: float = Field(default=0.95, description="Sampling temperature")
    top_p: float = Field(default=0.1, description="Nucleus sampling threshold")
    top_k: int = Field(default=16, description="Top-k sampling")
    max_output_tokens: int = Field(default=200, description="Maximum tokens per model reply")
    request_timeout: float = Field(default=10.0, description="Timeout of a single HTTP request in seconds")
    timeout: float = Field(default=30.0, description="Timeout of a whole URL generation in seconds")
    search_api_key: str | None = Field(default=None, description="Custom Search API key")
    search_engine_id: str | None = Field(default=None, description="Custom Search engine id (cx)")
    search_url: str = Field(default="https://www.googleapis.com/customsearch/v1", description="Search API endpoint")

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate the adapter provider name."""
        valid_providers = ["disabled", "gemini", "gemini_search"]
        v_lower = v.lower()
        if v_lower not in valid_providers:
            raise ValueError(f"Provider must be one of {valid_providers}, got '{v}'")
        return v_lower

    @field_validator("request_timeout", "timeout")
    @classmethod
    def validate_timeouts(cls, v: float) -> float:
        """Validate timeouts are positive."""
        if v <= 0:
            raise ValueError("Timeouts must be positive")
        return v

    model_config = {
        "env_prefix": "URL_GENERATION_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }


class CORSConfig(BaseSettings):
    """CORS configuration for the HTTP endpoints."""

    allow_origins: Any = Field(default_factory=lambda: ["http://localhost:8080", "http://127.0.0.1:8080"])
    allow_methods: Any = Field(default_factory=lambda: ["GET", "OPTIONS"])
    allow_headers: Any = Field(default_factory=lambda: ["Content-Type"])
    allow_credentials: bool = Field(default=False)

    @field_validator("allow_origins", "allow_methods", "allow_headers", mode="before")
    @classmethod
    def parse_list(cls, v: Any) -> list[str]:
        """Accept JSON lists or comma separated strings."""
        return _parse_env_list(v)

    model_config = {
        "env_prefix": "CORS_",
        "case_sensitive": False,
        "extra": "ignore",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }


class AppConfig(BaseSettings):
    """
    Composite application configuration.

    Aggregates every configuration section. Access via get_config().
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    url_generation: UrlGenerationConfig = Field(default_factory=UrlGenerationConfig)
    cors: CORSConfig = Field(default_factory=CORSConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "case_sensitive": False, "extra": "ignore"}

    def to_dict(self) -> dict[str, Any]:
        """Flatten into a plain dict (used by the logging setup)."""
        return {
            "host": self.server.host,
            "port": self.server.port,
            "static_dir": self.server.static_dir,
            "logging": self.logging.to_dict(),
            "broadcast_interval": self.presence.broadcast_interval,
            "url_generation_provider": self.url_generation.provider,
        }
