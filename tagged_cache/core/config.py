"""
Tagged Cache Configuration

Configuration management with environment variable support.
Settings come from ``TAGGED_CACHE_*`` environment variables or a ``.env``
file; host applications that inject backend options as a mapping use
``CacheSettings.from_options``.
"""

from functools import lru_cache
from typing import Any, ClassVar, Dict, Mapping

from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..domain.cache.exceptions import CacheConfigurationError

# Load environment variables from .env file
load_dotenv()


class CacheSettings(BaseSettings):
    """Backend settings with validation and defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TAGGED_CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Store selection
    STORE_TYPE: str = Field(
        default="riak", description="Store gateway: riak, redis or memory"
    )

    # Store connection
    HOSTNAME: str = Field(
        default="127.0.0.1", min_length=1, description="Store network address"
    )
    PORT: int = Field(default=8098, ge=1, le=65535, description="Store network port")
    BUCKET_NAME: str = Field(
        default="tagged_cache",
        min_length=1,
        description="Logical partition holding this cache's entries",
    )
    REQUEST_TIMEOUT: float = Field(
        default=5.0, gt=0, le=300, description="Store request timeout in seconds"
    )
    INDEX_PAGE_SIZE: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="Keys requested per secondary index query page",
    )
    REDIS_DB: int = Field(default=0, ge=0, le=15, description="Redis database number")

    # Cache behaviour
    DEFAULT_LIFETIME: int = Field(
        default=0,
        ge=0,
        description="Lifetime in seconds applied when set() gets none; 0 is unlimited",
    )

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = Field(
        default=30.0,
        ge=1,
        le=300,
        description="Circuit breaker recovery timeout in seconds",
    )

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Option names as injected by a host application's backend configuration
    OPTION_NAMES: ClassVar[Dict[str, str]] = {
        "hostname": "HOSTNAME",
        "port": "PORT",
        "bucketName": "BUCKET_NAME",
        "defaultLifetime": "DEFAULT_LIFETIME",
    }

    @field_validator("STORE_TYPE")
    @classmethod
    def validate_store_type(cls, v):
        """Validate store type."""
        allowed = ["riak", "redis", "memory"]
        if v.lower() not in allowed:
            raise ValueError(f"STORE_TYPE must be one of: {allowed}")
        return v.lower()

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @classmethod
    def from_options(cls, options: Mapping[str, Any], **overrides) -> "CacheSettings":
        """
        Build settings from backend options injected by a host application.

        Recognized options are ``hostname``, ``port``, ``bucketName`` and
        ``defaultLifetime``; anything else is rejected.

        Raises:
            CacheConfigurationError: unknown option or invalid value
        """
        values: Dict[str, Any] = {}
        for name, value in options.items():
            if name not in cls.OPTION_NAMES:
                raise CacheConfigurationError(
                    f'Invalid cache backend option "{name}"', option=name, value=value
                )
            values[cls.OPTION_NAMES[name]] = value
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as e:
            error = e.errors()[0]
            field = str(error["loc"][0]) if error["loc"] else None
            raise CacheConfigurationError(
                f"Invalid cache backend options: {error['msg']}", option=field
            ) from e

    @property
    def store_url(self) -> str:
        """HTTP base URL of the store."""
        return f"http://{self.HOSTNAME}:{self.PORT}"

    # Alias properties for snake_case usage
    @property
    def hostname(self) -> str:
        """Alias for HOSTNAME."""
        return self.HOSTNAME

    @property
    def port(self) -> int:
        """Alias for PORT."""
        return self.PORT

    @property
    def bucket_name(self) -> str:
        """Alias for BUCKET_NAME."""
        return self.BUCKET_NAME

    @property
    def default_lifetime(self) -> int:
        """Alias for DEFAULT_LIFETIME."""
        return self.DEFAULT_LIFETIME


@lru_cache()
def get_settings() -> CacheSettings:
    """Get cached settings instance."""
    return CacheSettings()
