"""Environment-driven store configuration with Pydantic v2."""

from typing import Any, Literal, Optional
from pathlib import Path
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigError

MEMORY_PATH = ":memory:"


class StoreSettings(BaseSettings):
    """Settings for one TTLStore instance.

    Every field can be supplied through a TTLKV_* environment variable or
    passed explicitly as a keyword argument.
    """

    # Storage
    path: str = Field(min_length=1)
    prefix: str = Field(min_length=1)
    database_echo: bool = Field(default=False)
    busy_timeout: float = Field(default=5.0, gt=0, le=300)

    # Expiry sweeper (0 disables it, lazy expiry on read still applies)
    sweep_interval: float = Field(default=0, ge=0)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        """Ensure database directory exists for SQLite file paths."""
        if v and v != MEMORY_PATH and "://" not in v:
            Path(v).expanduser().parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept level names in any case."""
        return v.upper() if isinstance(v, str) else v

    @property
    def is_memory(self) -> bool:
        """Check if the store lives in a private in-memory database."""
        return self.path == MEMORY_PATH

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured path."""
        if "://" in self.path:
            return self.path
        if self.is_memory:
            return "sqlite://"
        return f"sqlite:///{Path(self.path).expanduser()}"

    model_config = {
        "env_prefix": "TTLKV_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }


def load_settings(**overrides: Any) -> StoreSettings:
    """Build settings from environment plus non-None keyword overrides.

    Raises ConfigError instead of pydantic's ValidationError so callers only
    deal with the store's own error types.
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return StoreSettings(**values)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ConfigError(f"invalid store configuration: {fields}") from e
