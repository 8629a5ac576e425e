"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with the RELAY_ prefix.
No config files — just env vars (12-factor app style).

Learn: The two connection strings have no defaults on purpose. A relay
that silently points at localhost is worse than one that refuses to start,
so a missing DATABASE_URL / REDIS_URL is a fatal startup error — the only
failure in the whole pipeline that is never retried.

The bare names DATABASE_URL, REDIS_URL and PORT are accepted as well as the
prefixed ones, so the usual .env layout for Postgres/Redis apps just works.
"""

import re
from functools import lru_cache

from pydantic import AliasChoices, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

from orderrelay.connection.backoff import Backoff

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


class Settings(BaseSettings):
    """All relay configuration. Set via RELAY_* env vars."""

    # Connections (required)
    database_url: str = Field(
        validation_alias=AliasChoices("RELAY_DATABASE_URL", "DATABASE_URL"),
    )
    redis_url: str = Field(
        validation_alias=AliasChoices("RELAY_REDIS_URL", "REDIS_URL"),
    )

    # Fan-out server
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = Field(
        default=8080,
        validation_alias=AliasChoices("RELAY_PORT", "PORT"),
    )
    welcome_message: str = "Connected to orders updates"

    # Channels and keys
    store_channel: str = "orders_channel"  # Postgres LISTEN channel
    bus_topic: str = "orders_updates"  # Redis pub/sub channel
    counter_key: str = "orders:msg_id"  # Redis INCR key for sequence ids
    event_source: str = "postgres_notify"

    # Reconnect discipline
    backoff_base_seconds: float = 1.0
    backoff_cap_seconds: float = 30.0
    backoff_multiplier: float = 1.5
    liveness_interval_seconds: float = 2.0
    probe_timeout_seconds: float = 5.0
    close_timeout_seconds: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    model_config = {"env_prefix": "RELAY_", "populate_by_name": True}

    @model_validator(mode="after")
    def validate_relay_settings(self):
        """Reject settings the supervisors and LISTEN cannot work with."""
        if not _IDENTIFIER.match(self.store_channel):
            raise ValueError(
                f"RELAY_STORE_CHANNEL must be a plain identifier, got {self.store_channel!r}"
            )
        if self.backoff_base_seconds <= 0:
            raise ValueError("RELAY_BACKOFF_BASE_SECONDS must be positive")
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise ValueError(
                "RELAY_BACKOFF_CAP_SECONDS must be >= RELAY_BACKOFF_BASE_SECONDS"
            )
        if self.backoff_multiplier < 1:
            raise ValueError("RELAY_BACKOFF_MULTIPLIER must be >= 1")
        if self.liveness_interval_seconds <= 0 or self.probe_timeout_seconds <= 0:
            raise ValueError("Liveness interval and probe timeout must be positive")
        return self

    def make_backoff(self) -> Backoff:
        """Fresh backoff state for one supervised connection."""
        return Backoff(
            base=self.backoff_base_seconds,
            cap=self.backoff_cap_seconds,
            multiplier=self.backoff_multiplier,
        )


def load_settings(**overrides) -> Settings:
    """Build Settings from the environment, raising ConfigError on failure.

    Learn: pydantic's ValidationError is precise but noisy. We flatten it
    into one line per bad field so the CLI can print something a human
    can act on before exiting non-zero.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = []
        for err in e.errors():
            field = ".".join(str(part) for part in err["loc"]) or "settings"
            problems.append(f"{field}: {err['msg']}")
        raise ConfigError("Invalid configuration — " + "; ".join(problems)) from e


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, loaded once on first use."""
    return load_settings()
