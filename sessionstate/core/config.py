"""
Configuration Management for Session State Locking

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from sessionstate.core import constants as C
from sessionstate.core.errors import ConfigurationError
from sessionstate.core.types import Err, Ok, Result
from sessionstate.storage.config import RedisConfig

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class SessionStateConfig:
    """Root configuration for session state locking."""

    application_name: str = C.DEFAULT_APPLICATION_NAME
    session_timeout_s: int = C.DEFAULT_SESSION_TIMEOUT_S
    lock_timeout_s: int = C.DEFAULT_LOCK_TIMEOUT_S
    log_level: str = "INFO"
    log_json: bool = True
    redis: RedisConfig = field(default_factory=RedisConfig)

    @classmethod
    def from_env(cls) -> Result[SessionStateConfig, ConfigurationError]:
        """
        Load configuration from environment variables.

        Session settings are prefixed with SESSIONSTATE_, Redis settings
        with REDIS_ (see RedisConfig.from_env).
        Example: SESSIONSTATE_LOCK_TIMEOUT_S=110, REDIS_HOST=cache.internal

        The loaded configuration is validated before it is returned.
        """
        try:
            config = cls(
                application_name=os.getenv("SESSIONSTATE_APPLICATION_NAME", C.DEFAULT_APPLICATION_NAME),
                session_timeout_s=int(os.getenv("SESSIONSTATE_SESSION_TIMEOUT_S", str(C.DEFAULT_SESSION_TIMEOUT_S))),
                lock_timeout_s=int(os.getenv("SESSIONSTATE_LOCK_TIMEOUT_S", str(C.DEFAULT_LOCK_TIMEOUT_S))),
                log_level=os.getenv("SESSIONSTATE_LOG_LEVEL", "INFO").upper(),
                log_json=os.getenv("SESSIONSTATE_LOG_JSON", "true").lower() in ("true", "1", "yes"),
                redis=RedisConfig.from_env(),
            )
        except (ValueError, TypeError) as e:
            return Err(ConfigurationError.invalid("environment", str(e), cause=e))

        return config.validate().map(lambda _: config)

    def validate(self) -> Result[None, ConfigurationError]:
        """Validate configuration invariants."""
        if self.session_timeout_s <= 0:
            return Err(ConfigurationError.invalid("session_timeout_s", "must be > 0"))
        if self.lock_timeout_s <= 0:
            return Err(ConfigurationError.invalid("lock_timeout_s", "must be > 0"))
        if C.NAMESPACE_SEPARATOR in self.application_name:
            return Err(ConfigurationError.invalid(
                "application_name", f"must not contain {C.NAMESPACE_SEPARATOR!r}"
            ))
        if any(ch in self.application_name for ch in "{} \t\r\n"):
            return Err(ConfigurationError.invalid(
                "application_name", "must not contain braces or whitespace"
            ))
        if self.log_level not in _LOG_LEVELS:
            return Err(ConfigurationError.invalid("log_level", f"must be one of {_LOG_LEVELS}"))
        return Ok(None)
