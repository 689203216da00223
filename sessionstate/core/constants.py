"""
System-Wide Constants for Session State Locking

All magic numbers and configuration defaults centralized here.
Durations are whole seconds because Redis EXPIRE takes seconds.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND: Final[int] = 1
MINUTE: Final[int] = 60 * SECOND

# =============================================================================
# SESSION DEFAULTS
# =============================================================================
DEFAULT_SESSION_TIMEOUT_S: Final[int] = 20 * MINUTE
DEFAULT_LOCK_TIMEOUT_S: Final[int] = 110 * SECOND
DEFAULT_APPLICATION_NAME: Final[str] = "sessionstate"

# =============================================================================
# KEY LAYOUT
# =============================================================================
MAX_SESSION_ID_LENGTH: Final[int] = 256
NAMESPACE_SEPARATOR: Final[str] = ":"
DATA_KEY_SUFFIX: Final[str] = "_Data"
INTERNAL_KEY_SUFFIX: Final[str] = "_Internal"
LOCK_KEY_SUFFIX: Final[str] = "_Write_Lock"
TIMEOUT_FIELD: Final[str] = "timeout"

# =============================================================================
# LOCK ACQUISITION BACKOFF (CALLER-SIDE)
# =============================================================================
LOCK_POLL_BASE_MS: Final[int] = 50
LOCK_POLL_MAX_MS: Final[int] = 2_000
LOCK_POLL_MAX_ATTEMPTS: Final[int] = 10
