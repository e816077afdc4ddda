"""
Core module initialization.
Exports configuration, logging setup and the domain error kinds.
"""

from dialorder.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from dialorder.core.errors import (
    DialOrderError,
    NotFoundError,
    ForbiddenError,
    ValidationFailedError,
    ConflictError,
    UpstreamFailureError,
    BadMappingError,
    ProviderRejectedError,
    MisconfiguredError,
    InvalidMenuError,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "DialOrderError",
    "NotFoundError",
    "ForbiddenError",
    "ValidationFailedError",
    "ConflictError",
    "UpstreamFailureError",
    "BadMappingError",
    "ProviderRejectedError",
    "MisconfiguredError",
    "InvalidMenuError",
]
