"""
Core module initialization.
Exports configuration, logging utilities and the error taxonomy.
"""

from tableside.core.config import get_settings, Settings, EnvironmentMode
from tableside.core.errors import (
    OrderingError,
    NotFoundError,
    InvalidArgumentError,
    InternalError,
    PermissionDeniedError,
)

__all__ = [
    "get_settings",
    "Settings",
    "EnvironmentMode",
    "OrderingError",
    "NotFoundError",
    "InvalidArgumentError",
    "InternalError",
    "PermissionDeniedError",
]
