"""Core infrastructure: settings, logging, exceptions, input normalization."""

from .config import settings
from .exceptions import (
    AppException,
    ConflictError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
