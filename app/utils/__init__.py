"""Reflecta API - Utilities Package."""

from app.utils.errors import (
    ReflectaException,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    CoachingPipelineError,
)

__all__ = [
    "ReflectaException",
    "AuthenticationError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "CoachingPipelineError",
]
