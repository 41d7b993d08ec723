"""
Exception types shared by every subsystem.

Each class also derives from the matching builtin so callers can keep
catching ``ValueError`` / ``LookupError`` / ``RuntimeError`` as before.
"""

from __future__ import annotations


class OpenClawError(Exception):
    """Base class for all platform errors."""


class NotFoundError(OpenClawError, LookupError):
    """An entity referenced by id does not exist."""


class AlreadyExistsError(OpenClawError, ValueError):
    """An entity with the same id is already registered."""


class ValidationError(OpenClawError, ValueError):
    """Input violates a business rule."""


class InvalidStateError(OpenClawError, RuntimeError):
    """The entity is not in a state that allows the operation."""


class PermissionDeniedError(OpenClawError, PermissionError):
    """The caller is not allowed to perform the operation."""
