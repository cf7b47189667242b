"""Exceptions raised by the admin services."""

from typing import Optional


class HymnalAdminError(Exception):
    """Base exception for all admin tool errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(HymnalAdminError):
    """Raised when Firebase settings or credentials are missing."""


class ValidationError(HymnalAdminError):
    """Raised when input is rejected before anything is written."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, details={'field': field} if field else None)
        self.field = field


class NotFoundError(HymnalAdminError):
    """Raised when the addressed database node does not exist."""

    def __init__(self, kind: str, identifier: str):
        super().__init__(
            f"{kind} not found: {identifier}",
            details={'kind': kind, 'identifier': identifier},
        )
        self.kind = kind
        self.identifier = identifier


class PermissionDeniedError(HymnalAdminError):
    """Raised when the acting user lacks the required role."""
