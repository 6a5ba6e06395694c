"""Custom exception hierarchy."""

from typing import Any, Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class NotFoundError(AppError):
    """Raised when a tenant, project, document, requirement, block... is absent."""
    def __init__(self, entity: str, key: Any, message: Optional[str] = None):
        super().__init__(message or f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(AppError):
    """Raised when a write cannot be applied to the current graph state."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class IntegrityRepairNeeded(AppError):
    """Raised when duplicate requirement refs exist and an explicit repair is required.

    Non-fatal: callers surface it and schedule the duplicate repair.
    """
    def __init__(self, message: str, duplicates: Optional[list] = None):
        super().__init__(message)
        self.duplicates = duplicates or []


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass
