"""
Errors raised by the gamification engine.

Every error maps to an HTTP status and a stable ``code`` so request
handlers can turn it into a response with ``to_dict()``. Keyword context
given to a constructor (``resource_id``, ``operation`` and so on) is
merged into ``details``; ``None`` values are dropped.
"""

from typing import Any, Dict, Optional, List
from http import HTTPStatus


class AppException(Exception):
    """
    Base exception for all engine errors.

    Attributes:
        message: Error message
        status_code: HTTP status code
        code: Application error code
        details: Additional error details
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    code: Optional[str] = None

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        **context: Any
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code or self.code or self.__class__.__name__
        self.details = dict(details or {})
        self.details.update({k: v for k, v in context.items() if v is not None})
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Error body for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details
            }
        }

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(AppException):
    """Settings failed validation. Context: ``config_key``."""

    code = "CONFIGURATION_ERROR"


class ValidationError(AppException):
    """Bad input to an engine operation. Context: ``field_errors``."""

    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"


class NotFoundError(AppException):
    """Context: ``resource_type``, ``resource_id``."""

    status_code = HTTPStatus.NOT_FOUND
    code = "NOT_FOUND"


class ConcurrencyConflict(AppException):
    """A concurrent writer changed a record under us; the operation may be retried."""

    status_code = HTTPStatus.CONFLICT
    code = "CONCURRENCY_CONFLICT"


class DatabaseError(AppException):
    """Context: ``operation``."""

    code = "DATABASE_ERROR"


class ExternalDependencyError(AppException):
    """The backing store is unreachable. Context: ``dependency``."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE
    code = "EXTERNAL_DEPENDENCY_ERROR"


def raise_not_found(
    resource_type: str,
    resource_id: Any,
    details: Optional[Dict[str, Any]] = None
) -> None:
    """Raise a NotFoundError with a standard message."""
    raise NotFoundError(
        message=f"{resource_type} with ID {resource_id} not found",
        details=details,
        resource_type=resource_type,
        resource_id=resource_id
    )


def raise_validation_error(
    message: str,
    field_errors: Optional[Dict[str, List[str]]] = None
) -> None:
    """Raise a ValidationError with field errors."""
    raise ValidationError(message=message, field_errors=field_errors)
