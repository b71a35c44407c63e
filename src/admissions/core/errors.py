"""
Service Error Taxonomy

Every business error raised by a service carries a machine readable
``error_code`` and the HTTP ``status_code`` the routers translate it to.
Module specific errors subclass one of the categories below.
"""

from uuid import UUID


class AdmissionsServiceError(Exception):
    """Base exception for admissions service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidTransitionError(AdmissionsServiceError):
    """Raised when an operation is illegal in the current status."""

    def __init__(self, message: str, error_code: str = "INVALID_TRANSITION"):
        super().__init__(message=message, error_code=error_code, status_code=409)


class ValidationError(AdmissionsServiceError):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message=message, error_code=error_code, status_code=422)


class FileTooLargeError(AdmissionsServiceError):
    """Raised when an uploaded file exceeds the size limit."""

    def __init__(self, size_bytes: int, max_bytes: int):
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            message=f"File is {size_bytes} bytes; the maximum allowed is {max_bytes} bytes.",
            error_code="FILE_TOO_LARGE",
            status_code=413,
        )


class UnsupportedFileTypeError(AdmissionsServiceError):
    """Raised when an uploaded file has a content type outside the allow-list."""

    def __init__(self, content_type: str, allowed: frozenset[str]):
        self.content_type = content_type
        super().__init__(
            message=f"Unsupported file type '{content_type}'. Allowed: {sorted(allowed)}",
            error_code="UNSUPPORTED_FILE_TYPE",
            status_code=415,
        )


class NotFoundError(AdmissionsServiceError):
    """Raised when a referenced record does not exist."""

    def __init__(self, resource: str, resource_id: UUID | str | None = None):
        message = f"{resource} {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(
            message=message,
            error_code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            status_code=404,
        )


class DependencyFailureError(AdmissionsServiceError):
    """Raised when a collaborator (storage, database write) fails. Retryable."""

    def __init__(self, message: str, error_code: str = "DEPENDENCY_FAILURE"):
        super().__init__(message=message, error_code=error_code, status_code=503)


__all__ = [
    "AdmissionsServiceError",
    "DependencyFailureError",
    "FileTooLargeError",
    "InvalidTransitionError",
    "NotFoundError",
    "UnsupportedFileTypeError",
    "ValidationError",
]
