"""Custom exception classes and error handling."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "success": False,
                "error": {
                    "code": code,
                    "message": message,
                    "details": details or {},
                },
            },
        )


class ValidationError(AppException):
    """Data validation failed."""

    def __init__(
        self,
        message: str = "Validation error",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="VALIDATION_ERROR",
            message=message,
            details=details,
        )


class NotFoundError(AppException):
    """Resource not found."""

    def __init__(
        self,
        resource: str = "Resource",
        identifier: str | None = None,
    ):
        details = {}
        if identifier:
            details["identifier"] = identifier
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            message=f"{resource} not found",
            details=details,
        )


class ConflictError(AppException):
    """Request conflicts with work already in progress."""

    def __init__(
        self,
        message: str = "Conflict",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            code="CONFLICT",
            message=message,
            details=details,
        )


# ==========================================
# Pipeline errors (raised inside jobs, not HTTP-aware)
# ==========================================


class PipelineError(Exception):
    """Base error for the normalization / ranking / cutoff pipeline."""

    def __init__(self, message: str, exam_id: int | None = None):
        self.message = message
        self.exam_id = exam_id
        super().__init__(message)


class UnknownNormalizationMethodError(PipelineError):
    """Exam is configured with a method the formula engine does not know."""

    def __init__(self, method: str, exam_id: int | None = None):
        self.method = method
        super().__init__(f"Unknown normalization method '{method}'", exam_id)


class NormalizationDisabledError(PipelineError):
    """Normalization was requested for an exam with has_normalization=False."""

    def __init__(self, exam_id: int):
        super().__init__(f"Normalization is disabled for exam {exam_id}", exam_id)


class InsufficientDataError(PipelineError):
    """Not enough data to produce a meaningful result."""

    pass
