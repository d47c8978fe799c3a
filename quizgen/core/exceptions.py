"""Exception hierarchy for the quiz generation service.

Every error carries a stable ``error_code`` and the HTTP status it maps to, so
the application-level handler can turn it into a JSON body without knowing
about individual subclasses.
"""

from typing import Any, Optional

from fastapi import status


class QuizGenError(Exception):
    """Base exception for all quiz generation errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(QuizGenError):
    """Request data that passed schema parsing but is semantically invalid."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)


class NotFoundError(QuizGenError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} not found",
            error_code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
            details={"id": resource_id},
        )


class JobNotFoundError(QuizGenError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, job_id: str):
        super().__init__(
            message="Job not found or expired",
            error_code="JOB_NOT_FOUND",
            details={
                "job_id": job_id,
                "status": "unknown",
                "hint": "Job may have expired or failed to initialize. Please try creating the quiz again.",
            },
        )


class JobStateError(QuizGenError):
    """A job exists but cannot accept the requested transition."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, job_id: str, current_status: str):
        super().__init__(
            message=f"Job is {current_status} and cannot accept this update",
            error_code="JOB_STATE_CONFLICT",
            details={"job_id": job_id, "status": current_status},
        )


class DuplicateQuizError(QuizGenError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, existing_quiz_id: str, title: str):
        super().__init__(
            message="A quiz with this title was just created. Please wait before submitting again.",
            error_code="DUPLICATE_QUIZ",
            details={"existing_quiz_id": existing_quiz_id, "title": title},
        )


class GeneratorError(QuizGenError):
    """Failures talking to the external question generator."""

    status_code = status.HTTP_502_BAD_GATEWAY


class GeneratorNotConfiguredError(GeneratorError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, details: Optional[dict[str, Any]] = None):
        super().__init__(
            message="Quiz generation webhook not configured",
            error_code="GENERATOR_NOT_CONFIGURED",
            details=details,
        )


class GeneratorUnavailableError(GeneratorError):
    """The generator did not acknowledge an asynchronous request."""

    def __init__(self, message: str = "Failed to reach quiz generation service", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code="GENERATOR_UNAVAILABLE", details=details)


class GeneratorNotFoundError(GeneratorError):
    def __init__(self, details: Optional[dict[str, Any]] = None):
        super().__init__(
            message="Webhook endpoint not found. Please check the webhook URL configuration.",
            error_code="GENERATOR_NOT_FOUND",
            details=details,
        )


class GeneratorBusyError(GeneratorError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, details: Optional[dict[str, Any]] = None):
        super().__init__(
            message="The question generation service is busy. Please try again later.",
            error_code="GENERATOR_BUSY",
            details=details,
        )


class UnsupportedContentError(GeneratorError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "The selected documents could not be used to generate questions.", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code="UNSUPPORTED_CONTENT", details=details)


class GeneratorServerError(GeneratorError):
    def __init__(self, message: str = "The question generation service encountered an internal error.", details: Optional[dict[str, Any]] = None):
        super().__init__(message, error_code="GENERATOR_SERVER_ERROR", details=details)
