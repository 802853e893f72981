"""Application exception types and the error payloads jobs and segments return."""

from app.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


def not_found() -> ApiError:
    # Missing and foreign resources share one body so ownership never leaks.
    return ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")


def invalid_input(message: str, details: dict | None = None) -> ApiError:
    return ApiError(status_code=400, code="INVALID_INPUT", message=message, details=details)


def quota_exceeded(remaining: int = 0) -> ApiError:
    return ApiError(
        status_code=403,
        code="QUOTA_EXCEEDED",
        message="Generation allowance exhausted",
        details={"remaining": remaining},
    )


def conflict(code: str, message: str, details: dict | None = None) -> ApiError:
    return ApiError(status_code=409, code=code, message=message, details=details)


__all__ = ["ApiError", "conflict", "invalid_input", "not_found", "quota_exceeded"]
