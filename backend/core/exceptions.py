"""Application error type.

Every domain failure is raised as an ``ApiError`` carrying the HTTP status code
and a human readable message. The handlers registered in ``main`` turn it into
the standard error envelope ``{statusCode, message, success, errors}``.
"""
from typing import Any, List, Optional

from fastapi import HTTPException, status


class ApiError(HTTPException):
    """Structured HTTP error raised by services, dependencies and routes."""

    def __init__(
        self,
        status_code: int,
        message: str = "Something went wrong",
        errors: Optional[List[Any]] = None,
        headers: Optional[dict] = None,
    ):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.message = message
        self.errors = list(errors or [])

    def __str__(self) -> str:
        return f"{self.status_code}: {self.message}"


def unauthorized(message: str = "Unauthorized request") -> ApiError:
    return ApiError(status.HTTP_401_UNAUTHORIZED, message)


def bad_request(message: str) -> ApiError:
    return ApiError(status.HTTP_400_BAD_REQUEST, message)


def conflict(message: str) -> ApiError:
    return ApiError(status.HTTP_409_CONFLICT, message)


def not_found(message: str) -> ApiError:
    return ApiError(status.HTTP_404_NOT_FOUND, message)


def internal_error(message: str = "Internal server error") -> ApiError:
    return ApiError(status.HTTP_500_INTERNAL_SERVER_ERROR, message)
