"""Simple, consistent API error handling."""

from typing import Any, Optional

from fastapi import HTTPException

from .errors import TubeDigestError


class APIError(HTTPException):
    """Simple API error with consistent format.

    All errors will be formatted as:
    {"success": false, "message": "error message", "data": null}
    """

    def __init__(self, status_code: int, message: str, data: Optional[Any] = None):
        """Create an API error.

        Args:
            status_code: HTTP status code
            message: Error message to display
            data: Optional payload returned alongside the message
        """
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.data = data


class ConflictError(APIError):
    """409 - Resource already exists."""

    def __init__(self, message: str):
        super().__init__(409, message)


class ServerError(APIError):
    """500 - Internal server error."""

    def __init__(self, message: str):
        super().__init__(500, message)


def from_pipeline_error(error: TubeDigestError, data: Optional[Any] = None) -> APIError:
    """Map a pipeline error to its HTTP-equivalent APIError."""
    return APIError(error.status_code, error.message, data)
