"""
Failure taxonomy.

Every error the API raises on purpose is one of these. They are
``HTTPException`` subclasses so FastAPI renders them as ``{"detail": ...}``
with the right status code; anything else reaching the boundary becomes a
generic 500 (see ``staroracle.main``).
"""

from fastapi import HTTPException, status


class StarOracleError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Internal server error."

    def __init__(self, detail=None, headers=None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(StarOracleError):
    """Malformed input. Detected before any write."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."


class Unauthenticated(StarOracleError):
    """Missing, invalid or expired credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized. Please login."

    def __init__(self, detail=None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(StarOracleError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Access denied. Insufficient permissions."


class NotFound(StarOracleError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."


class Conflict(StarOracleError):
    """Uniqueness violation."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists."


class UpstreamFailure(StarOracleError):
    """NeoWs unreachable, non-200 or unparseable."""

    default_detail = "External data source unavailable."


class PersistenceFailure(StarOracleError):
    default_detail = "Storage unavailable. Try again shortly."
