"""Error types raised by the API client and session store."""
from typing import Optional


class AgoraError(Exception):
    """Base class for client errors"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ValidationError(AgoraError):
    """Malformed client input, raised before any network call"""
    pass


class AuthError(AgoraError):
    """Rejected credentials or an expired/invalid token"""
    pass


class NotFoundError(AgoraError):
    """The requested resource does not exist"""
    pass


class NetworkError(AgoraError):
    """Backend unreachable, timed out, or answered with a non-JSON page"""
    pass


class ApiError(AgoraError):
    """Any other non-2xx answer from the backend"""
    pass
