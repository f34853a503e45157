"""
Exceptions raised by the hospital API client.
Caught by the booking views and the confirmation flow.
"""


class ApiError(Exception):
    """Raised when a call to the hospital API fails for any reason."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self):
        return self.message


class ApiAuthError(ApiError):
    """Raised on 401/403 responses (missing or expired token)."""
    pass
