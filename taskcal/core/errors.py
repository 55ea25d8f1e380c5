class TaskCalError(Exception):
    """Base class for all application errors."""


class AuthError(TaskCalError):
    """Raised when credentials cannot be obtained or refreshed."""


class NotSignedInError(AuthError):
    """Raised when an operation needs a signed-in user and there is none."""


class StoreError(TaskCalError):
    """Raised when the task store rejects or fails a request."""


class CalendarError(TaskCalError):
    """Raised when the calendar API returns an error response."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code
