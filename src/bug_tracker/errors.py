"""Error kinds raised by the repositories and dependencies.

Every error carries the HTTP status it maps to; the app registers a single
handler for ``BugTrackerError`` that renders ``{"error": message}``.
"""

from typing import Any


class BugTrackerError(Exception):
    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class ConfigurationError(BugTrackerError):
    """Required settings are missing; the process cannot start."""


class InputError(BugTrackerError):
    status_code = 400


class InvalidIdError(InputError):
    def __init__(self, value: Any = None):
        super().__init__("Invalid ObjectId string", value=value)


class DuplicateEmailError(InputError):
    def __init__(self, email: str):
        super().__init__("User with this email already exists", email=email)


class InvalidTransitionError(InputError):
    status_code = 422

    def __init__(self, current: str, new: str):
        super().__init__(
            f"Invalid status transition {current!r} -> {new!r}", current=current, new=new
        )


class AuthenticationError(BugTrackerError):
    status_code = 401


class AuthorizationError(BugTrackerError):
    status_code = 403


class NotFoundError(BugTrackerError):
    status_code = 404


class PersistenceError(BugTrackerError):
    status_code = 500
