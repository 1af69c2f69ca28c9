# app/errors.py


class AccessError(Exception):
    """
    Base for every error the core surfaces outward.
    `status_code` is the HTTP status the boundary layer maps it to.
    """
    status_code = 500

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path


class InvalidPath(AccessError):
    """Path escapes the root or is syntactically unusable."""
    status_code = 400


class Forbidden(AccessError):
    """Path is not covered by any permitted prefix."""
    status_code = 403


class Unauthorized(AccessError):
    """Missing, stale or invalidated session, or a bad credential."""
    status_code = 401


class StoreIOError(AccessError):
    """A backing file could not be read or written."""
    status_code = 500
