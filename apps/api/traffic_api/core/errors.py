"""Domain error taxonomy.

Services raise these; main.py turns them into JSON responses of the form
{"detail": message} with the status code carried by the exception.
"""


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(ServiceError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Not authorized for this action"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidInput(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class NoData(ServiceError):
    """The request was valid but there is nothing to return (e.g. empty export)."""

    status_code = 400
    default_message = "No data to export"


class StorageError(ServiceError):
    """
    A database call failed.

    The message is always generic; details go to the server log only.
    """

    status_code = 500
