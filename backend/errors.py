class FridayError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(FridayError):
    status_code = 404


class ValidationFailed(FridayError):
    status_code = 400
