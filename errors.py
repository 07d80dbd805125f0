"""
Error taxonomy

Each error carries the HTTP status it is reported with. Auth failure
messages are generic and never reveal whether an account exists.
"""


class ApiError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message


class ValidationError(ApiError):
    status_code = 400
    message = "Invalid input"


class InvalidReference(ValidationError):
    message = "Invalid object id"


class Unauthorized(ApiError):
    status_code = 401
    message = "Unauthorized access"


class Forbidden(ApiError):
    status_code = 403
    message = "Forbidden access"


class AccountBlocked(Forbidden):
    message = "Account is blocked"


class NotFound(ApiError):
    status_code = 404
    message = "Not found"


class Conflict(ApiError):
    status_code = 409
    message = "Already exists"


class StorageUnavailable(ApiError):
    status_code = 503
    message = "Storage unavailable"
