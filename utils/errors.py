class ServiceError(Exception):
    """Base for errors raised by the service layer and serialized at the request boundary."""

    status_code = 500
    code = "server_error"

    def __init__(self, message: str = None, details=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"


class InvalidPlan(ValidationError):
    code = "invalid_plan"


class InvalidState(ServiceError):
    status_code = 400
    code = "invalid_state"


class Forbidden(ServiceError):
    status_code = 403
    code = "forbidden"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"


class Conflict(ServiceError):
    status_code = 409
    code = "conflict"
