"""Error taxonomy shared by the repository, the auth layer and the routes.

Every error carries an HTTP status, a stable ``error`` code and a human
readable message. The application registers one handler that renders them
as ``{"error": ..., "message": ...}``.
"""


class ServiceError(Exception):
    status_code = 500
    error = "internal_error"
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    error = "validation_error"
    default_message = "Invalid request"


class NotFoundError(ServiceError):
    status_code = 404
    error = "not_found"
    default_message = "Resource not found"


class ConflictError(ServiceError):
    # Duplicate emails have always been reported as 400 by this API.
    status_code = 400
    error = "conflict"
    default_message = "Resource already exists"


class UnauthorizedError(ServiceError):
    status_code = 401
    error = "unauthorized"
    default_message = "Authentication required"


class InvalidTokenError(UnauthorizedError):
    error = "invalid_token"
    default_message = "Invalid or expired token"


class ForbiddenError(ServiceError):
    status_code = 403
    error = "forbidden"
    default_message = "Access denied"


class InternalError(ServiceError):
    pass


class ServiceUnavailableError(ServiceError):
    status_code = 503
    error = "service_unavailable"
    default_message = "Service unavailable"

    def __init__(self, message=None, error=None):
        super().__init__(message)
        if error:
            self.error = error
