class ApiError(Exception):
    """Base class for errors that are reported straight back to the caller."""

    status_code = 500
    default_message = 'Server error'

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors or []

    def to_dict(self):
        payload = {'error': self.message}
        if self.errors:
            payload['errors'] = self.errors
        return payload


class ValidationError(ApiError):
    status_code = 400
    default_message = 'Validation failed'

    @classmethod
    def for_field(cls, field, message):
        return cls(message, errors=[{'field': field, 'message': message}])


class Unauthorized(ApiError):
    status_code = 401
    default_message = 'Authentication required'


class AccessDenied(ApiError):
    status_code = 403
    default_message = 'Access denied'


class NotFound(ApiError):
    status_code = 404
    default_message = 'Not found'


class Conflict(ApiError):
    status_code = 409
    default_message = 'Conflict'
