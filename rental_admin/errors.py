# --- rental_admin/errors.py ---


class ApiError(Exception):
    """Error carrying the HTTP status the envelope should be sent with."""

    status_code = 400

    def __init__(self, message, status_code=None, data=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.data = data


class ValidationError(ApiError):
    status_code = 400


class NotFoundError(ApiError):
    status_code = 404


class ConflictError(ApiError):
    status_code = 409
