# lanka_basket/domain/errors.py


class ShopError(Exception):
    """Base for errors that end up as a JSON error body."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ShopError):
    status_code = 400


class AuthenticationError(ShopError):
    status_code = 401


class AuthorizationError(ShopError):
    status_code = 403


class NotFoundError(ShopError):
    status_code = 404


class ConflictError(ShopError):
    """Raised when a payment event was already applied. Callers treat it as success."""

    status_code = 409


class UpstreamError(ShopError):
    status_code = 502
