from typing import Optional


class StorefrontError(ValueError):
    """Base for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, *, field: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(StorefrontError):
    status_code = 400


class AuthorizationError(StorefrontError):
    status_code = 401


class NotFoundError(StorefrontError):
    status_code = 404


class StateConflictError(StorefrontError):
    status_code = 409


class ExternalGatewayError(StorefrontError):
    """Gateway unreachable or answered unexpectedly. Safe to retry."""

    status_code = 502
