"""
Errors raised by the permission services.

Every error carries a stable ``kind`` that the HTTP layer maps to a status
code, plus a human-readable message.
"""


class AuthorizationServiceError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateName(AuthorizationServiceError):
    kind = "duplicate_name"


class Forbidden(AuthorizationServiceError):
    kind = "forbidden"


class InUse(AuthorizationServiceError):
    kind = "in_use"


class InvalidName(AuthorizationServiceError):
    kind = "invalid_name"


class NotFound(AuthorizationServiceError):
    kind = "not_found"


class StoreError(AuthorizationServiceError):
    kind = "store_error"
