"""
Error Taxonomy

Every failure surfaced by the order subsystem is one of four kinds.
The HTTP layer maps them onto status codes; services raise them directly.

    NotFoundError          404  order, menu item or option does not exist
                                (also used for review ownership mismatch)
    InvalidArgumentError   400  malformed request, rejected before any write
    InternalError          500  store or collaborator contract violation
    PermissionDeniedError  403  explicit access check failed
"""


class OrderingError(Exception):
    """Base class for all domain errors."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "detail": self.message}


class NotFoundError(OrderingError):
    kind = "not_found"
    status_code = 404


class InvalidArgumentError(OrderingError):
    kind = "invalid_argument"
    status_code = 400


class InternalError(OrderingError):
    kind = "internal"
    status_code = 500


class PermissionDeniedError(OrderingError):
    kind = "permission_denied"
    status_code = 403
