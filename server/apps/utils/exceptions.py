"""
Error taxonomy for the coordinator services.

Services raise these; the JSON views translate them into responses with the
matching status code. Pure policy functions never raise them.
"""


class CoordinatorError(Exception):
    """Base class for errors a caller can act on"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        return {
            "success": False,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }

    def __repr__(self):
        return f"{self.__class__.__name__}(message='{self.message}')"


class NotFound(CoordinatorError):
    """A referenced entity does not exist"""
    status_code = 404
    code = "NOT_FOUND"


class Forbidden(CoordinatorError):
    """The actor lacks authority for this operation"""
    status_code = 403
    code = "FORBIDDEN"


class InvalidInput(CoordinatorError):
    """Malformed or out-of-range input"""
    status_code = 400
    code = "INVALID_INPUT"


class Conflict(CoordinatorError):
    """The entity is in a state that does not allow the transition"""
    status_code = 409
    code = "CONFLICT"


class PolicyViolation(CoordinatorError):
    # Reserved. Rate-cap overage is clamped, never raised.
    status_code = 422
    code = "POLICY_VIOLATION"
