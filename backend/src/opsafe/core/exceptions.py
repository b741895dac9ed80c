"""
Domain Exceptions
Each error carries the HTTP status it maps to
"""
from fastapi import status


class OpSafeError(Exception):
    """Base class for errors raised by the services"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidIdentifierError(OpSafeError, ValueError):
    """An id is not a valid ObjectId"""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad Request"


class NotFoundError(OpSafeError):
    """Document missing, owned by another organization, or soft-deleted"""

    status_code = status.HTTP_404_NOT_FOUND
    error = "Not Found"


class ConflictError(OpSafeError):
    status_code = status.HTTP_409_CONFLICT
    error = "Conflict"


class InvalidStatusTransitionError(ConflictError):
    """Maintenance order status change not allowed by the transition table"""

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change maintenance order status from '{current}' to '{requested}'"
        )
        self.current = current
        self.requested = requested


class EquipmentStateConflictError(ConflictError):
    """Equipment kept changing underneath a state write"""
