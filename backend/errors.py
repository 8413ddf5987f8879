"""Failure kinds raised by the portal services.

Services raise these instead of HTTP errors; ``server.py`` maps each kind to a
status code and a ``{"detail", "kind"}`` body.
"""
from typing import Optional


class PortalError(Exception):
    kind = "PortalError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DuplicateEntry(PortalError):
    kind = "DuplicateEntry"

    def __init__(self, dimension: str, message: Optional[str] = None):
        super().__init__(message or f"Duplicate entry for {dimension}")
        self.dimension = dimension


class InvalidScore(PortalError):
    kind = "InvalidScore"

    def __init__(self, score: int, max_score: int):
        if score < 0:
            message = "Score cannot be negative"
        else:
            message = f"Score cannot exceed maximum score of {max_score}"
        super().__init__(message)
        self.score = score
        self.max_score = max_score


class NotFound(PortalError):
    kind = "NotFound"

    def __init__(self, entity: str, message: Optional[str] = None):
        super().__init__(message or f"{entity} not found")
        self.entity = entity


class Forbidden(PortalError):
    kind = "Forbidden"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class InvalidOperation(PortalError):
    kind = "InvalidOperation"


class AggregationInconsistency(PortalError):
    """The grade is durable but ``users.total_score`` could not be refreshed."""

    kind = "AggregationInconsistency"

    def __init__(self, user_id: int, cause: Optional[BaseException] = None):
        super().__init__(f"Total score for user {user_id} may be stale")
        self.user_id = user_id
        self.cause = cause
