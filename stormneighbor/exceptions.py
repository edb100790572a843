"""
Error taxonomy shared by every layer
"""
from typing import Any, Dict, List, Optional


class StormNeighborError(Exception):
    """Base error carrying the HTTP status it maps to"""

    status: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or []


class ValidationError(StormNeighborError):
    """Malformed or missing input; details hold {field, message} entries"""

    status = 400
    code = "validation_error"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls("Validation failed", [{"field": field, "message": message}])


class NotFoundError(StormNeighborError):
    """Unknown entity, or one the caller does not own"""

    status = 404
    code = "not_found"


class DatastoreError(StormNeighborError):
    """Connection or query failure in the relational store"""

    status = 500
    code = "datastore_error"
