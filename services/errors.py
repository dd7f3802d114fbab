"""
Error Taxonomy
Version: 1.0

Exceptions raised by the service layer. main.py maps them to HTTP responses.
NO DEPENDENCIES on other services.
"""

from typing import Any, Dict, List, Optional


class BackOfficeError(Exception):
    """Base class for all service-layer errors."""

    code = "BACKOFFICE_ERROR"

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            payload["errors"] = self.details
        return payload


class ValidationError(BackOfficeError):
    """Malformed booking/invoice/expense input. Blocks the submission."""

    code = "VALIDATION_ERROR"

    @classmethod
    def from_pydantic(cls, exc) -> "ValidationError":
        details = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        first = details[0]["message"] if details else "Invalid input"
        return cls(first, details)


class NotFoundError(BackOfficeError):
    """Operation on a missing id."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class TransientStoreError(BackOfficeError):
    """Network or remote store failure. The caller may retry manually."""

    code = "STORE_UNAVAILABLE"


class SideEffectFailure(BackOfficeError):
    """Notification failure. Logged, never surfaced to the user."""

    code = "SIDE_EFFECT_FAILED"
