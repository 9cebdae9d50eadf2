"""Error taxonomy for BeetleBase.

Every domain failure is a subclass of BeetleBaseError carrying a stable
`code`. Stores and services raise these; the session boundary
(see beetlebase.session) converts them into ActionResult values so that
nothing reaches a global handler.
"""

from typing import Any, Dict, List, Optional


# Error codes
ERROR_QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
ERROR_NOT_FOUND = "NOT_FOUND"
ERROR_INVALID_PRECONDITION = "INVALID_PRECONDITION"
ERROR_EXTERNAL_SERVICE = "EXTERNAL_SERVICE_FAILURE"
ERROR_VALIDATION = "VALIDATION_ERROR"


class BeetleBaseError(Exception):
    """Base class for all domain errors."""

    code = "BEETLEBASE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class QuotaExceeded(BeetleBaseError):
    """Raised when a plan quota (individuals, photos) is already reached."""

    code = ERROR_QUOTA_EXCEEDED

    def __init__(self, message: str, resource: str, plan: str, limit: Optional[int], used: int):
        super().__init__(message)
        self.resource = resource
        self.plan = plan
        self.limit = limit
        self.used = used

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail.update({
            "resource": self.resource,
            "plan": self.plan,
            "limit": {"max": self.limit, "used": self.used},
        })
        return detail


class NotFound(BeetleBaseError):
    """Raised when an operation references an id absent from the store."""

    code = ERROR_NOT_FOUND

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} '{identifier}' not found")
        self.kind = kind
        self.identifier = identifier


class InvalidPrecondition(BeetleBaseError):
    """Raised when an operation is not valid in the current state."""

    code = ERROR_INVALID_PRECONDITION


class ExternalServiceFailure(BeetleBaseError):
    """Raised when an external collaborator (LLM, job backend) fails."""

    code = ERROR_EXTERNAL_SERVICE


class ValidationError(BeetleBaseError):
    """Raised for malformed input: missing form fields, bad CSV rows.

    `errors` holds per-field details as dicts with `field` and `message`
    (and `line` for CSV rows).
    """

    code = ERROR_VALIDATION

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["errors"] = self.errors
        return detail


class CsvFormatError(ValidationError):
    """Raised when a CSV file cannot be parsed at all."""


def field_errors(exc) -> List[Dict[str, Any]]:
    """Flatten a pydantic ValidationError into field/message dicts."""
    return [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
