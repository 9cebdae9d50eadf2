"""BeetleBase - breeder records, plan quotas and background import/export jobs."""

from .admin import AdminFacade
from .errors import (
    BeetleBaseError,
    CsvFormatError,
    ExternalServiceFailure,
    InvalidPrecondition,
    NotFound,
    QuotaExceeded,
    ValidationError,
)
from .records import RecordStore
from .session import ActionResult, Session, create_session

__version__ = "0.1.0"

__all__ = [
    "create_session",
    "Session",
    "ActionResult",
    "RecordStore",
    "AdminFacade",
    # Errors
    "BeetleBaseError",
    "QuotaExceeded",
    "NotFound",
    "InvalidPrecondition",
    "ExternalServiceFailure",
    "ValidationError",
    "CsvFormatError",
]
