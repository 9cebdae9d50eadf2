"""Pydantic models for BeetleBase records, users and jobs.

Records:
- Individual: a tracked specimen with ordered photos and measurements
- User: an account with status (Active/Suspended) and plan (free/pro)
- Job: an import or export unit of background work

Job lifecycle:
    pending -> running -> succeeded | completed | failed

`pending` is only used for freshly queued export jobs awaiting pickup;
import jobs start directly in `running`. Imports end in `succeeded`,
exports in `completed`.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Plan Constants
# ============================================================================

PLAN_FREE = "free"
PLAN_PRO = "pro"

VALID_PLANS = {PLAN_FREE, PLAN_PRO}


# ============================================================================
# User Status Constants
# ============================================================================

USER_STATUS_ACTIVE = "Active"
USER_STATUS_SUSPENDED = "Suspended"

VALID_USER_STATUSES = {USER_STATUS_ACTIVE, USER_STATUS_SUSPENDED}


# ============================================================================
# Job Constants
# ============================================================================

JOB_KIND_IMPORT = "import"
JOB_KIND_EXPORT = "export"

JOB_STATUS_PENDING = "pending"
JOB_STATUS_RUNNING = "running"
JOB_STATUS_SUCCEEDED = "succeeded"
JOB_STATUS_COMPLETED = "completed"
JOB_STATUS_FAILED = "failed"

VALID_JOB_STATUSES = {
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
}
TERMINAL_JOB_STATUSES = {JOB_STATUS_SUCCEEDED, JOB_STATUS_COMPLETED, JOB_STATUS_FAILED}

IMPORT_TYPE_INDIVIDUALS = "individuals"
IMPORT_TYPE_MEASUREMENTS = "measurements"

EXPORT_TYPE_PEDIGREE_PDF = "pedigree_pdf"
EXPORT_TYPE_QR_LABELS = "qr_labels"

IMPORT_MODE_SKIP = "skip"
IMPORT_MODE_OVERWRITE = "overwrite"
IMPORT_MODE_NEW_ASSIGNMENT = "new_assignment"

VALID_IMPORT_MODES = {IMPORT_MODE_SKIP, IMPORT_MODE_OVERWRITE, IMPORT_MODE_NEW_ASSIGNMENT}


class Stage(str, Enum):
    EGG = "egg"
    LARVA = "larva"
    PUPA = "pupa"
    ADULT = "adult"
    UNKNOWN = "unknown"


class Sex(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Specimen Records
# ============================================================================

class Photo(BaseModel):
    """A photo of an individual. Immutable once appended."""
    id: str
    url: str
    thumb_url: str
    created_at: datetime
    is_primary: bool = False


class Measurement(BaseModel):
    """A growth measurement. Insertion order is not chronological."""
    id: str
    measured_at: datetime
    weight_g: Optional[float] = Field(None, ge=0)
    length_mm: Optional[float] = Field(None, ge=0)
    jaw_width_mm: Optional[float] = Field(None, ge=0)
    note: Optional[str] = None

    @field_validator("measured_at", mode="before")
    @classmethod
    def _parse_measured_at(cls, value):
        # Accept bare dates ("2024-05-15") as midnight UTC
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, str) and len(value.strip()) == 10:
            parsed = date.fromisoformat(value.strip())
            return datetime(parsed.year, parsed.month, parsed.day, tzinfo=timezone.utc)
        return value

    @field_validator("measured_at")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        return _as_utc(value)


class IndividualDraft(BaseModel):
    """An individual record before registration (no id, photos or measurements)."""
    individual_code: str = Field(..., min_length=1)
    species_common: str = Field(..., min_length=1)
    species_scientific: str = Field(..., min_length=1)
    stage: Stage = Stage.UNKNOWN
    sex: Sex = Sex.UNKNOWN
    introduced_date: date
    birth_date: Optional[date] = None
    line_name: Optional[str] = None
    parent_code_m: Optional[str] = None
    parent_code_f: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("individual_code", "species_common", "species_scientific")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("birth_date", "line_name", "parent_code_m", "parent_code_f", "notes", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class Individual(IndividualDraft):
    """A registered specimen owned by the RecordStore."""
    id: str
    photos: List[Photo] = Field(default_factory=list)
    measurements: List[Measurement] = Field(default_factory=list)
    public_profile_url: Optional[str] = None


# ============================================================================
# Accounts
# ============================================================================

class User(BaseModel):
    """User account with status and plan information."""
    id: str
    email: str
    status: str = USER_STATUS_ACTIVE
    plan: str = PLAN_FREE


# ============================================================================
# Jobs
# ============================================================================

class ExportArtifact(BaseModel):
    """A generated export file."""
    filename: str
    path: Optional[str] = None
    download_url: str


class RowError(BaseModel):
    """A per-row CSV validation error (line numbers count the header as 1)."""
    line: int
    field: Optional[str] = None
    message: str


class ImportReport(BaseModel):
    """Outcome of a CSV import."""
    import_type: str
    import_mode: str
    total_rows: int = 0
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[RowError] = Field(default_factory=list)

    @property
    def succeeded_rows(self) -> int:
        return self.imported + self.updated + self.skipped

    @property
    def summary(self) -> str:
        return f"{self.succeeded_rows}/{self.total_rows} success"


class Job(BaseModel):
    """A background import or export job.

    Status lifecycle:
    - pending: export queued, waiting for worker pickup
    - running: being processed (imports start here)
    - succeeded: import finished (possibly with per-row errors)
    - completed: export finished, artifact available
    - failed: processing failed; may be retried
    """
    id: str
    kind: str
    type: str
    status: str
    submitted_at: datetime
    result: str = ""
    owner_id: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    attempts: int = 1
    artifact: Optional[ExportArtifact] = None
    report: Optional[ImportReport] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class JobOutcome(BaseModel):
    """What a unit of job work produced."""
    succeeded: bool
    result: str
    artifact: Optional[ExportArtifact] = None
    report: Optional[ImportReport] = None
