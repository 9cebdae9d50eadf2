"""In-memory job queue and user accounts.

The JobStore serves as both job queue and results storage.
Status lifecycle: pending -> running -> succeeded / completed / failed

Transitions are guarded: completing or failing a job that is not running,
or retrying a job that has not failed, raises InvalidPrecondition and
leaves the job unchanged. Terminal jobs only move again through retry.
"""

from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..errors import InvalidPrecondition, NotFound
from ..schemas import (
    ExportArtifact,
    ImportReport,
    Job,
    User,
    JOB_KIND_EXPORT,
    JOB_KIND_IMPORT,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
    USER_STATUS_ACTIVE,
    USER_STATUS_SUSPENDED,
)
from ..utils import generate_id, truncate_message, utcnow


MESSAGE_QUEUED = "Queued"
MESSAGE_PROCESSING = "Processing..."
MESSAGE_RETRYING = "retrying"

VALID_JOB_KINDS = {JOB_KIND_IMPORT, JOB_KIND_EXPORT}


class JobStore:
    """Owns job records and user accounts."""

    def __init__(self, users: Optional[Iterable[User]] = None, jobs: Optional[Iterable[Job]] = None):
        self._users: Dict[str, User] = {}
        self._jobs: Dict[str, Job] = {}

        for user in users or []:
            self._users[user.id] = user.model_copy(deep=True)
        for job in jobs or []:
            self._jobs[job.id] = job.model_copy(deep=True)

    # =========================================================================
    # Job Queue Operations
    # =========================================================================

    def submit(self, kind: str, job_type: str, owner_id: Optional[str] = None) -> Job:
        """
        Create a new job.

        Export jobs are queued as 'pending' until a worker picks them up;
        import jobs start directly in 'running'.

        Args:
            kind: 'import' or 'export'
            job_type: Free-text category (e.g. 'individuals', 'pedigree_pdf')
            owner_id: Submitting user, if known

        Returns:
            The created job
        """
        if kind not in VALID_JOB_KINDS:
            raise ValueError(f"Unknown job kind '{kind}'. Valid kinds: {sorted(VALID_JOB_KINDS)}")

        now = utcnow()
        if kind == JOB_KIND_EXPORT:
            status, result, started_at = JOB_STATUS_PENDING, MESSAGE_QUEUED, None
        else:
            status, result, started_at = JOB_STATUS_RUNNING, MESSAGE_PROCESSING, now

        job = Job(
            id=generate_id(f"job-{kind[0]}"),
            kind=kind,
            type=job_type,
            status=status,
            submitted_at=now,
            started_at=started_at,
            result=result,
            owner_id=owner_id,
        )
        self._jobs[job.id] = job

        logger.info(f"Submitted {kind} job {job.id} ({job_type}) with status={status}")
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Job:
        return self._find_job(job_id).model_copy(deep=True)

    def list_jobs(self, kind: Optional[str] = None, status: Optional[str] = None) -> List[Job]:
        """Jobs newest first, optionally filtered by kind and status."""
        jobs = [
            job for job in self._jobs.values()
            if (kind is None or job.kind == kind) and (status is None or job.status == status)
        ]
        jobs.sort(key=lambda j: j.submitted_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs]

    def mark_running(self, job_id: str, message: str = MESSAGE_PROCESSING) -> Job:
        """
        Move a pending job to 'running' (worker pickup).

        Raises:
            InvalidPrecondition: if the job is not pending
        """
        job = self._find_job(job_id)
        self._require_status(job, {JOB_STATUS_PENDING}, "start")

        job.status = JOB_STATUS_RUNNING
        job.started_at = utcnow()
        job.result = message

        logger.info(f"Job {job_id} picked up, status=running")
        return job.model_copy(deep=True)

    def update_progress(self, job_id: str, message: str) -> None:
        """Update the progress message of a running job (ignored otherwise)."""
        job = self._find_job(job_id)
        if job.status == JOB_STATUS_RUNNING:
            job.result = message
            logger.debug(f"Job {job_id} progress: {message}")

    def complete(
        self,
        job_id: str,
        result: str,
        artifact: Optional[ExportArtifact] = None,
        report: Optional[ImportReport] = None,
    ) -> Job:
        """
        Mark a running job as successfully finished.

        Imports end in 'succeeded', exports in 'completed'.

        Raises:
            InvalidPrecondition: if the job is not running
        """
        job = self._find_job(job_id)
        self._require_status(job, {JOB_STATUS_RUNNING}, "complete")

        job.status = JOB_STATUS_COMPLETED if job.kind == JOB_KIND_EXPORT else JOB_STATUS_SUCCEEDED
        job.finished_at = utcnow()
        job.result = result
        job.artifact = artifact
        job.report = report

        logger.info(f"Job {job_id} {job.status}: {result}")
        return job.model_copy(deep=True)

    def fail(self, job_id: str, error_message: str) -> Job:
        """
        Mark a running job as failed.

        Args:
            job_id: Job identifier
            error_message: Error description (truncated to 2000 chars)

        Raises:
            InvalidPrecondition: if the job is not running
        """
        job = self._find_job(job_id)
        self._require_status(job, {JOB_STATUS_RUNNING}, "fail")

        job.status = JOB_STATUS_FAILED
        job.finished_at = utcnow()
        job.result = truncate_message(error_message)
        job.artifact = None

        logger.error(f"Failed job {job_id}: {job.result[:100]}")
        return job.model_copy(deep=True)

    def retry(self, job_id: str) -> Job:
        """
        Put a failed job back into 'running'.

        Raises:
            InvalidPrecondition: if the job has not failed
        """
        job = self._find_job(job_id)
        self._require_status(job, {JOB_STATUS_FAILED}, "retry")

        job.status = JOB_STATUS_RUNNING
        job.result = MESSAGE_RETRYING
        job.started_at = utcnow()
        job.finished_at = None
        job.report = None
        job.attempts += 1

        logger.info(f"Retrying job {job_id} (attempt {job.attempts})")
        return job.model_copy(deep=True)

    def count_jobs(self, status: str) -> int:
        return sum(1 for job in self._jobs.values() if job.status == status)

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFound("User", user_id)
        return user.model_copy(deep=True)

    def list_users(self) -> List[User]:
        return [user.model_copy(deep=True) for user in self._users.values()]

    def search_users(self, term: str = "", status: Optional[str] = None, plan: Optional[str] = None) -> List[User]:
        """Case-insensitive substring match over email, with optional exact filters."""
        needle = (term or "").strip().lower()
        return [
            user.model_copy(deep=True)
            for user in self._users.values()
            if needle in user.email.lower()
            and (status is None or user.status == status)
            and (plan is None or user.plan == plan)
        ]

    def toggle_user_status(self, user_id: str) -> User:
        """Flip Active <-> Suspended."""
        user = self._users.get(user_id)
        if user is None:
            raise NotFound("User", user_id)

        user.status = USER_STATUS_SUSPENDED if user.status == USER_STATUS_ACTIVE else USER_STATUS_ACTIVE

        logger.info(f"User {user.email} is now {user.status}")
        return user.model_copy(deep=True)

    # =========================================================================
    # Internals
    # =========================================================================

    def _find_job(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFound("Job", job_id)
        return job

    @staticmethod
    def _require_status(job: Job, allowed: set, action: str) -> None:
        if job.status not in allowed:
            raise InvalidPrecondition(
                f"Cannot {action} job {job.id}: status is '{job.status}', "
                f"expected {' or '.join(sorted(allowed))}"
            )
