"""Job submission service.

Binds job records to the work they stand for:
- CSV imports parse the uploaded payload into the RecordStore
- Exports render a pedigree or QR-label PDF into the export directory
- Plain `submit` keeps the simulated behaviour (weighted random imports,
  deterministic exports) for jobs that carry no payload

The work callable of each job is remembered until the job succeeds, so
that a retry or a resume after cancellation re-runs the same work.
"""

from functools import partial
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from ..errors import InvalidPrecondition, NotFound, ValidationError
from ..export import write_pedigree_pdf, write_qr_labels_pdf
from ..importer import MAX_CSV_BYTES, run_import, validate_import_options, validate_upload
from ..records import RecordStore
from ..schemas import (
    ExportArtifact,
    Job,
    JobOutcome,
    EXPORT_TYPE_PEDIGREE_PDF,
    EXPORT_TYPE_QR_LABELS,
    IMPORT_MODE_SKIP,
    IMPORT_TYPE_INDIVIDUALS,
    JOB_KIND_EXPORT,
    JOB_KIND_IMPORT,
)
from .runner import JobRunner, Work
from .store import JobStore


VALID_EXPORT_TYPES = {EXPORT_TYPE_PEDIGREE_PDF, EXPORT_TYPE_QR_LABELS}


class JobService:
    """Submits, retries and cancels import/export jobs."""

    def __init__(
        self,
        job_store: JobStore,
        runner: JobRunner,
        record_store: RecordStore,
        export_dir: Path = Path("data/exports"),
        download_base_url: str = "/downloads",
        public_base_url: str = "https://beetlebase.app",
        max_csv_bytes: int = MAX_CSV_BYTES,
    ):
        self.job_store = job_store
        self.runner = runner
        self.record_store = record_store
        self.export_dir = Path(export_dir)
        self.download_base_url = download_base_url.rstrip("/")
        self.public_base_url = public_base_url
        self.max_csv_bytes = max_csv_bytes
        self._work: Dict[str, Work] = {}

    # =========================================================================
    # Submission
    # =========================================================================

    def submit(self, kind: str, job_type: str, owner_id: Optional[str] = None) -> Job:
        """Submit a job with simulated processing (no payload)."""
        job = self.job_store.submit(kind, job_type, owner_id=owner_id)
        self.runner.simulate_processing(job.id)
        return self.job_store.get_job(job.id)

    def submit_import(
        self,
        filename: str,
        content: bytes,
        import_type: str = IMPORT_TYPE_INDIVIDUALS,
        import_mode: str = IMPORT_MODE_SKIP,
        owner_id: Optional[str] = None,
    ) -> Job:
        """
        Queue a CSV import.

        The upload is checked before any job exists; parsing happens when
        the runner processes the job.

        Raises:
            ValidationError: bad extension, empty or oversized file, or
                unknown import type/mode
        """
        validate_upload(filename, len(content), self.max_csv_bytes)
        validate_import_options(import_type, import_mode)

        job = self.job_store.submit(JOB_KIND_IMPORT, import_type, owner_id=owner_id)
        work = partial(self._run_import, content=content, import_type=import_type, import_mode=import_mode)
        self._start(job.id, work)

        logger.info(f"Queued import {job.id}: {filename} ({len(content)} bytes, mode={import_mode})")
        return self.job_store.get_job(job.id)

    def submit_export(self, export_type: str, individual_ids: List[str], owner_id: Optional[str] = None) -> Job:
        """
        Queue a PDF export for the given individuals.

        Raises:
            ValidationError: unknown export type or empty selection
            NotFound: if an individual id does not exist
        """
        if export_type not in VALID_EXPORT_TYPES:
            raise ValidationError(
                f"Unknown export type '{export_type}'",
                [{"field": "export_type", "message": f"must be one of {sorted(VALID_EXPORT_TYPES)}"}],
            )
        if not individual_ids:
            raise ValidationError(
                "Select at least one individual to export",
                [{"field": "individual_ids", "message": "must not be empty"}],
            )
        for individual_id in individual_ids:
            self.record_store.get_individual(individual_id)

        job = self.job_store.submit(JOB_KIND_EXPORT, export_type, owner_id=owner_id)
        work = partial(self._run_export, export_type=export_type, individual_ids=list(individual_ids))
        self._start(job.id, work)
        return self.job_store.get_job(job.id)

    # =========================================================================
    # Retry / cancel
    # =========================================================================

    def retry(self, job_id: str) -> Job:
        """
        Retry a failed job, re-running its original work.

        Raises:
            InvalidPrecondition: if the job has not failed or is in flight
            NotFound: if the job does not exist
        """
        if self.runner.is_in_flight(job_id):
            raise InvalidPrecondition(f"Job {job_id} is already being processed")

        self.job_store.retry(job_id)
        self.runner.simulate_processing(job_id, work=self._work.get(job_id))
        return self.job_store.get_job(job_id)

    def resume(self, job_id: str) -> Job:
        """
        Hand a non-terminal job back to the runner with its stored work.

        Raises:
            InvalidPrecondition: if the job is terminal or already in flight
            NotFound: if the job does not exist
        """
        self.runner.simulate_processing(job_id, work=self._work.get(job_id))
        return self.job_store.get_job(job_id)

    def cancel(self, job_id: str) -> bool:
        return self.runner.cancel(job_id)

    def get_job(self, job_id: str) -> Job:
        return self.job_store.get_job(job_id)

    # =========================================================================
    # Work
    # =========================================================================

    def _start(self, job_id: str, work: Work) -> None:
        tracked = partial(self._release_on_success, job_id=job_id, work=work)
        self._work[job_id] = tracked
        self.runner.simulate_processing(job_id, work=tracked)

    def _release_on_success(self, job: Job, job_id: str, work: Work) -> JobOutcome:
        outcome = work(job)
        if outcome.succeeded:
            self._work.pop(job_id, None)
        return outcome

    def _run_import(self, job: Job, content: bytes, import_type: str, import_mode: str) -> JobOutcome:
        self.job_store.update_progress(job.id, f"Importing {import_type} ({len(content)} bytes)...")
        report = run_import(self.record_store, content, import_type, import_mode)
        return JobOutcome(succeeded=True, result=report.summary, report=report)

    def _run_export(self, job: Job, export_type: str, individual_ids: List[str]) -> JobOutcome:
        self.job_store.update_progress(job.id, f"Rendering {len(individual_ids)} individuals...")
        individuals = []
        for individual_id in individual_ids:
            try:
                individuals.append(self.record_store.get_individual(individual_id))
            except NotFound:
                logger.warning(f"Export {job.id}: individual {individual_id} no longer exists, skipping")

        filename = f"{export_type}_{job.id}.pdf"
        output_path = self.export_dir / filename

        if export_type == EXPORT_TYPE_QR_LABELS:
            write_qr_labels_pdf(individuals, output_path, self.public_base_url)
        else:
            write_pedigree_pdf(individuals, output_path)

        artifact = ExportArtifact(
            filename=filename,
            path=str(output_path),
            download_url=f"{self.download_base_url}/{filename}",
        )
        return JobOutcome(succeeded=True, result="Download", artifact=artifact)
