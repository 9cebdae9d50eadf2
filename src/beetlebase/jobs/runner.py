"""Job runner for BeetleBase.

Simulates the out-of-band worker that processes import and export jobs.
Instead of polling a queue, the runner schedules delayed transitions on
an injected Scheduler:

    pending --(pickup delay)--> running --(processing delay)--> terminal

Each job has at most one in-flight simulation. Work callables decide the
terminal state; exceptions raised by work are caught and recorded as a
failed job, exactly like a crashed worker run. Without work, import jobs
use an injectable outcome decision (weighted random by default) and
export jobs complete deterministically with an artifact reference.

Usage:
    scheduler = ManualScheduler()
    runner = JobRunner(store, scheduler, decide_outcome=lambda job: True)
    job = store.submit("import", "individuals")
    runner.simulate_processing(job.id)
    scheduler.advance(2.0)
"""

import random
import traceback
from typing import Callable, Dict, Optional

from loguru import logger

from ..errors import InvalidPrecondition
from ..schemas import (
    ExportArtifact,
    Job,
    JobOutcome,
    JOB_KIND_EXPORT,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
)
from .scheduler import ScheduledCall, Scheduler
from .store import JobStore


Work = Callable[[Job], JobOutcome]
OutcomeDecision = Callable[[Job], bool]

DEFAULT_SUCCESS_RATE = 0.7

SIMULATED_IMPORT_FAILURES = [
    "Invalid CSV format. Check the column headers against the template.",
    "Invalid date format on line 15",
    "Unknown stage value on line 4",
]


def weighted_outcome(success_rate: float = DEFAULT_SUCCESS_RATE, rng: Optional[random.Random] = None) -> OutcomeDecision:
    """
    Build an outcome decision that succeeds with the given probability.

    Args:
        success_rate: Probability of success (0-1)
        rng: Random source (pass a seeded Random for reproducible runs)
    """
    if not 0.0 <= success_rate <= 1.0:
        raise ValueError(f"success_rate must be between 0 and 1, got {success_rate}")
    source = rng or random.Random()

    def decide(job: Job) -> bool:
        return source.random() < success_rate

    return decide


def always_succeed(job: Job) -> bool:
    return True


def always_fail(job: Job) -> bool:
    return False


class JobRunner:
    """Schedules simulated processing for jobs held in a JobStore.

    Attributes:
        import_delay: Seconds an import job spends running
        export_pickup_delay: Seconds an export job waits in 'pending'
        export_delay: Seconds an export job spends running
    """

    def __init__(
        self,
        job_store: JobStore,
        scheduler: Scheduler,
        decide_outcome: Optional[OutcomeDecision] = None,
        rng: Optional[random.Random] = None,
        import_delay: float = 2.0,
        export_pickup_delay: float = 1.0,
        export_delay: float = 3.0,
        download_base_url: str = "/downloads",
    ):
        self.job_store = job_store
        self.scheduler = scheduler
        self._rng = rng or random.Random()
        self.decide_outcome = decide_outcome or weighted_outcome(rng=self._rng)
        self.import_delay = import_delay
        self.export_pickup_delay = export_pickup_delay
        self.export_delay = export_delay
        self.download_base_url = download_base_url.rstrip("/")
        self._in_flight: Dict[str, ScheduledCall] = {}

    # =========================================================================
    # Public API
    # =========================================================================

    def is_in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def simulate_processing(self, job_id: str, delay: Optional[float] = None, work: Optional[Work] = None) -> None:
        """
        Schedule the job's transition to a terminal state.

        Args:
            job_id: Job to process (must be pending or running)
            delay: Processing delay in seconds (defaults per job kind)
            work: Callable producing the outcome; simulated when omitted

        Raises:
            InvalidPrecondition: if a simulation is already in flight for
                this job, or the job is already terminal
        """
        if job_id in self._in_flight:
            raise InvalidPrecondition(f"Job {job_id} is already being processed")

        job = self.job_store.get_job(job_id)
        processing_delay = delay if delay is not None else self._default_delay(job)

        if job.status == JOB_STATUS_PENDING:
            self._in_flight[job_id] = self.scheduler.after(
                self.export_pickup_delay,
                lambda: self._pick_up(job_id, processing_delay, work),
            )
        elif job.status == JOB_STATUS_RUNNING:
            self._in_flight[job_id] = self.scheduler.after(
                processing_delay,
                lambda: self._finish(job_id, work),
            )
        else:
            raise InvalidPrecondition(f"Job {job_id} is already {job.status}")

        logger.debug(f"Scheduled job {job_id} ({job.status}), delay={processing_delay}s")

    def cancel(self, job_id: str) -> bool:
        """
        Cancel the in-flight simulation of a job.

        The job keeps its current status; no further update lands.

        Returns:
            True if something was cancelled
        """
        handle = self._in_flight.pop(job_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.warning(f"Cancelled processing of job {job_id}; it stays in its current state")
        return True

    def cancel_all(self) -> int:
        """Cancel every in-flight simulation (owning view closed)."""
        job_ids = list(self._in_flight)
        for job_id in job_ids:
            self.cancel(job_id)
        return len(job_ids)

    # =========================================================================
    # Scheduled steps
    # =========================================================================

    def _default_delay(self, job: Job) -> float:
        return self.export_delay if job.kind == JOB_KIND_EXPORT else self.import_delay

    def _pick_up(self, job_id: str, processing_delay: float, work: Optional[Work]) -> None:
        self.job_store.mark_running(job_id)
        self._in_flight[job_id] = self.scheduler.after(
            processing_delay,
            lambda: self._finish(job_id, work),
        )

    def _finish(self, job_id: str, work: Optional[Work]) -> None:
        self._in_flight.pop(job_id, None)
        job = self.job_store.get_job(job_id)

        if job.status != JOB_STATUS_RUNNING:
            logger.warning(f"Job {job_id} is {job.status}, skipping completion")
            return

        logger.info(f"Processing job: {job_id} ({job.kind}/{job.type}, attempt {job.attempts})")

        try:
            outcome = work(job) if work is not None else self._simulate(job)
        except Exception as e:
            error_msg = f"{type(e).__name__}: {str(e)}"
            logger.error(f"Job {job_id} failed: {error_msg}")
            logger.debug(traceback.format_exc())
            self.job_store.fail(job_id, error_msg)
            return

        if outcome.succeeded:
            self.job_store.complete(job_id, outcome.result, artifact=outcome.artifact, report=outcome.report)
        else:
            self.job_store.fail(job_id, outcome.result)

    # =========================================================================
    # Simulated outcomes
    # =========================================================================

    def _simulate(self, job: Job) -> JobOutcome:
        if job.kind == JOB_KIND_EXPORT:
            filename = f"{job.type}_{job.id}.pdf"
            return JobOutcome(
                succeeded=True,
                result="Download",
                artifact=ExportArtifact(
                    filename=filename,
                    download_url=f"{self.download_base_url}/{filename}",
                ),
            )

        if self.decide_outcome(job):
            total = self._rng.randint(10, 50)
            failed_rows = self._rng.randint(0, max(1, total // 10))
            return JobOutcome(succeeded=True, result=f"{total - failed_rows}/{total} success")

        return JobOutcome(succeeded=False, result=self._rng.choice(SIMULATED_IMPORT_FAILURES))
