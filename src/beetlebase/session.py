"""Per-session wiring and the action boundary.

A Session owns one RecordStore, JobStore, JobRunner, JobService and
AdminFacade, all sharing one Scheduler. It is the only place where domain
errors are caught: each action returns an ActionResult, and a
QuotaExceeded result carries `upgrade_required=True` so the presentation
layer can show the upgrade prompt.

Usage:
    session = create_session(scheduler=ManualScheduler())
    result = session.add_photo("1", "https://picsum.photos/seed/x/600/400")
    if result.upgrade_required:
        ...
    session.close()
"""

import random
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .admin import AdminFacade
from .config import Config, get_config
from .errors import BeetleBaseError, NotFound, QuotaExceeded, ValidationError, field_errors
from .fixtures import demo_individuals, demo_jobs, demo_users
from .jobs.runner import JobRunner, OutcomeDecision, weighted_outcome
from .jobs.scheduler import AsyncioScheduler, ScheduledCall, Scheduler
from .jobs.service import JobService
from .jobs.store import JobStore
from .limits import get_usage_stats, is_at_individual_limit, is_at_photo_limit
from .llm import generate_individual_report, suggest_scientific_names
from .records import RecordStore, copy_as_draft
from .schemas import (
    Individual,
    IndividualDraft,
    User,
    IMPORT_MODE_SKIP,
    IMPORT_TYPE_INDIVIDUALS,
    PLAN_FREE,
    PLAN_PRO,
)


DEFAULT_ADMIN = User(id="admin", email="admin@beetlebase.app", plan=PLAN_PRO)


class ActionResult(BaseModel):
    """Outcome of a user action, ready for rendering."""
    ok: bool
    message: str = ""
    code: Optional[str] = None
    upgrade_required: bool = False
    data: Any = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class Session:
    """One UI session: stores, job machinery and the admin surface."""

    def __init__(
        self,
        records: RecordStore,
        job_store: JobStore,
        runner: JobRunner,
        job_service: JobService,
        admin: AdminFacade,
        scheduler: Scheduler,
        config: Config,
    ):
        self.records = records
        self.job_store = job_store
        self.runner = runner
        self.job_service = job_service
        self.admin = admin
        self.scheduler = scheduler
        self.config = config
        self._report_calls: List[ScheduledCall] = []

    # =========================================================================
    # Boundary
    # =========================================================================

    def _perform(self, action: str, operation: Callable[[], Any], success_message: str = "") -> ActionResult:
        try:
            data = operation()
        except QuotaExceeded as e:
            return ActionResult(
                ok=False,
                message=e.message,
                code=e.code,
                upgrade_required=True,
                data=e.to_detail(),
            )
        except BeetleBaseError as e:
            logger.warning(f"{action} rejected: {e.code}: {e.message}")
            return ActionResult(
                ok=False,
                message=e.message,
                code=e.code,
                errors=getattr(e, "errors", []),
            )
        return ActionResult(ok=True, message=success_message, data=data)

    # =========================================================================
    # Plan gating
    # =========================================================================

    @property
    def plan(self) -> str:
        return self.records.plan

    def can_add_individual(self) -> bool:
        return not is_at_individual_limit(self.records.plan, len(self.records))

    def can_add_photo(self, individual_id: str) -> bool:
        try:
            individual = self.records.get_individual(individual_id)
        except NotFound:
            return False
        return not is_at_photo_limit(self.records.plan, len(individual.photos))

    def usage_stats(self) -> Dict:
        return get_usage_stats(self.records.plan, len(self.records), self.records.photo_counts())

    def upgrade_plan(self) -> ActionResult:
        return self._perform("upgrade_plan", self.records.upgrade_plan, "Upgraded to Pro")

    # =========================================================================
    # Records
    # =========================================================================

    def add_individual(self, draft: Union[IndividualDraft, Dict[str, Any]]) -> ActionResult:
        def operation() -> Individual:
            candidate = draft
            if isinstance(candidate, dict):
                candidate = self._draft_from_dict(candidate)
            return self.records.add_individual(candidate)

        return self._perform("add_individual", operation, "Individual registered")

    def update_individual(self, record: Individual) -> ActionResult:
        return self._perform(
            "update_individual",
            lambda: self.records.update_individual(record),
            "Individual updated",
        )

    def add_photo(self, individual_id: str, photo_url: str) -> ActionResult:
        return self._perform(
            "add_photo",
            lambda: self.records.add_photo(individual_id, photo_url),
            "Photo added",
        )

    def add_measurement(self, individual_id: str, measurement: Dict[str, Any]) -> ActionResult:
        return self._perform(
            "add_measurement",
            lambda: self.records.add_measurement(individual_id, measurement),
            "Measurement added",
        )

    def copy_as_draft(self, individual_id: str) -> ActionResult:
        return self._perform(
            "copy_as_draft",
            lambda: copy_as_draft(self.records.get_individual(individual_id)),
        )

    # =========================================================================
    # Jobs
    # =========================================================================

    @property
    def owner_id(self) -> str:
        return self.admin.acting_user.id

    def import_csv(
        self,
        filename: str,
        content: bytes,
        import_type: str = IMPORT_TYPE_INDIVIDUALS,
        import_mode: str = IMPORT_MODE_SKIP,
    ) -> ActionResult:
        return self._perform(
            "import_csv",
            lambda: self.job_service.submit_import(
                filename, content, import_type, import_mode, owner_id=self.owner_id
            ),
            "Import started",
        )

    def export(self, export_type: str, individual_ids: List[str]) -> ActionResult:
        return self._perform(
            "export",
            lambda: self.job_service.submit_export(export_type, individual_ids, owner_id=self.owner_id),
            "Export queued",
        )

    def submit_job(self, kind: str, job_type: str) -> ActionResult:
        """Submit a job without payload; its processing is simulated."""
        return self._perform(
            "submit_job",
            lambda: self.job_service.submit(kind, job_type, owner_id=self.owner_id),
            "Job submitted",
        )

    def retry_job(self, job_id: str) -> ActionResult:
        return self._perform("retry_job", lambda: self.job_service.retry(job_id), "Retrying")

    def resume_jobs(self) -> int:
        """Hand every non-terminal job without a scheduled transition to the runner."""
        resumed = 0
        for job in self.job_store.list_jobs():
            if job.is_terminal or self.runner.is_in_flight(job.id):
                continue
            self.job_service.resume(job.id)
            resumed += 1
        if resumed:
            logger.info(f"Resumed {resumed} unfinished jobs")
        return resumed

    # =========================================================================
    # Text generation
    # =========================================================================

    def request_report(self, individual_id: str, on_ready: Callable[[str], None]) -> ActionResult:
        """
        Generate the narrative report off the action path.

        The report is produced by a scheduled callback and handed to
        `on_ready`; record operations stay available in the meantime.
        """
        def operation() -> str:
            individual = self.records.get_individual(individual_id)

            def deliver() -> None:
                self._report_calls = [call for call in self._report_calls if call is not handle]
                on_ready(generate_individual_report(individual, model=self.config.bb_llm_model))

            handle = self.scheduler.after(0.0, deliver)
            self._report_calls.append(handle)
            return individual.individual_code

        return self._perform("request_report", operation, "Generating report...")

    def suggest_names(self, query: str) -> List[str]:
        return suggest_scientific_names(
            query,
            known_names=self.records.known_values("species_scientific"),
            model=self.config.bb_llm_model,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> int:
        """Cancel every scheduled update so nothing lands after the view closes."""
        cancelled = self.runner.cancel_all()
        for call in self._report_calls:
            if not call.cancelled():
                call.cancel()
        self._report_calls.clear()
        logger.info(f"Session closed, {cancelled} job simulations cancelled")
        return cancelled

    @staticmethod
    def _draft_from_dict(values: Dict[str, Any]) -> IndividualDraft:
        try:
            return IndividualDraft(**values)
        except PydanticValidationError as e:
            raise ValidationError("Invalid individual", field_errors(e)) from e


def create_session(
    config: Optional[Config] = None,
    scheduler: Optional[Scheduler] = None,
    decide_outcome: Optional[OutcomeDecision] = None,
    rng: Optional[random.Random] = None,
    seed: bool = True,
    admin_user: Optional[User] = None,
    plan: str = PLAN_FREE,
) -> Session:
    """
    Build a fully wired session.

    Args:
        config: Settings (defaults to get_config())
        scheduler: Deferred-callback scheduler (defaults to AsyncioScheduler)
        decide_outcome: Outcome decision for simulated imports
            (defaults to weighted random at bb_import_success_rate)
        rng: Random source for simulated outcomes
        seed: Load the demo individuals, users and jobs
        admin_user: Identity of the admin driving the session
        plan: Initial plan tier

    Returns:
        A new Session; call close() when the owning view goes away
    """
    config = config or get_config()
    scheduler = scheduler or AsyncioScheduler()
    rng = rng or random.Random()
    decide_outcome = decide_outcome or weighted_outcome(config.bb_import_success_rate, rng=rng)

    records = RecordStore(plan=plan, individuals=demo_individuals() if seed else None)
    job_store = JobStore(
        users=demo_users() if seed else None,
        jobs=demo_jobs() if seed else None,
    )
    runner = JobRunner(
        job_store,
        scheduler,
        decide_outcome=decide_outcome,
        rng=rng,
        import_delay=config.bb_import_delay_seconds,
        export_pickup_delay=config.bb_export_pickup_delay_seconds,
        export_delay=config.bb_export_delay_seconds,
        download_base_url=config.bb_download_base_url,
    )
    job_service = JobService(
        job_store,
        runner,
        records,
        export_dir=config.export_dir,
        download_base_url=config.bb_download_base_url,
        public_base_url=config.bb_public_base_url,
        max_csv_bytes=config.bb_csv_max_bytes,
    )
    admin = AdminFacade(job_store, job_service, admin_user or DEFAULT_ADMIN)

    logger.debug(f"Session created (plan={plan}, seeded={seed})")
    return Session(records, job_store, runner, job_service, admin, scheduler, config)
