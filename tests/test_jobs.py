"""Tests for the job store, runner and service lifecycle."""

import random

import pytest

from beetlebase.errors import InvalidPrecondition, NotFound, ValidationError
from beetlebase.fixtures import demo_individuals, demo_jobs
from beetlebase.jobs import JobRunner, JobService, JobStore, ManualScheduler, always_fail, always_succeed
from beetlebase.jobs.runner import weighted_outcome
from beetlebase.jobs.store import MESSAGE_PROCESSING, MESSAGE_QUEUED, MESSAGE_RETRYING
from beetlebase.records import RecordStore
from beetlebase.schemas import (
    JobOutcome,
    EXPORT_TYPE_PEDIGREE_PDF,
    IMPORT_TYPE_INDIVIDUALS,
    JOB_KIND_EXPORT,
    JOB_KIND_IMPORT,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def store():
    return JobStore()


def make_runner(store, scheduler, decide=always_succeed):
    return JobRunner(store, scheduler, decide_outcome=decide, rng=random.Random(7))


# ============================================================================
# JobStore transitions
# ============================================================================

def test_submit_initial_states(store):
    """Test that imports start running and exports start pending."""
    imported = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    exported = store.submit(JOB_KIND_EXPORT, EXPORT_TYPE_PEDIGREE_PDF)

    assert imported.status == JOB_STATUS_RUNNING
    assert imported.result == MESSAGE_PROCESSING
    assert imported.started_at is not None
    assert exported.status == JOB_STATUS_PENDING
    assert exported.result == MESSAGE_QUEUED
    assert exported.started_at is None


def test_submit_unknown_kind(store):
    with pytest.raises(ValueError):
        store.submit("backup", "everything")


def test_complete_sets_kind_specific_status(store):
    """Test that imports succeed and exports complete."""
    imported = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    exported = store.submit(JOB_KIND_EXPORT, EXPORT_TYPE_PEDIGREE_PDF)
    store.mark_running(exported.id)

    assert store.complete(imported.id, "3/3 success").status == JOB_STATUS_SUCCEEDED
    assert store.complete(exported.id, "Download").status == JOB_STATUS_COMPLETED


def test_terminal_jobs_are_immutable(store):
    """Test that complete/fail on a terminal job are rejected and change nothing."""
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    store.complete(job.id, "1/1 success")

    with pytest.raises(InvalidPrecondition):
        store.fail(job.id, "late failure")
    with pytest.raises(InvalidPrecondition):
        store.complete(job.id, "again")

    assert store.get_job(job.id).result == "1/1 success"


def test_retry_only_from_failed(store):
    """Test that retry from running is rejected and leaves the job unchanged."""
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    with pytest.raises(InvalidPrecondition):
        store.retry(job.id)
    assert store.get_job(job.id) == job

    store.fail(job.id, "Invalid date format on line 15")
    retried = store.retry(job.id)

    assert retried.status == JOB_STATUS_RUNNING
    assert retried.result == MESSAGE_RETRYING
    assert retried.attempts == 2
    assert retried.finished_at is None


def test_fail_truncates_long_messages(store):
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    failed = store.fail(job.id, "x" * 5000)

    assert len(failed.result) == 2000


def test_list_jobs_newest_first():
    """Test listing with kind and status filters."""
    store = JobStore(jobs=demo_jobs())

    imports = store.list_jobs(kind=JOB_KIND_IMPORT)
    assert [job.id for job in imports] == ["job-i3", "job-i1", "job-i2"]
    assert [job.id for job in store.list_jobs(status=JOB_STATUS_PENDING)] == ["job-e2"]
    assert store.count_jobs(JOB_STATUS_FAILED) == 1


def test_get_unknown_job(store):
    with pytest.raises(NotFound):
        store.get_job("job-missing")


# ============================================================================
# JobRunner simulation
# ============================================================================

def test_import_lifecycle(store, scheduler):
    """Test submit -> running -> succeeded after the import delay."""
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    runner.simulate_processing(job.id)
    scheduler.advance(1.9)
    assert store.get_job(job.id).status == JOB_STATUS_RUNNING

    scheduler.advance(0.2)
    finished = store.get_job(job.id)
    assert finished.status == JOB_STATUS_SUCCEEDED
    assert finished.result.endswith(" success")
    assert not runner.is_in_flight(job.id)


def test_export_lifecycle(store, scheduler):
    """Test pending -> running at pickup -> completed with an artifact."""
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_EXPORT, EXPORT_TYPE_PEDIGREE_PDF)

    runner.simulate_processing(job.id)
    scheduler.advance(1.0)
    assert store.get_job(job.id).status == JOB_STATUS_RUNNING

    scheduler.advance(3.0)
    finished = store.get_job(job.id)
    assert finished.status == JOB_STATUS_COMPLETED
    assert finished.result == "Download"
    assert finished.artifact.filename == f"pedigree_pdf_{job.id}.pdf"
    assert finished.artifact.download_url == f"/downloads/pedigree_pdf_{job.id}.pdf"


def test_failed_import_then_retry(store, scheduler):
    """Test failed -> retry -> running -> terminal."""
    outcomes = iter([False, True])
    runner = make_runner(store, scheduler, decide=lambda job: next(outcomes))
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    runner.simulate_processing(job.id)
    scheduler.run_until_idle()
    assert store.get_job(job.id).status == JOB_STATUS_FAILED

    store.retry(job.id)
    runner.simulate_processing(job.id)
    scheduler.run_until_idle()

    final = store.get_job(job.id)
    assert final.status == JOB_STATUS_SUCCEEDED
    assert final.attempts == 2


def test_single_in_flight_simulation(store, scheduler):
    """Test that a second simulation for the same job is rejected."""
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    runner.simulate_processing(job.id)
    with pytest.raises(InvalidPrecondition):
        runner.simulate_processing(job.id)

    assert runner.in_flight_count == 1


def test_simulate_terminal_job_rejected(store, scheduler):
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    store.complete(job.id, "done")

    with pytest.raises(InvalidPrecondition):
        runner.simulate_processing(job.id)


def test_cancel_leaves_job_state(store, scheduler):
    """Test that a cancelled simulation never lands."""
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    other = store.submit(JOB_KIND_EXPORT, EXPORT_TYPE_PEDIGREE_PDF)

    runner.simulate_processing(job.id)
    runner.simulate_processing(other.id)
    assert runner.cancel(job.id) is True
    assert runner.cancel(job.id) is False
    assert runner.cancel_all() == 1

    scheduler.run_until_idle()
    assert store.get_job(job.id).status == JOB_STATUS_RUNNING
    assert store.get_job(other.id).status == JOB_STATUS_PENDING


def test_work_exception_fails_job(store, scheduler):
    """Test that an exception raised by work is recorded as the failure message."""
    runner = make_runner(store, scheduler)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    def broken(job):
        raise RuntimeError("disk full")

    runner.simulate_processing(job.id, work=broken)
    scheduler.run_until_idle()

    failed = store.get_job(job.id)
    assert failed.status == JOB_STATUS_FAILED
    assert failed.result == "RuntimeError: disk full"


def test_work_outcome_decides_state(store, scheduler):
    runner = make_runner(store, scheduler, decide=always_fail)
    job = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    runner.simulate_processing(job.id, delay=0.5, work=lambda job: JobOutcome(succeeded=True, result="2/2 success"))
    scheduler.advance(0.5)

    assert store.get_job(job.id).result == "2/2 success"


def test_weighted_outcome():
    """Test the weighted decision at its extremes and argument validation."""
    assert weighted_outcome(1.0, rng=random.Random(1))(None) is True
    assert weighted_outcome(0.0, rng=random.Random(1))(None) is False

    with pytest.raises(ValueError):
        weighted_outcome(1.5)


# ============================================================================
# JobService
# ============================================================================

@pytest.fixture
def service(store, scheduler, tmp_path):
    records = RecordStore(individuals=demo_individuals())
    runner = make_runner(store, scheduler, decide=always_fail)
    return JobService(store, runner, records, export_dir=tmp_path)


def test_service_export_writes_pdf(service, scheduler, tmp_path):
    """Test that a real export writes its artifact into the export directory."""
    job = service.submit_export(EXPORT_TYPE_PEDIGREE_PDF, ["1", "3"])
    assert job.status == JOB_STATUS_PENDING

    scheduler.run_until_idle()

    finished = service.get_job(job.id)
    assert finished.status == JOB_STATUS_COMPLETED
    assert (tmp_path / finished.artifact.filename).exists()
    assert finished.artifact.path == str(tmp_path / finished.artifact.filename)


def test_service_export_validation(service):
    with pytest.raises(ValidationError):
        service.submit_export("spreadsheet", ["1"])
    with pytest.raises(ValidationError):
        service.submit_export(EXPORT_TYPE_PEDIGREE_PDF, [])
    with pytest.raises(NotFound):
        service.submit_export(EXPORT_TYPE_PEDIGREE_PDF, ["404"])


def test_service_retry_reruns_work(service, scheduler):
    """Test that retrying a failed import re-runs the same CSV payload."""
    content = b"individual_code,species_common,species_scientific,introduced_date\n"
    job = service.submit_import("empty.csv", content)
    scheduler.run_until_idle()

    failed = service.get_job(job.id)
    assert failed.status == JOB_STATUS_FAILED
    assert "no data rows" in failed.result

    service.retry(job.id)
    scheduler.run_until_idle()

    again = service.get_job(job.id)
    assert again.status == JOB_STATUS_FAILED
    assert again.attempts == 2


def test_service_retry_rejects_running(service):
    job = service.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)

    with pytest.raises(InvalidPrecondition):
        service.retry(job.id)


def test_update_progress_only_while_running(store):
    """Test that progress messages land on running jobs only."""
    running = store.submit(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS)
    pending = store.submit(JOB_KIND_EXPORT, EXPORT_TYPE_PEDIGREE_PDF)

    store.update_progress(running.id, "Importing individuals...")
    store.update_progress(pending.id, "Rendering...")

    assert store.get_job(running.id).result == "Importing individuals..."
    assert store.get_job(pending.id).result == MESSAGE_QUEUED


def test_service_releases_work_after_success(service, scheduler):
    """Test that finished jobs drop their payload and failed ones keep it for retry."""
    content = (
        b"individual_code,species_common,species_scientific,introduced_date\n"
        b"IMP-9,Giraffe Stag Beetle,Prosopocoilus giraffa,2025-04-01\n"
    )
    imported = service.submit_import("batch.csv", content)
    broken = service.submit_import("empty.csv", content.splitlines(keepends=True)[0])
    exported = service.submit_export(EXPORT_TYPE_PEDIGREE_PDF, ["1"])

    assert imported.id in service._work
    scheduler.run_until_idle()

    assert service.get_job(imported.id).status == JOB_STATUS_SUCCEEDED
    assert service.get_job(exported.id).status == JOB_STATUS_COMPLETED
    assert imported.id not in service._work
    assert exported.id not in service._work
    assert service.get_job(broken.id).status == JOB_STATUS_FAILED
    assert broken.id in service._work


def test_service_resume_runs_stored_work(service, scheduler):
    """Test that a cancelled import resumes with its CSV instead of a simulated outcome."""
    content = (
        b"individual_code,species_common,species_scientific,introduced_date\n"
        b"IMP-10,Giraffe Stag Beetle,Prosopocoilus giraffa,2025-04-01\n"
    )
    job = service.submit_import("batch.csv", content)
    assert service.cancel(job.id)

    service.resume(job.id)
    scheduler.run_until_idle()

    finished = service.get_job(job.id)
    assert finished.status == JOB_STATUS_SUCCEEDED
    assert finished.result == "1/1 success"
    assert service.record_store.find_by_code("IMP-10") is not None
