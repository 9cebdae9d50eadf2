"""End-to-end tests through the session boundary."""

import random

import pytest

from beetlebase import create_session
from beetlebase.config import Config
from beetlebase.jobs import ManualScheduler, always_fail, always_succeed
from beetlebase.llm import REPORT_UNAVAILABLE_MESSAGE
from beetlebase.schemas import (
    EXPORT_TYPE_QR_LABELS,
    IMPORT_TYPE_INDIVIDUALS,
    JOB_KIND_IMPORT,
    JOB_STATUS_COMPLETED,
    JOB_STATUS_FAILED,
    JOB_STATUS_PENDING,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
    PLAN_PRO,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return Config(openai_api_key=None, bb_export_dir=str(tmp_path / "exports"))


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def session(config, scheduler):
    session = create_session(
        config=config,
        scheduler=scheduler,
        decide_outcome=always_succeed,
        rng=random.Random(3),
    )
    yield session
    session.close()


def _draft(code: str) -> dict:
    return {
        "individual_code": code,
        "species_common": "Giraffe Stag Beetle",
        "species_scientific": "Prosopocoilus giraffa",
        "introduced_date": "2025-03-01",
    }


# ============================================================================
# Records and quotas
# ============================================================================

def test_seeded_session(session):
    """Test that a new session carries the demo data on the free plan."""
    assert len(session.records) == 3
    assert len(session.admin.list_users()) == 3
    assert session.plan == "free"
    assert session.can_add_individual()


def test_quota_surfaces_upgrade_prompt(session):
    """Test that hitting the free limit asks for an upgrade instead of failing hard."""
    assert session.add_individual(_draft("NEW-1")).ok
    assert session.add_individual(_draft("NEW-2")).ok
    assert not session.can_add_individual()

    result = session.add_individual(_draft("NEW-3"))

    assert not result.ok
    assert result.upgrade_required
    assert result.code == "QUOTA_EXCEEDED"
    assert result.data["limit"] == {"max": 5, "used": 5}

    assert session.upgrade_plan().ok
    assert session.plan == PLAN_PRO
    assert session.add_individual(_draft("NEW-3")).ok
    assert session.usage_stats()["individuals"]["used"] == 6


def test_invalid_draft_reports_field_errors(session):
    draft = _draft("NEW-1")
    del draft["species_scientific"]

    result = session.add_individual(draft)

    assert not result.ok
    assert not result.upgrade_required
    assert result.code == "VALIDATION_ERROR"
    assert result.errors[0]["field"] == "species_scientific"


def test_photo_actions(session):
    """Test photo add, the free photo limit and a missing individual."""
    for n in range(7):
        assert session.add_photo("1", f"https://picsum.photos/seed/s{n}/600/400").ok

    assert not session.can_add_photo("1")
    limited = session.add_photo("1", "https://picsum.photos/seed/s8/600/400")
    assert limited.upgrade_required

    assert not session.can_add_photo("404")

    missing = session.add_photo("404", "https://picsum.photos/seed/x/600/400")
    assert missing.code == "NOT_FOUND"
    assert not missing.upgrade_required


def test_update_and_measurement(session):
    record = session.records.get_individual("3")
    record.notes = "Eclosed."

    assert session.update_individual(record).ok
    assert session.add_measurement("3", {"measured_at": "2025-05-01", "weight_g": 12.5}).ok
    assert session.records.get_individual("3").notes == "Eclosed."

    draft = session.copy_as_draft("3").data
    assert draft.species_scientific == "Prosopocoilus giraffa"


# ============================================================================
# Jobs
# ============================================================================

def test_csv_import_flow(session, scheduler):
    """Test an import job from upload to succeeded with its report."""
    content = (
        "individualCode,speciesCommon,speciesScientific,introducedDate\n"
        "IMP-1,Giraffe Stag Beetle,Prosopocoilus giraffa,2025-04-01\n"
        "DHO-2024-001,Japanese Giant Stag Beetle,Dorcus hopei binodulosus,2024-01-10\n"
    ).encode("utf-8")

    result = session.import_csv("batch.csv", content, IMPORT_TYPE_INDIVIDUALS, "skip")

    assert result.ok
    job = result.data
    assert job.status == JOB_STATUS_RUNNING
    assert job.owner_id == "admin"

    scheduler.advance(session.config.bb_import_delay_seconds)

    finished = session.job_store.get_job(job.id)
    assert finished.status == JOB_STATUS_SUCCEEDED
    assert finished.result == "2/2 success"
    assert finished.report.imported == 1
    assert finished.report.skipped == 1
    assert session.records.find_by_code("IMP-1") is not None


def test_rejected_upload_creates_no_job(session):
    before = len(session.job_store.list_jobs())

    result = session.import_csv("batch.txt", b"individual_code\nA\n")

    assert not result.ok
    assert result.code == "VALIDATION_ERROR"
    assert len(session.job_store.list_jobs()) == before


def test_export_flow(session, scheduler, config):
    """Test a QR label export from pending to completed with a written artifact."""
    result = session.export(EXPORT_TYPE_QR_LABELS, ["1", "2"])
    job = result.data
    assert job.status == JOB_STATUS_PENDING

    scheduler.run_until_idle()

    finished = session.job_store.get_job(job.id)
    assert finished.status == JOB_STATUS_COMPLETED
    assert (config.export_dir / finished.artifact.filename).exists()


def test_retry_through_session(config, scheduler):
    """Test that a failed simulated import can be retried and a running one cannot."""
    outcomes = iter([False, True])
    session = create_session(config=config, scheduler=scheduler, decide_outcome=lambda job: next(outcomes))

    job = session.submit_job(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS).data
    scheduler.run_until_idle()
    assert session.job_store.get_job(job.id).status == JOB_STATUS_FAILED

    assert session.retry_job(job.id).ok
    rejected = session.retry_job(job.id)
    assert not rejected.ok
    assert rejected.code == "INVALID_PRECONDITION"

    scheduler.run_until_idle()
    assert session.job_store.get_job(job.id).status == JOB_STATUS_SUCCEEDED


def test_resume_and_close(session, scheduler):
    """Test resuming seeded jobs and cancelling everything on close."""
    assert session.resume_jobs() == 2
    assert session.resume_jobs() == 0

    assert session.close() == 2
    scheduler.run_until_idle()

    assert session.job_store.get_job("job-i3").status == JOB_STATUS_RUNNING
    assert session.job_store.get_job("job-e2").status == JOB_STATUS_PENDING


def test_resumed_import_parses_its_csv(session, scheduler):
    """Test that an import cancelled by close imports its rows once resumed."""
    content = (
        "individual_code,species_common,species_scientific,introduced_date\n"
        "IMP-2,Giraffe Stag Beetle,Prosopocoilus giraffa,2025-04-01\n"
    ).encode("utf-8")
    job = session.import_csv("a.csv", content).data

    session.close()
    scheduler.run_until_idle()
    assert session.job_store.get_job(job.id).status == JOB_STATUS_RUNNING

    assert session.resume_jobs() == 3
    scheduler.run_until_idle()

    finished = session.job_store.get_job(job.id)
    assert finished.status == JOB_STATUS_SUCCEEDED
    assert finished.result == "1/1 success"
    assert session.records.find_by_code("IMP-2") is not None


def test_impersonated_owner(session):
    session.admin.impersonate("u2")

    job = session.submit_job("export", "pedigree_pdf").data

    assert job.owner_id == "u2"


# ============================================================================
# Text generation
# ============================================================================

def test_request_report_is_deferred(session, scheduler):
    """Test that the report arrives through the scheduler, not inline."""
    reports = []

    result = session.request_report("1", reports.append)

    assert result.ok
    assert reports == []

    scheduler.run_until_idle()
    assert reports == [REPORT_UNAVAILABLE_MESSAGE]


def test_delivered_report_releases_its_handle(session, scheduler):
    reports = []
    session.request_report("1", reports.append)
    session.request_report("2", reports.append)

    scheduler.run_until_idle()

    assert len(reports) == 2
    assert session._report_calls == []


def test_request_report_cancelled_on_close(session, scheduler):
    reports = []
    session.request_report("1", reports.append)

    session.close()
    scheduler.run_until_idle()

    assert reports == []


def test_request_report_unknown_individual(session):
    result = session.request_report("404", lambda text: None)

    assert result.code == "NOT_FOUND"


def test_suggest_names_local(session):
    assert session.suggest_names("lucanus") == ["Lucanus maculifemoratus"]


def test_always_fail_decision(config, scheduler):
    session = create_session(config=config, scheduler=scheduler, decide_outcome=always_fail, seed=False)

    job = session.submit_job(JOB_KIND_IMPORT, IMPORT_TYPE_INDIVIDUALS).data
    scheduler.run_until_idle()

    assert session.job_store.get_job(job.id).status == JOB_STATUS_FAILED
    assert len(session.records) == 0
