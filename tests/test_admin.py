"""Tests for the admin facade."""

import pytest

from beetlebase.admin import AdminFacade
from beetlebase.errors import InvalidPrecondition, NotFound
from beetlebase.fixtures import demo_jobs, demo_users
from beetlebase.jobs import JobRunner, JobService, JobStore, ManualScheduler, always_succeed
from beetlebase.records import RecordStore
from beetlebase.schemas import (
    User,
    JOB_STATUS_RUNNING,
    JOB_STATUS_SUCCEEDED,
    PLAN_FREE,
    PLAN_PRO,
    USER_STATUS_ACTIVE,
    USER_STATUS_SUSPENDED,
)


ADMIN = User(id="admin", email="admin@beetlebase.app", plan=PLAN_PRO)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def admin(scheduler, tmp_path):
    store = JobStore(users=demo_users(), jobs=demo_jobs())
    runner = JobRunner(store, scheduler, decide_outcome=always_succeed)
    service = JobService(store, runner, RecordStore(), export_dir=tmp_path)
    return AdminFacade(store, service, ADMIN)


# ============================================================================
# Users
# ============================================================================

def test_toggle_twice_restores_status(admin):
    """Test that toggling a user twice restores its original status."""
    assert admin.toggle_user_status("u2").status == USER_STATUS_SUSPENDED
    assert admin.toggle_user_status("u2").status == USER_STATUS_ACTIVE


def test_toggle_unknown_user(admin):
    with pytest.raises(NotFound):
        admin.toggle_user_status("u404")


def test_search_users(admin):
    """Test email search with status and plan filters."""
    assert [u.id for u in admin.search_users("EXAMPLE.com")] == ["u1", "u2", "u3"]
    assert [u.id for u in admin.search_users("", status=USER_STATUS_SUSPENDED)] == ["u3"]
    assert [u.id for u in admin.search_users("user", plan=PLAN_FREE)] == ["u2"]
    assert admin.search_users("nobody") == []


# ============================================================================
# Impersonation
# ============================================================================

def test_impersonation_round_trip(admin):
    """Test switching identity and restoring the admin."""
    assert admin.acting_user.id == "admin"

    target = admin.impersonate("u2")

    assert target.email == "user2@example.com"
    assert admin.is_impersonating
    assert admin.acting_user.id == "u2"

    assert admin.stop_impersonating().id == "admin"
    assert not admin.is_impersonating


def test_nested_impersonation_rejected(admin):
    """Test that impersonating while impersonating is rejected."""
    admin.impersonate(admin.job_store.get_user("u1"))

    with pytest.raises(InvalidPrecondition):
        admin.impersonate("u2")

    assert admin.acting_user.id == "u1"


def test_impersonation_does_not_change_stored_data(admin):
    before = admin.list_users()

    admin.impersonate("u3")
    admin.stop_impersonating()

    assert admin.list_users() == before


def test_stop_without_impersonating_is_noop(admin):
    assert admin.stop_impersonating().id == "admin"
    assert not admin.is_impersonating


# ============================================================================
# Jobs
# ============================================================================

def test_job_listings(admin):
    assert [job.id for job in admin.list_import_jobs()] == ["job-i3", "job-i1", "job-i2"]
    assert [job.id for job in admin.list_export_jobs()] == ["job-e2", "job-e1"]


def test_retry_job(admin, scheduler):
    """Test retrying the failed demo import."""
    assert admin.retry_job("job-i2") is True
    assert admin.job_store.get_job("job-i2").status == JOB_STATUS_RUNNING

    scheduler.run_until_idle()

    retried = admin.job_store.get_job("job-i2")
    assert retried.status == JOB_STATUS_SUCCEEDED
    assert retried.attempts == 2


def test_retry_job_rejected(admin):
    """Test that retrying a non-failed or missing job reports False."""
    assert admin.retry_job("job-i1") is False
    assert admin.retry_job("job-i3") is False
    assert admin.retry_job("job-missing") is False
    assert admin.job_store.get_job("job-i1").status == JOB_STATUS_SUCCEEDED
