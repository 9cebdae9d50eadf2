"""Administrative surface for BeetleBase.

The AdminFacade composes JobStore and JobService operations for the admin
views:
- user search and suspension (toggle Active <-> Suspended)
- impersonation: act under another user's identity for the session,
  without touching stored data
- job listings and retry triggers

Usage:
    admin = AdminFacade(job_store, job_service, admin_user)
    admin.impersonate("u2")
    admin.acting_user.email   # user2@example.com
    admin.stop_impersonating()
"""

from typing import List, Optional, Union

from loguru import logger

from .errors import InvalidPrecondition, NotFound
from .jobs.service import JobService
from .jobs.store import JobStore
from .schemas import Job, User, JOB_KIND_EXPORT, JOB_KIND_IMPORT


class AdminFacade:
    """Admin operations over users and jobs for one session."""

    def __init__(self, job_store: JobStore, job_service: JobService, admin_user: User):
        self.job_store = job_store
        self.job_service = job_service
        self.admin_user = admin_user
        self._impersonated: Optional[User] = None

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def acting_user(self) -> User:
        """The identity the session currently acts under."""
        return self._impersonated or self.admin_user

    @property
    def is_impersonating(self) -> bool:
        return self._impersonated is not None

    def impersonate(self, user: Union[User, str]) -> User:
        """
        Switch the acting identity to another user.

        Args:
            user: Target user or user id

        Returns:
            The impersonated user

        Raises:
            InvalidPrecondition: if already impersonating
            NotFound: if the user id does not exist
        """
        if self._impersonated is not None:
            logger.warning(
                f"Rejected impersonation: already acting as {self._impersonated.email}"
            )
            raise InvalidPrecondition(
                f"Already impersonating {self._impersonated.email}; stop impersonating first"
            )

        user_id = user if isinstance(user, str) else user.id
        target = self.job_store.get_user(user_id)

        self._impersonated = target
        logger.info(f"Admin {self.admin_user.email} is now acting as {target.email}")
        return target

    def stop_impersonating(self) -> User:
        """Restore the admin identity. A no-op when not impersonating."""
        if self._impersonated is None:
            logger.debug("stop_impersonating called while not impersonating")
            return self.admin_user

        logger.info(f"Admin {self.admin_user.email} stopped acting as {self._impersonated.email}")
        self._impersonated = None
        return self.admin_user

    # =========================================================================
    # Users
    # =========================================================================

    def list_users(self) -> List[User]:
        return self.job_store.list_users()

    def search_users(self, term: str = "", status: Optional[str] = None, plan: Optional[str] = None) -> List[User]:
        return self.job_store.search_users(term, status=status, plan=plan)

    def toggle_user_status(self, user_id: str) -> User:
        """
        Flip a user between Active and Suspended.

        Repeated calls keep flipping.

        Raises:
            NotFound: if the user does not exist
        """
        user = self.job_store.toggle_user_status(user_id)

        # Keep the acting identity in sync with the stored account
        if self._impersonated is not None and self._impersonated.id == user.id:
            self._impersonated = user
        return user

    # =========================================================================
    # Jobs
    # =========================================================================

    def list_import_jobs(self) -> List[Job]:
        return self.job_store.list_jobs(kind=JOB_KIND_IMPORT)

    def list_export_jobs(self) -> List[Job]:
        return self.job_store.list_jobs(kind=JOB_KIND_EXPORT)

    def retry_job(self, job_id: str) -> bool:
        """
        Retry a failed job.

        Returns:
            True if the job was re-queued, False if it was rejected
        """
        try:
            self.job_service.retry(job_id)
        except (InvalidPrecondition, NotFound) as e:
            logger.warning(f"Retry of job {job_id} rejected: {e.message}")
            return False
        return True
