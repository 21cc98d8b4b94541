"""
Account deletion workflow.

Fans out every anonymization and hard-delete step concurrently, waits for all
of them, then removes the root user document and the profile photo. The
public entry points never raise for I/O problems; they report a single
success flag instead.
"""

import enum
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from anonymization import (
    GiftedRewardClaimsAnonymization,
    GiftedRewardsAnonymization,
    PostsAnonymization,
    ReceiptsAnonymization,
    SuspiciousFlagsAnonymization,
)
from deletion_config import MAX_WORKERS, PROFILE_PHOTO_FIELD, USERS_COLLECTION
from hard_delete import (
    ReferralsDeleteStep,
    UserSubcollectionsDeleteStep,
    notifications_step,
    points_transactions_step,
    receipt_scan_attempts_step,
    redeemed_rewards_step,
    risk_score_step,
)
from steps import DeletionStep, StepResult
from stores import BlobStore, DocumentStore


def default_steps(store: DocumentStore, background: Optional[Executor] = None, **kwargs) -> List[DeletionStep]:
    """The standard set of steps run for every deleted account."""
    return [
        # Anonymization: keep records, remove PII
        ReceiptsAnonymization(store, **kwargs),
        SuspiciousFlagsAnonymization(store, **kwargs),
        GiftedRewardsAnonymization(store, **kwargs),
        GiftedRewardClaimsAnonymization(store, **kwargs),
        PostsAnonymization(store, background=background, **kwargs),
        # Deletion: remove user-specific data
        points_transactions_step(store, **kwargs),
        redeemed_rewards_step(store, **kwargs),
        ReferralsDeleteStep(store, **kwargs),
        notifications_step(store, **kwargs),
        receipt_scan_attempts_step(store, **kwargs),
        UserSubcollectionsDeleteStep(store, **kwargs),
        risk_score_step(store, **kwargs),
    ]


class DeletionState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"


class DeletionOutcome:
    """Join point for concurrent steps: counts reports and ORs their failures."""

    def __init__(self, expected: int):
        self.expected = expected
        self._lock = threading.Lock()
        self._results: List[StepResult] = []
        self._failed = False

    def record(self, result: StepResult) -> None:
        with self._lock:
            self._results.append(result)
            self._failed = self._failed or result.failed

    def mark_failed(self) -> None:
        with self._lock:
            self._failed = True

    @property
    def failed(self) -> bool:
        with self._lock:
            return self._failed

    @property
    def reported(self) -> int:
        with self._lock:
            return len(self._results)

    @property
    def results(self) -> List[StepResult]:
        with self._lock:
            return list(self._results)


@dataclass
class DeletionReport:
    user_id: str
    success: bool
    step_results: List[StepResult] = field(default_factory=list)
    user_document_failed: bool = False
    profile_photo_failed: bool = False

    @property
    def failed_steps(self) -> List[str]:
        names = [result.name for result in self.step_results if result.failed]
        if self.user_document_failed:
            names.append("delete_user_document")
        if self.profile_photo_failed:
            names.append("delete_profile_photo")
        return names

    @property
    def truncated_steps(self) -> List[str]:
        return [result.name for result in self.step_results if result.truncated]


class DeletionRun:
    """A single, non-restartable execution of the workflow for one user."""

    def __init__(
        self,
        user_id: str,
        profile_photo_ref: Optional[str],
        store: DocumentStore,
        blob_store: Optional[BlobStore],
        steps: Sequence[DeletionStep],
        max_workers: int = MAX_WORKERS,
    ):
        self.user_id = user_id
        self.profile_photo_ref = profile_photo_ref
        self.store = store
        self.blob_store = blob_store
        self.steps = list(steps)
        self.max_workers = max_workers
        self.state = DeletionState.IDLE
        self.outcome = DeletionOutcome(len(self.steps))
        self._state_lock = threading.Lock()

    def execute(self) -> DeletionReport:
        with self._state_lock:
            if self.state is not DeletionState.IDLE:
                raise RuntimeError(f"Deletion run for {self.user_id} already {self.state.value}")
            self.state = DeletionState.RUNNING

        logging.info(f"Starting account deletion for user: {self.user_id}")
        self._run_steps()

        # Only after every step has reported.
        if self.outcome.reported != self.outcome.expected:
            logging.error(
                f"Only {self.outcome.reported} of {self.outcome.expected} expected steps reported "
                f"for user {self.user_id}; keeping the user document"
            )
            user_document_failed = True
        else:
            user_document_failed = not self._delete_user_document()
        if user_document_failed:
            self.outcome.mark_failed()

        profile_photo_failed = False
        if self.profile_photo_ref:
            profile_photo_failed = not self._delete_profile_photo()
            if profile_photo_failed:
                self.outcome.mark_failed()

        report = DeletionReport(
            user_id=self.user_id,
            success=not self.outcome.failed,
            step_results=self.outcome.results,
            user_document_failed=user_document_failed,
            profile_photo_failed=profile_photo_failed,
        )
        with self._state_lock:
            self.state = DeletionState.COMPLETED

        if report.success:
            logging.info(f"Account deletion completed successfully for user: {self.user_id}")
        else:
            logging.warning(
                f"Account deletion completed with some errors for user: {self.user_id} "
                f"(failed: {', '.join(report.failed_steps)})"
            )
        for name in report.truncated_steps:
            logging.warning(f"{name} hit the batch capacity for user {self.user_id}; run again to finish")
        return report

    def _run_steps(self) -> None:
        if not self.steps:
            return
        workers = max(1, min(self.max_workers, len(self.steps)))
        # Leaving the with-block waits for every step; nothing is cancelled.
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="account_deletion") as pool:
            futures = {pool.submit(step.run, self.user_id): step for step in self.steps}
            for future in as_completed(futures):
                step = futures[future]
                try:
                    result = future.result()
                except Exception:
                    logging.exception(f"Step {step.name} raised for user {self.user_id}")
                    result = StepResult(step.name, failed=True)
                if result.failed:
                    logging.warning(f"Step {result.name} failed for user {self.user_id}")
                self.outcome.record(result)

    def _delete_user_document(self) -> bool:
        path = f"{USERS_COLLECTION}/{self.user_id}"
        try:
            self.store.delete(path)
        except Exception as e:
            logging.error(f"Error deleting user document {path}: {e}")
            return False
        logging.info(f"User document {path} deleted")
        return True

    def _delete_profile_photo(self) -> bool:
        if self.blob_store is None:
            logging.warning(f"No blob store configured; profile photo for {self.user_id} was not deleted")
            return False
        try:
            self.blob_store.delete(self.profile_photo_ref)
        except Exception as e:
            logging.warning(f"Could not delete profile photo from Storage for {self.user_id}: {e}")
            return False
        logging.info(f"Profile photo deleted from Storage for {self.user_id}")
        return True


class AccountDeletionOrchestrator:
    """Deletes or anonymizes everything a user owns.

    Construct one with the stores to use; each call starts a fresh
    `DeletionRun`. Authorization is the caller's job.
    """

    def __init__(
        self,
        store: DocumentStore,
        blob_store: Optional[BlobStore] = None,
        steps: Optional[Sequence[DeletionStep]] = None,
        background: Optional[Executor] = None,
        max_workers: int = MAX_WORKERS,
    ):
        self.store = store
        self.blob_store = blob_store
        self.steps = list(steps) if steps is not None else default_steps(store, background=background)
        self.max_workers = max_workers

    def run(self, user_id: str, profile_photo_ref: Optional[str] = None) -> DeletionReport:
        """Runs every step for `user_id`. Raises ValueError for an empty id before any I/O."""
        if not user_id or not str(user_id).strip():
            raise ValueError("user_id is required")
        deletion = DeletionRun(
            user_id,
            profile_photo_ref,
            self.store,
            self.blob_store,
            self.steps,
            max_workers=self.max_workers,
        )
        return deletion.execute()

    def delete_account(self, user_id: str, profile_photo_ref: Optional[str] = None) -> bool:
        return self.run(user_id, profile_photo_ref).success

    def delete_account_async(
        self,
        user_id: str,
        profile_photo_ref: Optional[str] = None,
        callback: Optional[Callable[[bool], None]] = None,
    ) -> "Future[bool]":
        """Runs the deletion on a worker thread; `callback` gets the result once.

        Raises ValueError for an empty `user_id` before any thread is started.
        """
        if not user_id or not str(user_id).strip():
            raise ValueError("user_id is required")
        future: Future = Future()

        def worker():
            try:
                success = self.delete_account(user_id, profile_photo_ref)
            except Exception:
                logging.exception(f"Account deletion crashed for user {user_id}")
                success = False
            future.set_result(success)
            if callback is not None:
                try:
                    callback(success)
                except Exception:
                    logging.exception("Account deletion completion callback failed")

        # Non-daemon: the workflow is never abandoned halfway.
        threading.Thread(target=worker, name=f"account_deletion_{user_id}").start()
        return future


def resolve_deletion_target(caller_uid: Optional[str], claims: Optional[dict], data: Optional[dict]) -> str:
    """Decide whose account a deletion request targets.

    Users may always delete themselves. Deleting someone else (the banned-user
    flow) needs the `admin` custom claim. Raises PermissionError otherwise.
    """
    if not caller_uid:
        raise PermissionError("Authentication required.")
    requested = str((data or {}).get("userId") or "").strip()
    if not requested or requested == caller_uid:
        return caller_uid
    if not (claims or {}).get("admin"):
        raise PermissionError("Only admins may delete other accounts.")
    return requested


def profile_photo_for(store: DocumentStore, user_id: str) -> Optional[str]:
    """Reads the profile photo reference off the user document, if any."""
    try:
        user_data = store.get(f"{USERS_COLLECTION}/{user_id}")
    except Exception as e:
        logging.warning(f"Could not read user document for {user_id}: {e}")
        return None
    if not user_data:
        return None
    return user_data.get(PROFILE_PHOTO_FIELD) or None
