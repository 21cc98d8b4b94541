"""Hard-delete steps for data that only exists for the user's benefit."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence, Tuple

from deletion_config import (
    NOTIFICATIONS_COLLECTION,
    OWNER_FIELD,
    POINTS_TRANSACTIONS_COLLECTION,
    RECEIPT_SCAN_ATTEMPTS_COLLECTION,
    REDEEMED_REWARDS_COLLECTION,
    REFERRALS_COLLECTION,
    REFERRED_FIELD,
    REFERRER_FIELD,
    USER_RISK_SCORES_COLLECTION,
    USER_SUBCOLLECTIONS,
    USERS_COLLECTION,
)
from steps import DeletionStep, StepResult
from stores import BatchOperation


class HardDeleteStep(DeletionStep):
    """Deletes every document in `collection` whose `field` equals the owner id."""

    def __init__(self, store, collection: str, field: str = OWNER_FIELD, name: Optional[str] = None, **kwargs):
        super().__init__(store, **kwargs)
        self.collection = collection
        self.field = field
        self.name = name or f"delete_{collection}"

    def _run(self, owner_id: str) -> StepResult:
        return self._delete_matching(self.collection, self.field, owner_id, self.collection)

    def _delete_matching(self, collection, field, value, label) -> StepResult:
        docs = self._query(collection, field, value)
        if docs is None:
            return StepResult(self.name, failed=True)
        if not docs:
            return StepResult(self.name)
        result = self._commit_in_batches(docs, lambda doc: BatchOperation.delete(doc.path), label)
        logging.info(f"Deleted {result.processed} doc(s) from {label}")
        return result


class _ParallelQueriesDeleteStep(HardDeleteStep):
    """Runs several independent query+delete sequences and ORs their results."""

    def _targets(self, owner_id: str) -> Sequence[Tuple[str, str, str, str]]:
        """(collection, field, value, label) tuples; field None lists the collection."""
        raise NotImplementedError

    def _run(self, owner_id: str) -> StepResult:
        targets = self._targets(owner_id)
        with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix=self.name) as pool:
            futures = [pool.submit(self._delete_matching, *target) for target in targets]
            results = [future.result() for future in futures]

        merged = StepResult(self.name)
        for result in results:
            merged = merged.merge(result)
        return merged


class ReferralsDeleteStep(_ParallelQueriesDeleteStep):
    """A user can be either party of a referral; both sides are deleted."""

    def __init__(self, store, **kwargs):
        super().__init__(store, REFERRALS_COLLECTION, REFERRER_FIELD, name="delete_referrals", **kwargs)

    def _targets(self, owner_id):
        return [
            (REFERRALS_COLLECTION, REFERRER_FIELD, owner_id, "referrals (referrer)"),
            (REFERRALS_COLLECTION, REFERRED_FIELD, owner_id, "referrals (referred)"),
        ]


class UserSubcollectionsDeleteStep(_ParallelQueriesDeleteStep):
    """Firestore does not cascade deletes, so child collections are emptied explicitly."""

    def __init__(self, store, subcollections: Sequence[str] = USER_SUBCOLLECTIONS, **kwargs):
        super().__init__(store, USERS_COLLECTION, None, name="delete_user_subcollections", **kwargs)
        self.subcollections = tuple(subcollections)

    def _targets(self, owner_id):
        return [
            (f"{USERS_COLLECTION}/{owner_id}/{sub}", None, None, sub)
            for sub in self.subcollections
        ]


class SingleDocumentDeleteStep(DeletionStep):
    """Deletes `collection/{owner_id}`. A missing document counts as deleted."""

    def __init__(self, store, collection: str, name: Optional[str] = None, **kwargs):
        super().__init__(store, **kwargs)
        self.collection = collection
        self.name = name or f"delete_{collection}_document"

    def _run(self, owner_id: str) -> StepResult:
        path = f"{self.collection}/{owner_id}"
        try:
            self.store.delete(path)
        except Exception as e:
            logging.warning(f"Could not delete {path}: {e}")
            return StepResult(self.name, failed=True)
        logging.info(f"Deleted {path}")
        return StepResult(self.name, processed=1)


def points_transactions_step(store, **kwargs) -> HardDeleteStep:
    return HardDeleteStep(store, POINTS_TRANSACTIONS_COLLECTION, **kwargs)


def redeemed_rewards_step(store, **kwargs) -> HardDeleteStep:
    return HardDeleteStep(store, REDEEMED_REWARDS_COLLECTION, **kwargs)


def notifications_step(store, **kwargs) -> HardDeleteStep:
    return HardDeleteStep(store, NOTIFICATIONS_COLLECTION, **kwargs)


def receipt_scan_attempts_step(store, **kwargs) -> HardDeleteStep:
    return HardDeleteStep(store, RECEIPT_SCAN_ATTEMPTS_COLLECTION, **kwargs)


def risk_score_step(store, **kwargs) -> SingleDocumentDeleteStep:
    return SingleDocumentDeleteStep(store, USER_RISK_SCORES_COLLECTION, name="delete_user_risk_score", **kwargs)
