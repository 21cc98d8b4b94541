"""Anonymization steps.

These keep PII-bearing records as an audit trail and only overwrite the
fields that identify the user. Document keys and every other field are left
as they were.
"""

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Sequence

from deletion_config import (
    DELETED_USER_NAME,
    EMPTY,
    GIFT_TARGETS_FIELD,
    GIFTED_REWARD_CLAIMS_COLLECTION,
    GIFTED_REWARDS_COLLECTION,
    OWNER_FIELD,
    POSTS_COLLECTION,
    RECEIPTS_COLLECTION,
    REPLIES_SUBCOLLECTION,
    SUSPICIOUS_FLAGS_COLLECTION,
)
from steps import DeletionStep, StepResult
from stores import BatchOperation, DocumentHandle

# Shared pool for detached reply anonymization, created on first use.
_reply_executor: Optional[ThreadPoolExecutor] = None
_reply_executor_lock = threading.Lock()


def _get_reply_executor() -> ThreadPoolExecutor:
    global _reply_executor
    with _reply_executor_lock:
        if _reply_executor is None:
            _reply_executor = ThreadPoolExecutor(
                max_workers=4, thread_name_prefix="reply_anonymization"
            )
        return _reply_executor


class AnonymizationStep(DeletionStep):
    """Rewrites a fixed set of PII fields on every document the owner matches."""

    collection = ""
    owner_field = OWNER_FIELD
    op = "=="
    replacements: Dict[str, Any] = {}

    def rewrite(self, doc: DocumentHandle, owner_id: str) -> Optional[Dict[str, Any]]:
        """Fields to update on `doc`, or None to leave it untouched."""
        return dict(self.replacements)

    def _run(self, owner_id: str) -> StepResult:
        docs = self._query(self.collection, self.owner_field, owner_id, self.op)
        if docs is None:
            return StepResult(self.name, failed=True)
        if not docs:
            return StepResult(self.name)

        result = self._commit_in_batches(
            docs,
            lambda doc: self._to_operation(doc, owner_id),
            self.collection,
            on_committed=lambda chunk: self._after_commit(owner_id, chunk),
        )
        logging.info(f"Anonymized {result.processed} {self.collection} document(s) for user {owner_id}")
        return result

    def _to_operation(self, doc, owner_id):
        fields = self.rewrite(doc, owner_id)
        if not fields:
            return None
        return BatchOperation.update(doc.path, fields)

    def _after_commit(self, owner_id: str, docs: Sequence[DocumentHandle]) -> None:
        pass


class ReceiptsAnonymization(AnonymizationStep):
    # Admin views show "Deleted User" instead of looking up a missing account.
    name = "anonymize_receipts"
    collection = RECEIPTS_COLLECTION
    replacements = {
        "userName": DELETED_USER_NAME,
        "userPhone": EMPTY,
        "userEmail": EMPTY,
    }


class SuspiciousFlagsAnonymization(AnonymizationStep):
    name = "anonymize_suspicious_flags"
    collection = SUSPICIOUS_FLAGS_COLLECTION
    evidence_replacements = {
        "userName": DELETED_USER_NAME,
        "userPhone": EMPTY,
        "userEmail": EMPTY,
    }

    def rewrite(self, doc, owner_id):
        evidence = doc.data.get("evidence")
        if not isinstance(evidence, dict):
            return None
        present = [key for key in self.evidence_replacements if key in evidence]
        if not present:
            return None
        updated = dict(evidence)
        for key in present:
            updated[key] = self.evidence_replacements[key]
        return {"evidence": updated}


class GiftedRewardsAnonymization(AnonymizationStep):
    """Drops the user from the recipients of gifts addressed to them."""

    name = "anonymize_gifted_rewards"
    collection = GIFTED_REWARDS_COLLECTION
    owner_field = GIFT_TARGETS_FIELD
    op = "array_contains"

    def rewrite(self, doc, owner_id):
        targets = doc.data.get(GIFT_TARGETS_FIELD)
        if not isinstance(targets, list):
            return None
        return {GIFT_TARGETS_FIELD: [uid for uid in targets if uid != owner_id]}


class GiftedRewardClaimsAnonymization(AnonymizationStep):
    name = "anonymize_gifted_reward_claims"
    collection = GIFTED_REWARD_CLAIMS_COLLECTION
    replacements = {
        "userName": DELETED_USER_NAME,
        "userPhone": EMPTY,
    }


POST_REPLACEMENTS = {
    "userName": DELETED_USER_NAME,
    "userDisplayName": DELETED_USER_NAME,
}


class PostsAnonymization(AnonymizationStep):
    """Anonymizes community posts, then their replies in the background.

    Reply anonymization is fire-and-forget: it is submitted to `background`
    once a batch of posts commits, its outcome is only logged, and it never
    changes this step's result.
    """

    name = "anonymize_posts"
    collection = POSTS_COLLECTION
    replacements = POST_REPLACEMENTS

    def __init__(self, store, background: Optional[Executor] = None, **kwargs):
        super().__init__(store, **kwargs)
        self._background = background

    def _after_commit(self, owner_id, docs):
        post_paths = [doc.path for doc in docs]
        executor = self._background or _get_reply_executor()
        try:
            future = executor.submit(self.anonymize_replies, owner_id, post_paths)
        except RuntimeError as e:
            logging.warning(f"Could not schedule reply anonymization for user {owner_id}: {e}")
            return
        future.add_done_callback(_log_reply_result)

    def anonymize_replies(self, owner_id: str, post_paths: Sequence[str]) -> StepResult:
        result = StepResult("anonymize_post_replies")
        for post_path in post_paths:
            replies_path = f"{post_path}/{REPLIES_SUBCOLLECTION}"
            replies = self._query(replies_path, OWNER_FIELD, owner_id)
            if replies is None:
                result.failed = True
                continue
            if not replies:
                continue
            batch_result = self._commit_in_batches(
                replies,
                lambda doc: BatchOperation.update(doc.path, POST_REPLACEMENTS),
                replies_path,
            )
            result = result.merge(batch_result)
        return result


def _log_reply_result(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logging.warning(f"Reply anonymization crashed: {exc}")
        return
    result = future.result()
    if result.failed:
        logging.warning(f"Reply anonymization finished with errors after {result.processed} update(s)")
    else:
        logging.info(f"Anonymized {result.processed} post reply(ies)")
