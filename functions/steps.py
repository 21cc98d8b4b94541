"""
Shared pieces for the per-collection deletion steps.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from deletion_config import BATCH_CAPACITY, MAX_BATCHES_PER_RUN
from stores import BatchOperation, DocumentHandle, DocumentStore


@dataclass
class StepResult:
    name: str
    failed: bool = False
    processed: int = 0
    truncated: bool = False

    def merge(self, other: "StepResult") -> "StepResult":
        return StepResult(
            name=self.name,
            failed=self.failed or other.failed,
            processed=self.processed + other.processed,
            truncated=self.truncated or other.truncated,
        )


class DeletionStep:
    """One collection-scoped anonymize-or-delete operation.

    Subclasses implement `_run`. `run` never raises: anything escaping `_run`
    is logged and reported as a failed result.
    """

    name = "step"

    def __init__(
        self,
        store: DocumentStore,
        batch_capacity: int = BATCH_CAPACITY,
        max_batches: int = MAX_BATCHES_PER_RUN,
    ):
        self.store = store
        self.batch_capacity = batch_capacity
        self.max_batches = max_batches

    def run(self, owner_id: str) -> StepResult:
        try:
            return self._run(owner_id)
        except Exception:
            logging.exception(f"Unexpected error in {self.name} for user {owner_id}")
            return StepResult(self.name, failed=True)

    def _run(self, owner_id: str) -> StepResult:
        raise NotImplementedError

    def _query(self, collection, field, value, op="==") -> Optional[List[DocumentHandle]]:
        """Returns matching documents, or None if the query itself failed."""
        try:
            return self.store.query(collection, field, value, op)
        except Exception as e:
            logging.warning(f"Could not query {collection} for {self.name}: {e}")
            return None

    def _commit_in_batches(
        self,
        docs: Sequence[DocumentHandle],
        to_operation: Callable[[DocumentHandle], Optional[BatchOperation]],
        label: str,
        on_committed: Optional[Callable[[Sequence[DocumentHandle]], None]] = None,
    ) -> StepResult:
        """Commit one operation per document in capacity-sized batches.

        Only `max_batches` batches are attempted; the rest of `docs` is left
        for a later pass. A failed batch marks the result failed but the
        remaining batches are still attempted. `on_committed` receives the
        documents of every batch that committed.
        """
        result = StepResult(self.name)
        limit = self.batch_capacity * self.max_batches
        if len(docs) > limit:
            result.truncated = True
            logging.warning(
                f"More than {limit} documents in {label}; "
                f"{len(docs) - limit} were not processed in this pass."
            )

        window = docs[:limit]
        for start in range(0, len(window), self.batch_capacity):
            chunk = window[start : start + self.batch_capacity]
            operations = [op for op in (to_operation(doc) for doc in chunk) if op is not None]
            if not operations:
                continue
            try:
                self.store.commit_batch(operations, max_batch_size=self.batch_capacity)
            except Exception as e:
                logging.warning(f"Failed committing batch of {len(operations)} for {label}: {e}")
                result.failed = True
                continue
            result.processed += len(operations)
            logging.info(f"Committed batch of {len(operations)} document(s) for {label}")
            if on_committed is not None:
                on_committed(chunk)
        return result
