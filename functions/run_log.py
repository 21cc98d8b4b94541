"""
Audit log of account deletion runs, stored in Firestore.
"""

import logging
import uuid

from firebase_admin import firestore

from deletion_config import DELETION_RUNS_COLLECTION


def log_deletion_run(store, report, initiated_by=None, source="callable"):
    """Record a finished deletion run. Returns the run document path, or None."""
    log_entry = {
        "userId": report.user_id,
        "status": "success" if report.success else "partial_failure",
        "failedSteps": report.failed_steps,
        "truncatedSteps": report.truncated_steps,
        "processed": sum(result.processed for result in report.step_results),
        "initiatedBy": initiated_by,
        "source": source,
        "endTime": firestore.SERVER_TIMESTAMP,
    }

    path = f"{DELETION_RUNS_COLLECTION}/{report.user_id}_{uuid.uuid4().hex[:12]}"
    try:
        store.set(path, log_entry)
        logging.info(f"Logged deletion run for user {report.user_id}: {log_entry['status']}")
        return path
    except Exception as e:
        logging.error(f"Failed to log deletion run for user {report.user_id}: {e}")
        return None
