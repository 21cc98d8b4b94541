# Cloud Functions for Firebase (Python) handling account deletion.
# Deploy with `firebase deploy --only functions`

from firebase_functions import https_fn, options
from firebase_admin import initialize_app
import logging

from account_deletion import (
    AccountDeletionOrchestrator,
    profile_photo_for,
    resolve_deletion_target,
)
from deletion_config import configure_logging
from run_log import log_deletion_run
from stores import FirebaseStorageBlobStore, FirestoreDocumentStore

configure_logging()

initialize_app()

# Reused across warm invocations.
_orchestrator: AccountDeletionOrchestrator | None = None


def _get_orchestrator() -> AccountDeletionOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        store = FirestoreDocumentStore()
        _orchestrator = AccountDeletionOrchestrator(store, FirebaseStorageBlobStore())
    return _orchestrator


@https_fn.on_call(memory=options.MemoryOption.MB_512, timeout_sec=540)
def delete_account(req: https_fn.CallableRequest) -> https_fn.Response | dict:
    """Deletes the caller's account, or another user's when called by an admin.

    Accepts data: { userId?: str, profilePhotoURL?: str }
    Returns: { success: bool, userId: str, failedSteps: [str] }
    """
    try:
        caller_uid = None
        claims = {}
        if hasattr(req, "auth") and req.auth is not None:
            caller_uid = req.auth.uid
            claims = req.auth.token or {}

        data = req.data or {}
        try:
            user_id = resolve_deletion_target(caller_uid, claims, data)
        except PermissionError as e:
            code = (
                https_fn.FunctionsErrorCode.UNAUTHENTICATED
                if caller_uid is None
                else https_fn.FunctionsErrorCode.PERMISSION_DENIED
            )
            raise https_fn.HttpsError(code=code, message=str(e))

        orchestrator = _get_orchestrator()
        photo_ref = str(data.get("profilePhotoURL") or "").strip() or profile_photo_for(
            orchestrator.store, user_id
        )

        logging.info(
            "ACCOUNT_DELETION requested userId=%s by=%s hasPhoto=%s",
            user_id,
            caller_uid,
            bool(photo_ref),
        )
        report = orchestrator.run(user_id, photo_ref)
        log_deletion_run(orchestrator.store, report, initiated_by=caller_uid)

        return {
            "success": report.success,
            "userId": user_id,
            "failedSteps": report.failed_steps,
        }
    except https_fn.HttpsError:
        raise
    except Exception as e:
        logging.error(f"delete_account error: {e}")
        raise https_fn.HttpsError(
            code=https_fn.FunctionsErrorCode.INTERNAL,
            message="Failed to delete account.",
            details=str(e),
        )
