"""Utility to run an account deletion locally against configured Firestore.

Useful for operator follow-up passes (e.g. owners with more documents than one
batch can hold) without invoking the deployed callable. It uses Application
Default Credentials, so ensure you've run
`gcloud auth application-default login` or have a service account configured.
Set FIRESTORE_EMULATOR_HOST / FIREBASE_STORAGE_EMULATOR_HOST to target the
emulators instead.
"""

import argparse
import logging
import sys

from firebase_admin import initialize_app

from account_deletion import AccountDeletionOrchestrator, profile_photo_for
from deletion_config import get_default_storage_bucket_name
from run_log import log_deletion_run
from stores import FirebaseStorageBlobStore, FirestoreDocumentStore


def main(argv=None):
    parser = argparse.ArgumentParser(description="Delete and anonymize a user's data.")
    parser.add_argument("user_id", help="uid of the account to delete")
    parser.add_argument("--photo-url", help="profile photo reference; read from the user document if omitted")
    parser.add_argument("--bucket", help="Storage bucket for bare object paths")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    bucket = args.bucket or get_default_storage_bucket_name()
    initialize_app(options={"storageBucket": bucket} if bucket else None)

    store = FirestoreDocumentStore()
    orchestrator = AccountDeletionOrchestrator(store, FirebaseStorageBlobStore(default_bucket=bucket))

    photo_ref = args.photo_url or profile_photo_for(store, args.user_id)
    logging.info(f"Starting deletion of {args.user_id}...")
    report = orchestrator.run(args.user_id, photo_ref)
    log_deletion_run(store, report, source="local")

    print(f"Deletion of {args.user_id}: {'success' if report.success else 'completed with errors'}")
    if report.failed_steps:
        print(f"Failed steps: {', '.join(report.failed_steps)}")
    if report.truncated_steps:
        print(f"Run again to finish: {', '.join(report.truncated_steps)}")
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
