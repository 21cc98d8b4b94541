"""
Configuration for the account deletion Firebase Functions.
Collection names, sentinel values and batch limits live here.
"""

import json
import logging
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return default


# Firestore allows 500 writes per batch; stay under it.
BATCH_CAPACITY = _env_int("DELETION_BATCH_CAPACITY", 450)

# Only the first batch per step is committed in a single run. Owners with more
# matching documents than this need another pass.
MAX_BATCHES_PER_RUN = _env_int("DELETION_MAX_BATCHES_PER_RUN", 1)

MAX_WORKERS = _env_int("DELETION_MAX_WORKERS", 16)

DELETED_USER_NAME = "Deleted User"
EMPTY = ""

# --- Collections ---
USERS_COLLECTION = "users"
RECEIPTS_COLLECTION = "receipts"
SUSPICIOUS_FLAGS_COLLECTION = "suspiciousFlags"
GIFTED_REWARDS_COLLECTION = "giftedRewards"
GIFTED_REWARD_CLAIMS_COLLECTION = "giftedRewardClaims"
POSTS_COLLECTION = "posts"
REPLIES_SUBCOLLECTION = "replies"
POINTS_TRANSACTIONS_COLLECTION = "pointsTransactions"
REDEEMED_REWARDS_COLLECTION = "redeemedRewards"
REFERRALS_COLLECTION = "referrals"
NOTIFICATIONS_COLLECTION = "notifications"
RECEIPT_SCAN_ATTEMPTS_COLLECTION = "receiptScanAttempts"
USER_RISK_SCORES_COLLECTION = "userRiskScores"
USER_SUBCOLLECTIONS = ("clientState", "activity")
DELETION_RUNS_COLLECTION = "accountDeletionRuns"

# --- Fields ---
OWNER_FIELD = "userId"
REFERRER_FIELD = "referrerUserId"
REFERRED_FIELD = "referredUserId"
GIFT_TARGETS_FIELD = "targetUserIds"
PROFILE_PHOTO_FIELD = "profilePhotoURL"


def get_default_storage_bucket_name() -> str | None:
    """Returns the Firebase Storage bucket name from FIREBASE_CONFIG if present."""
    cfg = os.environ.get("FIREBASE_CONFIG")
    if not cfg:
        return None
    try:
        parsed = json.loads(cfg)
    except ValueError:
        logging.warning("FIREBASE_CONFIG is not valid JSON; no default bucket")
        return None
    return parsed.get("storageBucket")


def configure_logging() -> None:
    # Cloud Run forwards the root logger; set its level so INFO shows up.
    level_name = os.environ.get("DELETION_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level)
    logging.getLogger().setLevel(level)
