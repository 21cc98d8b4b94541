"""Seed the Firestore emulator with a user whose account can be deleted.

Run the emulators, then `python populate_emulator.py` and call the
`delete_account` function (or `functions/run_deletion_locally.py demo_user`)
against them.
"""
import os
import firebase_admin
from firebase_admin import firestore

# --- Configuration ---
# Point the SDK to the Firestore emulator
os.environ.setdefault("FIRESTORE_EMULATOR_HOST", "localhost:8282")

USER_ID = "demo_user"
OTHER_USER_ID = "other_user"

# --- Initialization ---
try:
    # No specific service account key needed when running against emulator
    firebase_admin.initialize_app()
    print("Firebase Admin SDK initialized successfully.")
except ValueError as e:
    if "The default Firebase app already exists" in str(e):
        print("Firebase Admin SDK already initialized.")
    else:
        raise e

db = firestore.client()
print("Firestore client obtained.")

# --- Data Definitions ---
# (document path, data)
documents = [
    (f"users/{USER_ID}", {"name": "Demo User", "phone": "+15555550100"}),
    (f"users/{USER_ID}/clientState/preferences", {"theme": "dark"}),
    (f"users/{USER_ID}/activity/first_login", {"kind": "login"}),
    (f"users/{OTHER_USER_ID}", {"name": "Other User", "phone": "+15555550199"}),
    # --- Anonymized, kept as audit trail ---
    ("receipts/receipt_1", {"userId": USER_ID, "userName": "Demo User", "userPhone": "+15555550100", "userEmail": "demo@example.com", "total": 24.5}),
    ("receipts/receipt_2", {"userId": USER_ID, "userName": "Demo User", "userPhone": "+15555550100", "total": 8.0}),
    ("suspiciousFlags/flag_1", {"userId": USER_ID, "reason": "duplicate_receipt", "evidence": {"userName": "Demo User", "receiptId": "receipt_2"}}),
    ("giftedRewards/gift_1", {"targetUserIds": [USER_ID, OTHER_USER_ID], "rewardName": "Free Dumplings"}),
    ("giftedRewardClaims/claim_1", {"userId": USER_ID, "userName": "Demo User", "userPhone": "+15555550100", "giftId": "gift_1"}),
    ("posts/post_1", {"userId": USER_ID, "userName": "Demo User", "userDisplayName": "Demo", "text": "Best dumplings in town"}),
    ("posts/post_1/replies/reply_1", {"userId": USER_ID, "userName": "Demo User", "userDisplayName": "Demo", "text": "Agreed!"}),
    ("posts/post_1/replies/reply_2", {"userId": OTHER_USER_ID, "userName": "Other User", "userDisplayName": "Other", "text": "Same"}),
    # --- Hard deleted ---
    ("pointsTransactions/tx_1", {"userId": USER_ID, "points": 120}),
    ("redeemedRewards/rr_1", {"userId": USER_ID, "rewardName": "Free Tea"}),
    ("referrals/ref_1", {"referrerUserId": USER_ID, "referredUserId": OTHER_USER_ID}),
    ("referrals/ref_2", {"referrerUserId": OTHER_USER_ID, "referredUserId": USER_ID}),
    ("notifications/notif_1", {"userId": USER_ID, "title": "Welcome!"}),
    ("receiptScanAttempts/scan_1", {"userId": USER_ID, "status": "rejected"}),
    (f"userRiskScores/{USER_ID}", {"score": 12}),
]

# --- Population Logic ---

print(f"\nPopulating data for '{USER_ID}'...")
for path, data in documents:
    try:
        db.document(path).set(data)
        print(f"  Added/Updated: {path}")
    except Exception as e:
        print(f"  Error adding {path}: {e}")

print("\nEmulator population script finished.")
