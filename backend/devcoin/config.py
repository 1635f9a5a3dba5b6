"""
DevCoin Configuration and Constants

Question posting cost, input limits, category tags and the duplicate
window are defined here. Values marked "env" can be overridden per
deployment without code changes.
"""
import os

# ==================== COLLECTIONS ====================
COLLECTIONS = {
    "accounts": "users",
    "questions": "questions",
    "ledger": "devcoin_transactions",
}

# Account field holding the spendable balance
BALANCE_FIELD = "balance"

# ==================== COSTS ====================
# DevCoin debited per posted question (env)
QUESTION_POST_COST = int(os.environ.get("DEVCOIN_QUESTION_COST", 10))

# Ledger entry tags for a question post
LEDGER_ENTRY_TYPE = "question_post"
LEDGER_RELATED_TYPE = "question"

# ==================== TRANSACTIONS ====================
# Bounded optimistic-concurrency retries before surfacing a transient error (env)
MAX_TRANSACTION_ATTEMPTS = int(os.environ.get("DEVCOIN_MAX_TRANSACTION_ATTEMPTS", 5))

# ==================== DUPLICATE GUARD ====================
# Same title by the same account is rejected inside this window (env)
DUPLICATE_WINDOW_SECONDS = int(os.environ.get("DEVCOIN_DUPLICATE_WINDOW_SECONDS", 5 * 60))

# ==================== INPUT LIMITS ====================
QUESTION_LIMITS = {
    "title_min": 5,
    "title_max": 200,
    "body_min": 10,
    "body_max": 10000,
    "attachment_max": 5000,
}

CATEGORY_TAGS = ("Flutter", "Firebase", "Dart", "Backend", "Design", "Other")

# ==================== QUESTION STATUS ====================
DELETION_STATUS_NORMAL = "normal"

# ==================== LEDGER HISTORY ====================
LEDGER_PAGE_DEFAULT = 50
LEDGER_PAGE_MAX = 200

# ==================== ERROR MESSAGES ====================
ERROR_MESSAGES = {
    "UNAUTHENTICATED": "Authentication is required.",
    "TITLE_LENGTH": "Title must be between 5 and 200 characters.",
    "BODY_LENGTH": "Question body must be between 10 and 10,000 characters.",
    "ATTACHMENT_LENGTH": "Code example must be at most 5,000 characters.",
    "CATEGORY_INVALID": "Category tag is invalid.",
    "DUPLICATE_SUBMISSION": "A question with the same title cannot be posted again within 5 minutes.",
    "ACCOUNT_NOT_FOUND": "User account not found.",
    "INSUFFICIENT_FUNDS": "Not enough DevCoin. Posting a question requires {cost} DevCoin.",
    "TRANSACTION_ABORTED": "The question could not be posted due to concurrent updates. Please try again.",
    "INTERNAL": "Failed to post the question.",
}
