"""
Login Guard Configuration

Lockout policy and sweep schedule. Policy values are environment
overridable (env) and can also be passed to the services directly.
"""
import os

# Collection holding one lock record per identifier (email)
LOGIN_LOCKS_COLLECTION = "login_locks"

# ==================== LOCKOUT POLICY ====================
LOCKOUT_POLICY = {
    # Failed attempts that trigger a lock (env)
    "max_failed_attempts": int(os.environ.get("LOGIN_MAX_FAILED_ATTEMPTS", 5)),
    # Lock duration in minutes (env)
    "lock_window_minutes": int(os.environ.get("LOGIN_LOCK_WINDOW_MINUTES", 15)),
}

# Retries for the counter read-increment-write transaction
MAX_TRANSACTION_ATTEMPTS = 5

# ==================== SWEEPER ====================
SWEEP_SCHEDULE = {
    "interval_hours": int(os.environ.get("LOGIN_LOCK_SWEEP_INTERVAL_HOURS", 1)),
    # Maximum deletions per batch (env)
    "batch_size": int(os.environ.get("LOGIN_LOCK_SWEEP_BATCH_SIZE", 500)),
    # Batches per scheduled run; larger backlogs drain over later runs
    "max_batches": 1,
}

# ==================== ERROR MESSAGES ====================
ERROR_MESSAGES = {
    "IDENTIFIER_REQUIRED": "An email address is required.",
    "SUCCESS_FLAG_REQUIRED": "The success flag is required.",
    "LOCKED": "Login is temporarily unavailable for security reasons. Please try again in {minutes} minutes.",
    "LOCK_TRIGGERED": "Too many failed login attempts. Please try again in {minutes} minutes.",
}
