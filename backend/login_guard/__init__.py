"""
Login Guard Module
Brute-force protection for email/password login

This module provides:
- Failed-attempt counting per email address
- Timed lockout after repeated failures (5 attempts -> 15 minutes by default)
- Reset on successful login
- Hourly cleanup of expired lock records

Collections used:
- login_locks: One document per email (failedAttempts, lastAttemptAt, lockedUntil)
"""

__version__ = "1.0.0"
