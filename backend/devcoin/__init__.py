"""
DevCoin Module
Balance-gated question posting for the developer Q&A community

This module provides:
- DevCoin balance ledger (atomic debit + question creation + ledger entry)
- Duplicate question guard (same title, same user, 5 minute cooldown)
- Input validation for question posts
- Ledger history and balance queries

Collections used:
- users: Account balance (balance field)
- questions: Posted questions
- devcoin_transactions: Append-only ledger of DevCoin movements
"""

__version__ = "1.0.0"
