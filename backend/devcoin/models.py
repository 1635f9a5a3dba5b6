"""
DevCoin Data Models

Pydantic models for question posting and the DevCoin ledger.
Document field names mirror what is stored in the collections.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Any
from datetime import datetime


# ==================== REQUEST MODELS ====================

class PostQuestionRequest(BaseModel):
    """
    Request to post a question.

    Fields are deliberately loose here; bounds and the category whitelist
    are enforced by devcoin.validation so every violation is reported as
    invalid_argument.
    """
    title: Optional[Any] = None
    body: Optional[Any] = None
    attachment: Optional[Any] = Field(None, description="Optional code example")
    category: Optional[Any] = None


# ==================== RESPONSE MODELS ====================

class PostQuestionResponse(BaseModel):
    """Response after a successful question post"""
    questionId: str
    remainingBalance: int


class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    question_cost: int


# ==================== DOCUMENT MODELS ====================

class QuestionDocument(BaseModel):
    """Question as stored in the questions collection"""
    id: str
    title: str
    body: str
    attachment: Optional[str] = None
    ownerId: str
    category: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    answerCount: int = 0
    viewCount: int = 0
    score: int = 0
    bestAnswerId: Optional[str] = None
    deletionStatus: str = "normal"
    deletionReason: Optional[str] = None
    scheduledDeletionAt: Optional[datetime] = None


class LedgerEntry(BaseModel):
    """Append-only DevCoin ledger entry"""
    ownerId: str
    type: str
    amount: int
    isFree: bool = False
    relatedId: str
    relatedType: str
    createdAt: Optional[datetime] = None


class LedgerResponse(BaseModel):
    entries: List[LedgerEntry]
    count: int


# ==================== SERVICE RESULTS ====================

class SpendResult(BaseModel):
    """Outcome of a committed spend-and-create transaction"""
    artifact_id: str
    remaining_balance: int
    replayed: bool = False
