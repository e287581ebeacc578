"""
Transactions API Routes

Provides endpoints for finding similar transactions and recategorizing
committed transactions, manually or from learned patterns.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from statement_import import Recategorizer

from ..auth import User, get_current_user
from ..database import get_recategorizer

router = APIRouter(prefix="/transactions", tags=["transactions"])


class SimilarTransaction(BaseModel):
    """Committed transaction resembling the one under review."""

    id: str
    date: str
    description: str
    amount: float
    merchant: str | None
    category_id: str | None


class SimilarTransactionsResponse(BaseModel):
    """Similar transactions grouped by how they matched."""

    by_merchant: list[SimilarTransaction]
    by_description: list[SimilarTransaction]
    total: int


class RecategorizeRequest(BaseModel):
    """Explicit transactions to move to a category."""

    transaction_ids: list[str]
    category_id: str


class MerchantRecategorizeRequest(BaseModel):
    """Merchant whose transactions move to a category."""

    merchant: str
    category_id: str


class RecategorizeResponse(BaseModel):
    """Bulk update outcome."""

    success: bool
    updated: int
    errors: int
    message: str | None


class PatternStatsResponse(BaseModel):
    """Learned pattern summary."""

    total_patterns: int
    high_confidence: int
    low_confidence: int
    patterns: list[dict]


@router.get("/similar", response_model=SimilarTransactionsResponse)
def find_similar_transactions(
    description: str = Query(..., min_length=1),
    merchant: str | None = Query(None),
    exclude_id: str | None = Query(None),
    user: User = Depends(get_current_user),
    recategorizer: Recategorizer = Depends(get_recategorizer),
) -> SimilarTransactionsResponse:
    """Find transactions sharing the merchant or description keywords.

    Args:
        description: Description of the reference transaction
        merchant: Merchant of the reference transaction
        exclude_id: Reference transaction id, left out of the results
        user: Authenticated user
        recategorizer: Recategorizer

    Returns:
        Merchant matches and additional description matches
    """
    similar = recategorizer.find_all_similar(user.user_id, merchant, description, exclude_id)
    return SimilarTransactionsResponse(**similar.to_dict())


@router.post("/recategorize", response_model=RecategorizeResponse)
def recategorize_transactions(
    request: RecategorizeRequest,
    user: User = Depends(get_current_user),
    recategorizer: Recategorizer = Depends(get_recategorizer),
) -> RecategorizeResponse:
    """Move the given transactions to a category."""
    result = recategorizer.recategorize_transactions(
        user.user_id,
        request.transaction_ids,
        request.category_id,
    )
    return RecategorizeResponse(**result.to_dict())


@router.post("/recategorize/merchant", response_model=RecategorizeResponse)
def recategorize_by_merchant(
    request: MerchantRecategorizeRequest,
    user: User = Depends(get_current_user),
    recategorizer: Recategorizer = Depends(get_recategorizer),
) -> RecategorizeResponse:
    """Move every transaction of a merchant to a category."""
    result = recategorizer.recategorize_by_merchant(
        user.user_id,
        request.merchant,
        request.category_id,
    )
    return RecategorizeResponse(**result.to_dict())


@router.post("/patterns/apply", response_model=RecategorizeResponse)
def apply_learned_patterns(
    user: User = Depends(get_current_user),
    recategorizer: Recategorizer = Depends(get_recategorizer),
) -> RecategorizeResponse:
    """Recategorize committed transactions using high-confidence patterns."""
    result = recategorizer.apply_learned_patterns(user.user_id)
    return RecategorizeResponse(**result.to_dict())


@router.get("/patterns/stats", response_model=PatternStatsResponse)
def get_pattern_stats(
    user: User = Depends(get_current_user),
    recategorizer: Recategorizer = Depends(get_recategorizer),
) -> PatternStatsResponse:
    """Summarize the user's learned patterns."""
    stats = recategorizer.pattern_stats(user.user_id)
    return PatternStatsResponse(**stats.to_dict())
