"""
Statement Import API Routes

Provides endpoints for previewing and confirming bank statement imports and
for learning from category corrections made during review.
"""

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from statement_import import (
    CanonicalTransaction,
    ImportService,
    PreviewTransaction,
    SourceFormat,
    TransactionType,
)

from ..auth import User, get_current_user, require_account
from ..database import get_import_service

router = APIRouter(prefix="/imports", tags=["imports"])


class PreviewRequest(BaseModel):
    """Statement file to preview."""

    account_id: str
    file_name: str
    content: str


class ReviewedTransaction(BaseModel):
    """A preview record as returned by the reviewer."""

    index: int
    date: date
    description: str
    amount: Decimal
    currency: str
    transaction_type: TransactionType
    merchant: str | None = None
    notes: str | None = None
    is_duplicate: bool = False
    suggested_category_id: str | None = None
    skip: bool = False


class ConfirmRequest(BaseModel):
    """Reviewed records to commit."""

    account_id: str
    file_name: str
    bank: SourceFormat
    transactions: list[ReviewedTransaction]


class ImportResultResponse(BaseModel):
    """Import outcome."""

    success: bool
    imported_count: int
    duplicate_count: int
    skipped_count: int
    error_count: int
    errors: list[str]
    batch_id: str | None
    summary: str


class CorrectionRequest(BaseModel):
    """Category chosen by the user for a record."""

    merchant: str | None = None
    description: str
    category_id: str


class CorrectionResponse(BaseModel):
    """Learning outcome with the look-alike transactions found."""

    learned: bool
    similar_count: int
    similar_transaction_ids: list[str]


def _to_preview_transaction(reviewed: ReviewedTransaction) -> PreviewTransaction:
    try:
        transaction = CanonicalTransaction(
            date=reviewed.date,
            description=reviewed.description,
            amount=reviewed.amount,
            currency=reviewed.currency,
            type=reviewed.transaction_type,
            merchant=reviewed.merchant,
            notes=reviewed.notes,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Record {reviewed.index}: {e}")

    return PreviewTransaction(
        index=reviewed.index,
        transaction=transaction,
        is_duplicate=reviewed.is_duplicate,
        suggested_category_id=reviewed.suggested_category_id,
        skip=reviewed.skip,
    )


@router.post("/preview")
def preview_import(
    request: PreviewRequest,
    user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
) -> dict:
    """Detect, parse and annotate a statement file for review.

    Args:
        request: Account and file content
        user: Authenticated user
        service: Import service

    Returns:
        Preview with duplicate flags and suggested categories; format and
        validation problems are reported in ``error``
    """
    require_account(user, request.account_id)

    preview = service.preview_import(
        user.user_id,
        request.account_id,
        request.file_name,
        request.content,
    )
    return preview.to_dict()


@router.post("/confirm", response_model=ImportResultResponse)
def confirm_import(
    request: ConfirmRequest,
    user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
) -> ImportResultResponse:
    """Commit reviewed records.

    Args:
        request: Reviewed records and their source
        user: Authenticated user
        service: Import service

    Returns:
        Import counts and per-record errors
    """
    require_account(user, request.account_id)
    records = [_to_preview_transaction(t) for t in request.transactions]

    result = service.confirm_import(
        user.user_id,
        request.account_id,
        records,
        request.file_name,
        request.bank,
    )

    return ImportResultResponse(**result.to_dict())


@router.post("/corrections", response_model=CorrectionResponse)
def learn_correction(
    request: CorrectionRequest,
    user: User = Depends(get_current_user),
    service: ImportService = Depends(get_import_service),
) -> CorrectionResponse:
    """Learn a category correction and report similar imported transactions."""
    result = service.learn_category_correction(
        user.user_id,
        request.merchant,
        request.description,
        request.category_id,
    )
    return CorrectionResponse(**result.to_dict())
