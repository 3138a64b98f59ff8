import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_token_wallet
from companion_api.core.dependencies import get_current_active_user, get_settings
from companion_api.core.settings_service import TypedSettings
from companion_api.models.user import User as UserModel
from companion_api.schemas.token_wallet import (
    TokenBalance,
    TokenDeductRequest,
    TokenRefundRequest,
    TokenTransaction,
)

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/balance", response_model=TokenBalance)
def read_my_token_balance(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    return TokenBalance(user_id=current_user.id, balance=crud_token_wallet.get_balance(db, user_id=current_user.id))

@router.get("/transactions", response_model=List[TokenTransaction])
def read_my_token_transactions(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    return crud_token_wallet.get_transactions(db, user_id=current_user.id, skip=skip, limit=limit)

@router.post("/deduct", response_model=TokenBalance)
def deduct_my_tokens(
    payload: TokenDeductRequest,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
    settings: TypedSettings = Depends(get_settings),
):
    """
    Spend tokens for a chat message or generation. Free while monetization is off.
    """
    if not settings.monetization_enabled:
        return TokenBalance(user_id=current_user.id, balance=crud_token_wallet.get_balance(db, user_id=current_user.id))

    if not crud_token_wallet.deduct_tokens(db, user_id=current_user.id, amount=payload.amount, description=payload.description):
        current_balance = crud_token_wallet.get_balance(db, user_id=current_user.id)
        logger.info(f"User {current_user.id} has {current_balance} tokens, needs {payload.amount}")
        return JSONResponse(status_code=400, content={
            "detail": "Insufficient tokens",
            "insufficient_tokens": True,
            "current_balance": current_balance,
            "required_tokens": payload.amount,
        })

    return TokenBalance(user_id=current_user.id, balance=crud_token_wallet.get_balance(db, user_id=current_user.id))

@router.post("/refund", response_model=TokenBalance)
def refund_my_tokens(
    payload: TokenRefundRequest,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Give tokens back after a generation failed. Cannot exceed what the user has spent.
    """
    spent = crud_token_wallet.get_total_usage(db, user_id=current_user.id)
    refunded = crud_token_wallet.get_total_refunded(db, user_id=current_user.id)
    if payload.amount > spent - refunded:
        raise HTTPException(status_code=400, detail="Refund exceeds tokens spent")

    crud_token_wallet.credit_tokens(
        db, user_id=current_user.id, amount=payload.amount, type="refund", description=payload.description
    )
    logger.info(f"Refunded {payload.amount} tokens to user {current_user.id}")
    return TokenBalance(user_id=current_user.id, balance=crud_token_wallet.get_balance(db, user_id=current_user.id))
