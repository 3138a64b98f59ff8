from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_bonus, crud_referral
from companion_api.core.dependencies import get_current_active_user
from companion_api.core.referrals import link_referrer, get_downlines, ReferralLinkError
from companion_api.models.user import User as UserModel
from companion_api.schemas.referral import (
    ReferralLinkRequest,
    ReferralLinkResponse,
    Downline,
    DownlineStats,
    DownlinesResponse,
    ReferralSummary,
)

router = APIRouter()

def _stats(levels) -> DownlineStats:
    stats = DownlineStats(total=len(levels))
    for level in levels:
        setattr(stats, f"level{level}", getattr(stats, f"level{level}") + 1)
    return stats

@router.post("/link", response_model=ReferralLinkResponse, status_code=201)
def link_my_referrer(
    payload: ReferralLinkRequest,
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    """
    Attach the current user to the owner of referral_code. A user can be linked once.
    """
    try:
        edge = link_referrer(db, user=current_user, referral_code=payload.referral_code)
    except ReferralLinkError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)
    return ReferralLinkResponse(referrer_id=edge.referrer_id, referred_user_id=edge.referred_user_id)

@router.get("/downlines", response_model=DownlinesResponse)
def read_my_downlines(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    rows = get_downlines(db, user_id=current_user.id)
    downlines = [
        Downline(user_id=user.id, email=user.email, username=user.username, level=level, joined_at=user.created_at)
        for user, level in rows
    ]
    return DownlinesResponse(downlines=downlines, stats=_stats([level for _, level in rows]))

@router.get("/me", response_model=ReferralSummary)
def read_my_referral_summary(
    db: Session = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
):
    rows = get_downlines(db, user_id=current_user.id)
    wallet = crud_bonus.get_wallet(db, user_id=current_user.id)
    return ReferralSummary(
        referral_code=current_user.referral_code,
        referrer_id=crud_referral.get_referrer_id(db, user_id=current_user.id),
        stats=_stats([level for _, level in rows]),
        lifetime_earnings=wallet.lifetime_earnings if wallet else 0,
    )
