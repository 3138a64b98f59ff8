from sqlalchemy.orm import Session
from typing import Optional, List

from companion_api.models.referral import ReferralEdge
from companion_api.models.user import User

def get_edge_for_user(db: Session, *, user_id: int) -> Optional[ReferralEdge]:
    """Return the edge pointing from user_id to its referrer, if any."""
    return db.query(ReferralEdge).filter(ReferralEdge.referred_user_id == user_id).first()

def get_referrer_id(db: Session, *, user_id: int) -> Optional[int]:
    edge = get_edge_for_user(db, user_id=user_id)
    return edge.referrer_id if edge else None

def create_edge(db: Session, *, referred_user_id: int, referrer_id: int) -> ReferralEdge:
    db_obj = ReferralEdge(referred_user_id=referred_user_id, referrer_id=referrer_id)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def get_direct_referrals(db: Session, *, referrer_ids: List[int]) -> List[User]:
    """Users whose referrer is one of referrer_ids, oldest first."""
    if not referrer_ids:
        return []
    return (
        db.query(User)
        .join(ReferralEdge, ReferralEdge.referred_user_id == User.id)
        .filter(ReferralEdge.referrer_id.in_(referrer_ids))
        .order_by(ReferralEdge.created_at.asc(), User.id.asc())
        .all()
    )

def count_direct_referrals(db: Session, *, referrer_id: int) -> int:
    return db.query(ReferralEdge).filter(ReferralEdge.referrer_id == referrer_id).count()
