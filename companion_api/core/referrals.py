import logging
from typing import List, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from companion_api.core.config import MAX_COMMISSION_LEVELS
from companion_api.crud import crud_referral, crud_user
from companion_api.models.referral import ReferralEdge
from companion_api.models.user import User

logger = logging.getLogger(__name__)


class ReferralLinkError(Exception):
    """Raised when a referral link cannot be created. status_code maps to HTTP."""

    def __init__(self, detail: str, status_code: int = 400):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


def would_create_cycle(db: Session, *, referred_user_id: int, referrer_id: int) -> bool:
    """True if referred_user_id already appears among referrer_id's ancestors."""
    seen = set()
    current = referrer_id
    while current is not None and current not in seen:
        if current == referred_user_id:
            return True
        seen.add(current)
        current = crud_referral.get_referrer_id(db, user_id=current)
    return current is not None  # Revisited a node: existing data already has a cycle


def link_referrer(db: Session, *, user: User, referral_code: str) -> ReferralEdge:
    referrer = crud_user.get_user_by_referral_code(db, referral_code)
    if not referrer:
        raise ReferralLinkError("Invalid referral code", status_code=404)

    if referrer.id == user.id:
        raise ReferralLinkError("Cannot refer yourself")

    if crud_referral.get_edge_for_user(db, user_id=user.id):
        raise ReferralLinkError("Referrer already linked", status_code=409)

    if would_create_cycle(db, referred_user_id=user.id, referrer_id=referrer.id):
        raise ReferralLinkError("Referral link would create a cycle")

    try:
        edge = crud_referral.create_edge(db, referred_user_id=user.id, referrer_id=referrer.id)
    except IntegrityError:
        # Another request linked this user after the check above
        db.rollback()
        raise ReferralLinkError("Referrer already linked", status_code=409)
    logger.info(f"Linked user {user.id} to referrer {referrer.id}")
    return edge


def get_downlines(db: Session, *, user_id: int, max_level: int = MAX_COMMISSION_LEVELS) -> List[Tuple[User, int]]:
    """Users below user_id in the referral tree, paired with their level (1 = direct)."""
    result = []
    seen = {user_id}
    frontier = [user_id]
    for level in range(1, max_level + 1):
        children = [u for u in crud_referral.get_direct_referrals(db, referrer_ids=frontier) if u.id not in seen]
        if not children:
            break
        for child in children:
            seen.add(child.id)
            result.append((child, level))
        frontier = [child.id for child in children]
    return result
