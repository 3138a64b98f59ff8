import secrets
from sqlalchemy.orm import Session
from typing import Optional

from companion_api.models.user import User
from companion_api.schemas.user import UserCreate, UserUpdate
from companion_api.core.security import get_password_hash

REFERRAL_CODE_BYTES = 4  # 8 hex characters

def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()

def get_user_by_referral_code(db: Session, referral_code: str) -> Optional[User]:
    return db.query(User).filter(User.referral_code == referral_code.strip().upper()).first()

def generate_referral_code(db: Session) -> str:
    while True:
        code = secrets.token_hex(REFERRAL_CODE_BYTES).upper()
        if not get_user_by_referral_code(db, code):
            return code

def create_user(db: Session, *, obj_in: UserCreate) -> User:
    """
    Create a new user with a freshly generated referral code.
    Linking to a referrer is done separately, see companion_api.core.referrals.
    """
    db_obj = User(
        email=obj_in.email,
        hashed_password=get_password_hash(obj_in.password),
        username=obj_in.username,
        referral_code=generate_referral_code(db),
        is_active=True,
        is_superuser=obj_in.is_superuser,
    )
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj

def update_user(db: Session, *, db_obj: User, obj_in: UserUpdate) -> User:
    update_data = obj_in.model_dump(exclude_unset=True)

    password = update_data.pop("password", None)
    if password:
        update_data["hashed_password"] = get_password_hash(password)

    for field, value in update_data.items():
        setattr(db_obj, field, value)

    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
