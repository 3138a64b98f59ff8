import logging
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from companion_api.db.session import get_db
from companion_api.crud import crud_user
from companion_api.core.security import verify_password, create_access_token
from companion_api.core.referrals import link_referrer, ReferralLinkError
from companion_api.core.dependencies import get_current_active_user
from companion_api.models.user import User as UserModel
from companion_api.schemas.token import Token
from companion_api.schemas.user import User, UserCreate

logger = logging.getLogger(__name__)
router = APIRouter()

@router.post("/register", response_model=User, status_code=201)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)):
    """
    Register a new user, optionally under the owner of referral_code.
    """
    if crud_user.get_user_by_email(db, email=user_in.email):
        raise HTTPException(
            status_code=400,
            detail="A user with this email already exists in the system.",
        )

    # Check the code before creating anything
    if user_in.referral_code and not crud_user.get_user_by_referral_code(db, user_in.referral_code):
        raise HTTPException(status_code=404, detail="Invalid referral code")

    # Public registration never grants admin rights
    user_in = user_in.model_copy(update={"is_superuser": False})
    new_user = crud_user.create_user(db=db, obj_in=user_in)

    if user_in.referral_code:
        try:
            link_referrer(db, user=new_user, referral_code=user_in.referral_code)
        except ReferralLinkError as e:
            logger.warning(f"User {new_user.id} registered but referral link failed: {e.detail}")
    return new_user

@router.post("/login", response_model=Token)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    OAuth2 compatible token login, get an access token for future requests.
    """
    user = crud_user.get_user_by_email(db, email=form_data.username)

    if not user or not user.hashed_password or not verify_password(form_data.password, user.hashed_password):
        logger.info(f"Failed login attempt for {form_data.username}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(data={"sub": user.email})
    return {"access_token": access_token, "token_type": "bearer"}

@router.get("/me", response_model=User)
async def read_user_me(current_user: UserModel = Depends(get_current_active_user)):
    """
    Get current logged-in user's profile.
    """
    return current_user
