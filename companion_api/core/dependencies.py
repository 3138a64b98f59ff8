import secrets
from fastapi import Depends, HTTPException, Header, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from typing import Optional

from companion_api.db.session import get_db
from companion_api.crud import crud_user
from companion_api.core import config
from companion_api.core.config import SECRET_KEY, ALGORITHM
from companion_api.core import settings_service
from companion_api.schemas.token import TokenData
from companion_api.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)

async def get_current_user(
    token: Optional[str] = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> Optional[User]:
    if token is None:
        return None

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        email: Optional[str] = payload.get("sub")
        if email is None:
            raise credentials_exception
        token_data = TokenData(email=email)
    except JWTError:
        raise credentials_exception

    user = crud_user.get_user_by_email(db, email=token_data.email)
    if user is None:
        raise credentials_exception
    return user

async def get_current_active_user(
    current_user: Optional[User] = Depends(get_current_user),
) -> User:
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not current_user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user")
    return current_user

async def get_current_active_superuser(
    current_user: User = Depends(get_current_active_user),
) -> User:
    if not current_user.is_superuser:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The user doesn't have enough privileges",
        )
    return current_user

async def get_settings(db: Session = Depends(get_db)) -> settings_service.TypedSettings:
    return settings_service.load_settings(db)

async def require_monetization(
    settings: settings_service.TypedSettings = Depends(get_settings),
) -> settings_service.TypedSettings:
    """Capability check for every endpoint that moves money or tokens."""
    if not settings.monetization_enabled:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Monetization is disabled")
    return settings

async def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    # Read through the module so tests can patch config.CRON_SECRET
    expected = config.CRON_SECRET
    if not expected or not authorization or not secrets.compare_digest(authorization, f"Bearer {expected}"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
