from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

class UserBase(BaseModel):
    email: EmailStr
    username: Optional[str] = Field(default=None, max_length=100)

class UserCreate(UserBase):
    password: str = Field(..., min_length=8)
    referral_code: Optional[str] = Field(default=None, max_length=16)  # Code of the referrer, if any
    is_superuser: bool = False

class UserUpdate(BaseModel):
    username: Optional[str] = Field(default=None, max_length=100)
    password: Optional[str] = Field(default=None, min_length=8)
    is_active: Optional[bool] = None
    is_superuser: Optional[bool] = None

class User(UserBase):
    id: int
    referral_code: str
    is_active: bool
    is_superuser: bool
    created_at: datetime

    class Config:
        from_attributes = True
