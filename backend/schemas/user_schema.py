from pydantic import BaseModel, EmailStr
from typing import Optional

class UserBase(BaseModel):
    username: str
    email: EmailStr

class UserCreate(UserBase):
    fullName: str
    password: str

class UserLogin(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    password: str = ""

class RefreshTokenRequest(BaseModel):
    refreshToken: Optional[str] = None

class ChangePasswordRequest(BaseModel):
    oldPassword: str = ""
    newPassword: str = ""

class UpdateAccountRequest(BaseModel):
    fullName: Optional[str] = None
    email: Optional[EmailStr] = None
