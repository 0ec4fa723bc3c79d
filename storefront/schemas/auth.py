from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)


class OAuthLoginRequest(BaseModel):
    token: str
    user_id: Optional[str] = None


class LoginResponse(BaseModel):
    audience: str
    user: dict
    redirect_to: str


class MessageResponse(BaseModel):
    message: str
