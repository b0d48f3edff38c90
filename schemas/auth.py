from typing import Optional

from pydantic import BaseModel, Field

from schemas.user import UserDTO


class LoginRequest(BaseModel):
    email: Optional[str] = None


class VerificationRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[str] = None


class LoginResponse(BaseModel):
    message: str
    warning: Optional[str] = None
    debug_code: Optional[str] = Field(None, alias="debugCode")

    class Config:
        validate_by_name = True


class UserResponse(BaseModel):
    user: Optional[UserDTO] = None


class MessageResponse(BaseModel):
    message: str
