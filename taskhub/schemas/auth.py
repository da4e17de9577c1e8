from typing import List
from pydantic import BaseModel, EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    roles: List[str]
    redirect_path: str


class UserRoles(BaseModel):
    roles: List[str]
