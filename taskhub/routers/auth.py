from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..schemas.auth import LoginRequest, Token
from ..services.auth import login_with_password

router = APIRouter()


@router.post("/login", response_model=Token)
async def login(credentials: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email and password for a bearer token"""
    result = login_with_password(db, credentials.email, credentials.password)
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=result.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return Token(
        access_token=result.access_token,
        user_id=result.user_id,
        roles=result.roles,
        redirect_path=result.redirect_path,
    )
