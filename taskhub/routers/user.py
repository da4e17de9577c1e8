from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.auth import get_current_user, CurrentUser
from ..core.database import get_db
from ..schemas.auth import UserRoles
from ..services.auth import get_roles_or_default

router = APIRouter()


@router.get("/role", response_model=UserRoles)
async def get_user_role(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Roles of the authenticated user; staff when they cannot be loaded"""
    return UserRoles(roles=get_roles_or_default(db, current_user.user_id))
