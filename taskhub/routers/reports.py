import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.auth import require_roles, CurrentUser
from ..core.database import get_db
from ..core.errors import ValidationFailed
from ..models.user import Role
from ..services import filters, reports
from ..utils.timezone import parse_iso_datetime
from .schedule import parse_id_list

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def get_report(
    action: str = Query("task", description="task | departments | projects"),
    project_ids: Optional[str] = Query(None, alias="projectIds"),
    department_ids: Optional[str] = Query(None, alias="departmentIds"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    current_user: CurrentUser = Depends(require_roles(Role.ADMIN.value)),
    db: Session = Depends(get_db)
):
    """Admin reporting: task metrics plus the filter option lists"""
    projects = parse_id_list(project_ids)
    departments = parse_id_list(department_ids)

    if action == "departments":
        return filters.filter_departments(db, current_user.user_id, projects or None)
    if action == "projects":
        return filters.filter_projects(db, current_user.user_id, departments or None)
    if action == "task":
        return reports.generate_task_report(
            db,
            project_ids=projects or None,
            start=parse_iso_datetime(start_date),
            end=parse_iso_datetime(end_date),
            department_ids=departments or None,
        )

    logger.warning(f"Unknown report action {action}")
    raise ValidationFailed("Invalid action parameter. Use \"task\", \"departments\" or \"projects\"")
