import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from ..core.auth import get_current_user, CurrentUser
from ..core.database import get_db
from ..core.errors import TaskhubError, ValidationFailed
from ..schemas.schedule import ScheduleTask, DeadlineUpdated
from ..schemas.task import ProjectSummary
from ..services import schedule as schedule_service
from ..utils.timezone import parse_iso_datetime

logger = logging.getLogger(__name__)

router = APIRouter()


def parse_id_list(param: Optional[str]) -> List[int]:
    """Parse ``"1,2,x"`` into ``[1, 2]``, dropping anything non-numeric."""
    if not param:
        return []
    ids = []
    for part in param.split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            ids.append(int(part))
    return ids


def parse_str_list(param: Optional[str]) -> List[str]:
    if not param:
        return []
    return [part.strip() for part in param.split(",") if part.strip()]


@router.get("", response_model=List[ScheduleTask])
async def get_schedule(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    project_ids: Optional[str] = Query(None, alias="projectIds", description="Comma-separated"),
    staff_ids: Optional[str] = Query(None, alias="staffIds", description="Comma-separated"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Visible tasks whose creation-to-deadline span overlaps the window"""
    return schedule_service.get_schedule_tasks(
        db,
        current_user,
        start=parse_iso_datetime(start_date),
        end=parse_iso_datetime(end_date),
        project_ids=parse_id_list(project_ids) or None,
        staff_ids=parse_str_list(staff_ids) or None,
    )


@router.patch("", response_model=DeadlineUpdated)
async def update_schedule_deadline(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Move a task deadline from the schedule view"""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    task_id = body.get("taskId")
    deadline = body.get("deadline")
    if not task_id or not deadline:
        raise ValidationFailed("Missing taskId or deadline")
    try:
        task_id = int(task_id)
    except (TypeError, ValueError):
        raise ValidationFailed("Invalid task ID")

    try:
        return schedule_service.update_schedule_deadline(db, current_user, task_id, deadline)
    except TaskhubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating deadline of task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update deadline"
        )


@router.get("/projects", response_model=List[ProjectSummary])
async def get_schedule_projects(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return schedule_service.get_schedule_projects(db)


@router.get("/staff")
async def get_schedule_staff(
    project_ids: Optional[str] = Query(None, alias="projectIds"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Assignees working on the given projects"""
    return schedule_service.get_schedule_staff(db, current_user, parse_id_list(project_ids))
