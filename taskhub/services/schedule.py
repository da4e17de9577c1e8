"""
Gantt-style schedule queries.

A task spans from its creation to its deadline; it is shown for a window
when that span overlaps the window.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import NotFound, ValidationFailed
from ..models.project import Project
from ..models.task import Task, TaskAssignment
from ..models.user import User
from ..utils.timezone import format_date_to_sgt, parse_iso_datetime, to_sgt_string
from . import notifications
from .visibility import visible_task_ids, visible_tasks_query

logger = logging.getLogger(__name__)


def _iso(value) -> Optional[str]:
    parsed = parse_iso_datetime(value)
    return parsed.isoformat() if parsed else None


def get_schedule_tasks(
    db: Session,
    user,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    project_ids: Optional[List[int]] = None,
    staff_ids: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    query = visible_tasks_query(db, user).filter(Task.deadline.isnot(None))

    if end:
        query = query.filter(Task.created_at <= end)
    if start:
        query = query.filter(Task.deadline >= start)
    if project_ids:
        query = query.filter(Task.project_id.in_(project_ids))
    if staff_ids:
        query = query.filter(Task.id.in_(
            select(TaskAssignment.task_id).where(TaskAssignment.assignee_id.in_(staff_ids))
        ))

    tasks = query.order_by(Task.deadline, Task.id).all()
    if not tasks:
        return []

    assignee_ids = {uid for t in tasks for uid in t.assignee_ids}
    users = {
        u.id: u for u in db.query(User).filter(User.id.in_(assignee_ids))
    } if assignee_ids else {}

    return [
        {
            "id": t.id,
            "title": t.title,
            "created_at": _iso(t.created_at),
            "deadline": to_sgt_string(t.deadline),
            "status": t.status,
            "updated_at": _iso(t.updated_at),
            "project_name": t.project.name if t.project else None,
            "assignees": [
                {"id": u.id, "first_name": u.first_name, "last_name": u.last_name}
                for u in (users.get(uid) for uid in t.assignee_ids) if u
            ],
        }
        for t in tasks
    ]


def update_schedule_deadline(db: Session, user, task_id: int, deadline) -> Dict[str, Any]:
    """Move a deadline from the schedule view; the task must be visible to the caller."""
    parsed = parse_iso_datetime(deadline)
    if parsed is None:
        raise ValidationFailed("Invalid date format")

    task = visible_tasks_query(db, user).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")

    task.deadline = parsed
    db.commit()
    logger.info(f"User {user.user_id} moved deadline of task {task_id} to {parsed.isoformat()}")

    notifications.notify_task_updated(
        db, user.user_id, task.id,
        f'Deadline for "{task.title}" changed to {format_date_to_sgt(parsed)}'
    )
    return {"success": True, "taskId": task.id, "deadline": to_sgt_string(parsed)}


def get_schedule_projects(db: Session) -> List[Dict[str, Any]]:
    projects = (
        db.query(Project)
        .filter(Project.is_archived.is_(False))
        .order_by(Project.name)
        .all()
    )
    return [{"id": p.id, "name": p.name} for p in projects]


def get_schedule_staff(db: Session, user, project_ids: Optional[List[int]]) -> List[Dict[str, Any]]:
    """Distinct assignees of the caller's visible tasks in the given projects."""
    if not project_ids:
        return []

    query = (
        db.query(User)
        .join(TaskAssignment, TaskAssignment.assignee_id == User.id)
        .join(Task, Task.id == TaskAssignment.task_id)
        .filter(Task.project_id.in_(project_ids), Task.is_archived.is_(False))
    )
    clause = visible_task_ids(user)
    if clause is not None:
        query = query.filter(clause)

    staff = query.distinct().order_by(User.first_name, User.last_name).all()
    return [{"id": u.id, "first_name": u.first_name, "last_name": u.last_name} for u in staff]
