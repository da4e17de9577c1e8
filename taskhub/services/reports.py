import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session

from ..models.project import Project, ProjectDepartment
from ..models.task import Task, TaskStatus
from ..utils.timezone import convert_datetime_to_utc, utcnow

logger = logging.getLogger(__name__)


def _report_tasks(
    db: Session,
    project_ids: Optional[List[int]],
    department_ids: Optional[List[int]],
    start: Optional[datetime],
    end: Optional[datetime]
) -> List[Task]:
    query = db.query(Task).filter(Task.is_archived.is_(False))

    if department_ids:
        linked = [
            row.project_id
            for row in db.query(ProjectDepartment.project_id).filter(
                ProjectDepartment.department_id.in_(department_ids)
            )
        ]
        project_ids = [p for p in project_ids if p in linked] if project_ids else linked
        if not project_ids:
            return []

    if project_ids:
        query = query.filter(Task.project_id.in_(project_ids))
    if start:
        query = query.filter(Task.created_at >= start)
    if end:
        query = query.filter(Task.created_at <= end)
    return query.all()


def generate_task_report(
    db: Session,
    project_ids: Optional[List[int]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    department_ids: Optional[List[int]] = None
) -> Dict[str, Any]:
    """
    Task completion metrics over non-archived tasks.

    The date range applies to the task creation time.
    """
    tasks = _report_tasks(db, project_ids, department_ids, start, end)
    now = utcnow()
    completed = TaskStatus.COMPLETED.value

    total = len(tasks)
    completed_count = sum(1 for t in tasks if t.status == completed)
    overdue = sum(
        1 for t in tasks
        if t.deadline and convert_datetime_to_utc(t.deadline) < now and t.status != completed
    )
    blocked = sum(1 for t in tasks if t.status == TaskStatus.BLOCKED.value)

    project_names = {
        p.id: p.name
        for p in db.query(Project).filter(Project.id.in_({t.project_id for t in tasks}))
    } if tasks else {}

    breakdown: Dict[int, Dict[str, Any]] = {}
    for task in tasks:
        entry = breakdown.setdefault(task.project_id, {
            "project_id": task.project_id,
            "name": project_names.get(task.project_id, ""),
            "completed": 0,
            "total": 0,
        })
        entry["total"] += 1
        if task.status == completed:
            entry["completed"] += 1

    logger.info(f"Generated task report over {total} task(s)")
    return {
        "kind": "task",
        "total_tasks": total,
        "completed_tasks": completed_count,
        "completion_rate": round(completed_count / total * 100) if total else 0,
        "overdue_tasks": overdue,
        "blocked_tasks": blocked,
        "status_breakdown": [
            {"status": s.value, "count": sum(1 for t in tasks if t.status == s.value)}
            for s in TaskStatus
        ],
        "completed_by_project": {
            entry["name"]: entry["completed"] for entry in breakdown.values()
        },
        "project_breakdown": sorted(breakdown.values(), key=lambda e: e["project_id"]),
    }
