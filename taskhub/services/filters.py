"""
Project and department filter options for reports.

A user's projects are those with tasks assigned to anyone in the user's
department; departments are derived from those projects.
"""
import logging
from typing import Dict, List, Optional
from sqlalchemy.orm import Session

from ..models.project import Project, ProjectDepartment
from ..models.task import Task, TaskAssignment
from ..models.user import Department, User

logger = logging.getLogger(__name__)


def _project_dict(project: Project) -> Dict:
    return {"id": project.id, "name": project.name}


def _department_dict(department: Department) -> Dict:
    return {"id": department.id, "name": department.name}


def get_department_colleague_ids(db: Session, user_id: str) -> List[str]:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.department_id is None:
        return []
    return [
        row.id
        for row in db.query(User.id).filter(User.department_id == user.department_id)
    ]


def get_projects_for_user(db: Session, user_id: str) -> List[Dict]:
    colleague_ids = get_department_colleague_ids(db, user_id)
    if not colleague_ids:
        logger.debug(f"No department colleagues for user {user_id}")
        return []

    projects = (
        db.query(Project)
        .join(Task, Task.project_id == Project.id)
        .join(TaskAssignment, TaskAssignment.task_id == Task.id)
        .filter(TaskAssignment.assignee_id.in_(colleague_ids))
        .distinct()
        .order_by(Project.id)
        .all()
    )
    return [_project_dict(p) for p in projects]


def get_departments_for_projects(db: Session, project_ids: List[int]) -> List[Dict]:
    if not project_ids:
        return []
    departments = (
        db.query(Department)
        .join(ProjectDepartment, ProjectDepartment.department_id == Department.id)
        .filter(ProjectDepartment.project_id.in_(project_ids))
        .distinct()
        .order_by(Department.id)
        .all()
    )
    return [_department_dict(d) for d in departments]


def get_departments_for_user(db: Session, user_id: str) -> List[Dict]:
    projects = get_projects_for_user(db, user_id)
    if not projects:
        return []
    return get_departments_for_projects(db, [p["id"] for p in projects])


def filter_projects(db: Session, user_id: str, department_ids: Optional[List[int]] = None) -> List[Dict]:
    """User's projects, narrowed to those linked with any of ``department_ids``."""
    projects = get_projects_for_user(db, user_id)
    if not department_ids:
        return projects

    linked = {
        row.project_id
        for row in db.query(ProjectDepartment.project_id).filter(
            ProjectDepartment.project_id.in_([p["id"] for p in projects]),
            ProjectDepartment.department_id.in_(department_ids),
        )
    }
    return [p for p in projects if p["id"] in linked]


def filter_departments(db: Session, user_id: str, project_ids: Optional[List[int]] = None) -> List[Dict]:
    """User's departments, narrowed to those linked with any of ``project_ids``."""
    departments = get_departments_for_user(db, user_id)
    if not project_ids:
        return departments

    linked = {
        row.department_id
        for row in db.query(ProjectDepartment.department_id).filter(
            ProjectDepartment.project_id.in_(project_ids)
        )
    }
    return [d for d in departments if d["id"] in linked]
