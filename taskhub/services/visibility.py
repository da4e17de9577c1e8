"""
Row-level visibility rules for tasks.

Staff see tasks they created or are assigned to. Managers additionally see
every task assigned to someone in their department. Admins see everything.
Archived tasks are never visible through these queries.
"""
from sqlalchemy import or_, select
from sqlalchemy.orm import Query, Session

from ..models.task import Task, TaskAssignment
from ..models.user import User, Role


def visible_task_ids(user):
    """
    Filter clause over tasks the user may see, or None for unrestricted.

    The subqueries never correlate, so the clause also works in queries that
    already join task_assignments.
    """
    if user.has_role(Role.ADMIN.value):
        return None

    assigned = (
        select(TaskAssignment.task_id)
        .where(TaskAssignment.assignee_id == user.user_id)
        .correlate(None)
    )
    clauses = [Task.creator_id == user.user_id, Task.id.in_(assigned)]

    if user.has_role(Role.MANAGER.value) and user.department_id is not None:
        department = (
            select(TaskAssignment.task_id)
            .join(User, User.id == TaskAssignment.assignee_id)
            .where(User.department_id == user.department_id)
            .correlate(None)
        )
        clauses.append(Task.id.in_(department))

    return or_(*clauses)


def visible_tasks_query(db: Session, user, include_archived: bool = False) -> Query:
    query = db.query(Task)
    if not include_archived:
        query = query.filter(Task.is_archived.is_(False))
    clause = visible_task_ids(user)
    if clause is not None:
        query = query.filter(clause)
    return query


def can_view_task(db: Session, user, task_id: int) -> bool:
    return (
        visible_tasks_query(db, user)
        .filter(Task.id == task_id)
        .first()
    ) is not None
