"""
Archive and restore of a task together with its direct subtasks.
"""
import logging
from sqlalchemy.orm import Session

from ..core.errors import NotFound, PermissionDenied
from ..core.events import event_publisher
from ..models.task import Task
from ..models.user import Role

logger = logging.getLogger(__name__)


def archive_task(db: Session, task_id: int, is_archived: bool) -> int:
    """
    Set ``is_archived`` on a task and its direct subtasks in one statement.

    Archived tasks can be found too, so restoring works and repeating an
    archive is harmless. Assignments and other task data are left alone.

    Returns:
        int: Number of tasks updated (the task plus its subtasks)
    """
    task = db.query(Task.id).filter(Task.id == task_id).first()
    if not task:
        raise NotFound(f"Task with ID {task_id} not found")

    subtask_ids = [
        row.id for row in db.query(Task.id).filter(Task.parent_task_id == task_id)
    ]
    ids = [task_id] + subtask_ids

    db.query(Task).filter(Task.id.in_(ids)).update(
        {Task.is_archived: is_archived}, synchronize_session=False
    )
    db.commit()

    logger.info(
        f"{'Archived' if is_archived else 'Restored'} task {task_id} "
        f"and {len(subtask_ids)} subtask(s)"
    )
    return len(ids)


def archive_task_service(db: Session, user, task_id: int, is_archived: bool) -> int:
    if not user.has_role(Role.MANAGER.value):
        raise PermissionDenied("Only managers can archive tasks")

    affected = archive_task(db, task_id, is_archived)

    event_publisher.publish_event(
        "task.archived" if is_archived else "task.restored",
        {"task_id": task_id, "affected_count": affected, "user_id": user.user_id},
    )
    return affected
