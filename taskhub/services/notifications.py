import logging
from typing import List, Optional
from sqlalchemy.orm import Session

from ..core.errors import NotFound
from ..models.notification import Notification, NotificationType
from ..models.task import TaskAssignment
from ..models.user import User

logger = logging.getLogger(__name__)


def create_notification(
    db: Session,
    user_id: str,
    title: str,
    message: str,
    type: str,
    commit: bool = True
) -> Notification:
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=NotificationType(type).value,
    )
    db.add(notification)
    if commit:
        db.commit()
        db.refresh(notification)
    else:
        db.flush()
    logger.info(f"Created {notification.type} notification for user {user_id}")
    return notification


def get_notifications_for_user(
    db: Session,
    user_id: str,
    include_archived: bool = False
) -> List[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if not include_archived:
        query = query.filter(Notification.is_archived.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def get_unread_count(db: Session, user_id: str) -> int:
    return (
        db.query(Notification)
        .filter(
            Notification.user_id == user_id,
            Notification.read.is_(False),
            Notification.is_archived.is_(False),
        )
        .count()
    )


def _owned_notification(db: Session, user_id: str, notification_id: int) -> Notification:
    # Another user's notification is reported exactly like a missing one
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")
    return notification


def mark_notification_as_read(db: Session, user_id: str, notification_id: int) -> Notification:
    notification = _owned_notification(db, user_id, notification_id)
    notification.read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_id: str) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def archive_notification(db: Session, user_id: str, notification_id: int) -> Notification:
    notification = _owned_notification(db, user_id, notification_id)
    notification.is_archived = True
    db.commit()
    db.refresh(notification)
    return notification


def _display_name(db: Session, user_id: Optional[str]) -> str:
    user = db.query(User).filter(User.id == user_id).first() if user_id else None
    if not user:
        return "Someone"
    return f"{user.first_name} {user.last_name}".strip() or "Someone"


def notify_new_task_assignment(
    db: Session,
    assignee_id: str,
    assignor_id: Optional[str],
    task_id: int,
    task_title: str,
    commit: bool = True
) -> Optional[Notification]:
    """Tell a user they were assigned; assigning yourself is silent."""
    if assignee_id == assignor_id:
        return None

    assignor_name = _display_name(db, assignor_id)
    return create_notification(
        db,
        user_id=assignee_id,
        title="New Task Assignment",
        message=f'{assignor_name} assigned you to task: "{task_title}"',
        type=NotificationType.TASK_ASSIGNED.value,
        commit=commit,
    )


def notify_new_comment(
    db: Session,
    commenter_id: str,
    task_id: int,
    task_title: str
) -> List[Notification]:
    """Notify every assignee of the task except the commenter."""
    assignee_ids = [
        row.assignee_id
        for row in db.query(TaskAssignment.assignee_id).filter(TaskAssignment.task_id == task_id)
    ]
    commenter_name = _display_name(db, commenter_id)

    created = []
    for assignee_id in assignee_ids:
        if assignee_id == commenter_id:
            continue
        created.append(create_notification(
            db,
            user_id=assignee_id,
            title="New Comment",
            message=f'{commenter_name} commented on task: "{task_title}"',
            type=NotificationType.COMMENT_ADDED.value,
            commit=False,
        ))
    db.commit()
    return created


def notify_task_updated(
    db: Session,
    actor_id: str,
    task_id: int,
    message: str
) -> List[Notification]:
    """Notify every assignee except the user who made the change."""
    assignee_ids = [
        row.assignee_id
        for row in db.query(TaskAssignment.assignee_id).filter(TaskAssignment.task_id == task_id)
    ]
    created = [
        create_notification(
            db,
            user_id=assignee_id,
            title="Task Updated",
            message=message,
            type=NotificationType.TASK_UPDATED.value,
            commit=False,
        )
        for assignee_id in assignee_ids
        if assignee_id != actor_id
    ]
    db.commit()
    return created
