"""
Task service.

Validation, permission checks and persistence for tasks and everything hanging
off them: assignees, tags, comments, attachments and subtasks.
"""
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional, Tuple
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import ValidationFailed, PermissionDenied, NotFound
from ..core.events import event_publisher
from ..models.project import Project, ProjectDepartment
from ..models.task import (
    Task, TaskAssignment, Tag, TaskTag, TaskComment, TaskAttachment,
    TaskStatus, RECURRENCE_INTERVALS
)
from ..models.user import User
from ..schemas.task import TaskCreate
from ..utils.storage import StorageError, get_storage
from ..utils.timezone import (
    convert_datetime_to_utc, format_date_to_sgt, parse_iso_datetime, to_sgt_string, utcnow
)
from . import notifications
from .roles import get_roles_for_user, is_admin, is_manager
from .visibility import visible_tasks_query

logger = logging.getLogger(__name__)

settings = get_settings()

MAX_ASSIGNEES = 5
MAX_TOTAL_ATTACHMENT_SIZE = 50 * 1024 * 1024
ALLOWED_FILE_TYPES = (
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/jpg",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/plain",
)
VALID_STATUSES = [s.value for s in TaskStatus]
UNKNOWN_USER = {"first_name": "Unknown", "last_name": "User"}

NO_PERMISSION = "You do not have permission to update this task"


@dataclass
class AttachmentFile:
    """An uploaded file read fully into memory"""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _iso(value) -> Optional[str]:
    value = convert_datetime_to_utc(value)
    return value.isoformat() if value else None


# ============ FORMATTING ============

def map_task_attributes(task: Task) -> Dict[str, Any]:
    """Flatten a task row into the shape returned by the API."""
    deadline = convert_datetime_to_utc(task.deadline)
    is_overdue = bool(
        deadline and deadline < utcnow() and task.status != TaskStatus.COMPLETED.value
    )
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority_bucket,
        "status": task.status,
        "deadline": to_sgt_string(task.deadline),
        "notes": task.notes,
        "recurrence_interval": task.recurrence_interval or 0,
        "recurrence_date": to_sgt_string(task.recurrence_date),
        "parent_task_id": task.parent_task_id,
        "project": {"id": task.project.id, "name": task.project.name} if task.project else None,
        "tags": task.tag_names,
        "is_overdue": is_overdue,
    }


def calculate_next_due_date(task: Dict[str, Any]) -> Dict[str, Any]:
    """
    Roll a recurring task's deadline forward by one interval.

    The next due date is computed from the previous deadline, not from the
    completion date. Non-recurring tasks are returned unchanged.
    """
    deadline = parse_iso_datetime(task.get("deadline"))
    if not task.get("recurrence_interval") or deadline is None:
        return task

    next_due = deadline + timedelta(days=task["recurrence_interval"])
    return {
        **task,
        "deadline": to_sgt_string(next_due),
        "is_overdue": next_due < utcnow() and task.get("status") != TaskStatus.COMPLETED.value,
    }


def _user_map(db: Session, user_ids: Iterable[str]) -> Dict[str, User]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    return {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()}


def _user_info(users: Dict[str, User], user_id: str) -> Dict[str, str]:
    user = users.get(user_id)
    if not user:
        return dict(UNKNOWN_USER)
    return {"first_name": user.first_name, "last_name": user.last_name}


def _subtasks_by_parent(db: Session, parent_ids: List[int]) -> Dict[int, List[dict]]:
    grouped: Dict[int, List[dict]] = {}
    if not parent_ids:
        return grouped
    rows = (
        db.query(Task)
        .filter(Task.parent_task_id.in_(parent_ids), Task.is_archived.is_(False))
        .order_by(Task.id)
        .all()
    )
    for sub in rows:
        grouped.setdefault(sub.parent_task_id, []).append({
            "id": sub.id,
            "title": sub.title,
            "status": sub.status,
            "deadline": to_sgt_string(sub.deadline),
        })
    return grouped


def format_tasks(db: Session, tasks: List[Task]) -> List[Dict[str, Any]]:
    """Attach creator, assignees, subtasks and attachment paths to each task."""
    task_ids = [t.id for t in tasks]
    subtasks = _subtasks_by_parent(db, task_ids)

    attachments: Dict[int, List[str]] = {}
    if task_ids:
        for att in db.query(TaskAttachment).filter(TaskAttachment.task_id.in_(task_ids)):
            attachments.setdefault(att.task_id, []).append(att.storage_path)

    user_ids = set()
    for task in tasks:
        user_ids.add(task.creator_id)
        user_ids.update(task.assignee_ids)
    users = _user_map(db, user_ids)

    formatted = []
    for task in tasks:
        item = map_task_attributes(task)
        item["creator"] = {
            "creator_id": task.creator_id,
            "user_info": _user_info(users, task.creator_id),
        }
        item["assignees"] = [
            {"assignee_id": uid, "user_info": _user_info(users, uid)}
            for uid in task.assignee_ids
        ]
        item["subtasks"] = subtasks.get(task.id, [])
        item["attachments"] = attachments.get(task.id, [])
        formatted.append(item)
    return formatted


def attachment_url(task_id: int, attachment_id: int) -> str:
    base = settings.public_base_url.rstrip("/")
    return f"{base}{settings.api_prefix}/tasks/{task_id}/attachments/{attachment_id}"


def attachment_filename(storage_path: str) -> str:
    """Original (sanitised) name, without the timestamp-index prefix."""
    return Path(storage_path).name.split("-", 2)[-1]


def format_task_details(db: Session, task: Optional[Task]) -> Optional[Dict[str, Any]]:
    """Single-task view: adds comments and attachment public URLs."""
    if task is None:
        return None

    item = format_tasks(db, [task])[0]

    item["attachments"] = [
        {
            "id": att.id,
            "storage_path": att.storage_path,
            "public_url": attachment_url(task.id, att.id),
            "size": att.size,
            "content_type": att.content_type,
        }
        for att in db.query(TaskAttachment)
        .filter(TaskAttachment.task_id == task.id)
        .order_by(TaskAttachment.id)
    ]

    comments = (
        db.query(TaskComment)
        .filter(TaskComment.task_id == task.id, TaskComment.is_archived.is_(False))
        .order_by(TaskComment.created_at, TaskComment.id)
        .all()
    )
    users = _user_map(db, [c.user_id for c in comments])
    item["comments"] = [
        {
            "id": c.id,
            "content": c.content,
            "created_at": c.created_at,
            "user_id": c.user_id,
            "user_info": {"id": c.user_id, **_user_info(users, c.user_id)},
        }
        for c in comments
    ]
    return item


# ============ READS ============

def get_user_tasks(db: Session, user, next_due: bool = False) -> List[Dict[str, Any]]:
    tasks = visible_tasks_query(db, user).order_by(Task.deadline, Task.id).all()
    formatted = format_tasks(db, tasks)
    if next_due:
        formatted = [calculate_next_due_date(t) for t in formatted]
    return formatted


def get_task_by_id(db: Session, user, task_id: int) -> Optional[Dict[str, Any]]:
    task = visible_tasks_query(db, user).filter(Task.id == task_id).first()
    return format_task_details(db, task)


def get_all_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.first_name, User.last_name).all()


def get_all_projects(db: Session) -> List[Project]:
    return (
        db.query(Project)
        .filter(Project.is_archived.is_(False))
        .order_by(Project.name)
        .all()
    )


# ============ HELPERS ============

def _get_task(db: Session, task_id: int, message: str = "Task not found") -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise NotFound(message)
    return task


def _check_permission(task: Task, user_id: str, message: str = NO_PERMISSION) -> None:
    # Creator or any assignee may modify a task
    if task.creator_id != user_id and user_id not in task.assignee_ids:
        raise PermissionDenied(message)


def _link_project_departments(db: Session, project_id: int, user_ids: Iterable[str]) -> None:
    department_ids = {
        row.department_id
        for row in db.query(User.department_id).filter(User.id.in_(set(user_ids)))
        if row.department_id is not None
    }
    if not department_ids:
        return
    existing = {
        row.department_id
        for row in db.query(ProjectDepartment.department_id).filter(
            ProjectDepartment.project_id == project_id
        )
    }
    for department_id in department_ids - existing:
        db.add(ProjectDepartment(project_id=project_id, department_id=department_id))
    db.flush()


def _get_or_create_tag(db: Session, name: str) -> Tag:
    tag = db.query(Tag).filter(Tag.name == name).first()
    if not tag:
        tag = Tag(name=name)
        db.add(tag)
        db.flush()
    return tag


def _validate_status(status: Optional[str]) -> str:
    if status not in VALID_STATUSES:
        raise ValidationFailed(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
    return status


def _validate_priority(priority) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int) or not 1 <= priority <= 10:
        raise ValidationFailed("Priority must be a number between 1 and 10")
    return priority


def _validate_interval(interval) -> int:
    if interval not in RECURRENCE_INTERVALS or isinstance(interval, bool):
        raise ValidationFailed("Invalid recurrence interval. Must be 0, 1, 7, or 30 days")
    return interval


def _validate_attachments(files: List[AttachmentFile], existing_size: int) -> None:
    new_size = 0
    for f in files:
        if f.content_type not in ALLOWED_FILE_TYPES:
            raise ValidationFailed(
                f"File type not allowed: {f.content_type}. Allowed: PDF, images, Word, Excel, TXT"
            )
        new_size += f.size

    if existing_size + new_size > MAX_TOTAL_ATTACHMENT_SIZE:
        remaining = (MAX_TOTAL_ATTACHMENT_SIZE - existing_size) / 1024 / 1024
        raise ValidationFailed(
            f"Total attachment size would exceed 50MB limit. You have {remaining:.1f}MB "
            f"remaining. Trying to add {new_size / 1024 / 1024:.1f}MB."
        )


def _store_attachments(
    db: Session,
    task_id: int,
    files: List[AttachmentFile],
    user_id: str
) -> List[TaskAttachment]:
    storage = get_storage()
    timestamp = int(time.time() * 1000)
    created = []
    written = []
    try:
        for index, f in enumerate(files):
            path = storage.build_path(task_id, timestamp, index, f.filename)
            storage.upload(path, f.data)
            written.append(path)
            attachment = TaskAttachment(
                task_id=task_id,
                storage_path=path,
                uploaded_by=user_id,
                size=f.size,
                content_type=f.content_type,
            )
            db.add(attachment)
            created.append(attachment)
        db.flush()
    except Exception:
        storage.remove(written)
        raise
    return created


def _discard_stored(attachments: List[TaskAttachment]) -> None:
    """Remove the objects of attachments whose rows never got committed."""
    paths = [a.storage_path for a in attachments]
    if paths:
        logger.warning(f"Discarding {len(paths)} uncommitted attachment object(s)")
        get_storage().remove(paths)


# ============ CREATE ============

REQUIRED_FIELDS = (
    "project_id", "title", "description", "priority_bucket", "status", "assignee_ids", "deadline"
)


def validate_create_payload(payload: TaskCreate) -> List[str]:
    """Check a creation payload and return its de-duplicated assignee ids."""
    for field in REQUIRED_FIELDS:
        if not getattr(payload, field):
            raise ValidationFailed(f"Missing required field: {field}")

    if not 1 <= payload.priority_bucket <= 10:
        raise ValidationFailed("Priority bucket must be between 1 and 10")

    assignee_ids = list(dict.fromkeys(payload.assignee_ids))
    if not assignee_ids:
        raise ValidationFailed("At least one assignee is required")
    if len(assignee_ids) > MAX_ASSIGNEES:
        raise ValidationFailed("Cannot assign more than 5 users to a task")

    _validate_status(payload.status)
    _validate_interval(payload.recurrence_interval)
    if len(payload.title) > 200:
        raise ValidationFailed("Title cannot exceed 200 characters")
    if parse_iso_datetime(payload.deadline) is None:
        raise ValidationFailed("Invalid date format")
    if payload.recurrence_date and parse_iso_datetime(payload.recurrence_date) is None:
        raise ValidationFailed("Invalid recurrence date")
    return assignee_ids


def create_task(
    db: Session,
    payload: TaskCreate,
    creator_id: str,
    files: Optional[List[AttachmentFile]] = None
) -> int:
    """
    Create a task with its assignments, tags and attachments.

    Everything is written in one transaction; assignees other than the creator
    are notified and the project is linked to the assignees' departments.

    Returns:
        int: The new task id
    """
    assignee_ids = validate_create_payload(payload)
    files = files or []
    _validate_attachments(files, existing_size=0)

    if not db.query(Project).filter(Project.id == payload.project_id).first():
        raise ValidationFailed("Project not found")
    known = _user_map(db, assignee_ids)
    missing = [uid for uid in assignee_ids if uid not in known]
    if missing:
        raise ValidationFailed(f"Assignee not found: {', '.join(missing)}")

    task = Task(
        title=payload.title.strip(),
        description=payload.description,
        priority_bucket=payload.priority_bucket,
        status=payload.status,
        deadline=parse_iso_datetime(payload.deadline),
        notes=payload.notes,
        project_id=payload.project_id,
        creator_id=creator_id,
        recurrence_interval=payload.recurrence_interval,
        recurrence_date=parse_iso_datetime(payload.recurrence_date),
    )
    db.add(task)
    db.flush()

    for assignee_id in assignee_ids:
        db.add(TaskAssignment(task_id=task.id, assignee_id=assignee_id, assignor_id=creator_id))

    for name in dict.fromkeys(t.strip() for t in payload.tags if t and t.strip()):
        db.add(TaskTag(task_id=task.id, tag_id=_get_or_create_tag(db, name).id))

    stored = _store_attachments(db, task.id, files, creator_id) if files else []

    try:
        for assignee_id in assignee_ids:
            notifications.notify_new_task_assignment(
                db, assignee_id, creator_id, task.id, task.title, commit=False
            )
        _link_project_departments(db, task.project_id, assignee_ids)
        db.commit()
    except Exception:
        _discard_stored(stored)
        db.rollback()
        raise

    logger.info(f"Task {task.id} created by {creator_id} with {len(assignee_ids)} assignee(s)")

    event_publisher.publish_event("task.created", {
        "task_id": task.id,
        "title": task.title,
        "project_id": task.project_id,
        "creator_id": creator_id,
        "assignee_ids": assignee_ids,
    })
    return task.id


def link_subtask_to_parent(db: Session, subtask_id, parent_task_id, user_id: str) -> None:
    if isinstance(subtask_id, bool) or not isinstance(subtask_id, int) or subtask_id <= 0:
        raise ValidationFailed("Invalid subtask ID")
    if isinstance(parent_task_id, bool) or not isinstance(parent_task_id, int) or parent_task_id <= 0:
        raise ValidationFailed("Invalid parent task ID")
    if subtask_id == parent_task_id:
        raise ValidationFailed("A task cannot be its own parent")

    subtask = _get_task(db, subtask_id, "Subtask not found")
    parent = _get_task(db, parent_task_id, "Parent task not found")
    _check_permission(subtask, user_id, "You do not have permission to move this task")
    _check_permission(parent, user_id, "You do not have permission to add subtasks to this task")

    subtask.parent_task_id = parent_task_id
    db.commit()
    logger.info(f"Linked task {subtask_id} under parent {parent_task_id}")


def create_subtask(
    db: Session,
    parent_task_id: int,
    payload: TaskCreate,
    creator_id: str,
    files: Optional[List[AttachmentFile]] = None
) -> int:
    parent = _get_task(db, parent_task_id, "Parent task not found")
    _check_permission(parent, creator_id, "You do not have permission to add subtasks to this task")
    subtask_id = create_task(db, payload, creator_id, files)
    link_subtask_to_parent(db, subtask_id, parent_task_id, creator_id)
    return subtask_id


# ============ FIELD UPDATES ============

def update_title(db: Session, task_id: int, new_title, user_id: str) -> Dict[str, Any]:
    if not isinstance(new_title, str) or not new_title.strip():
        raise ValidationFailed("Title cannot be empty")
    if len(new_title) > 200:
        raise ValidationFailed("Title cannot exceed 200 characters")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    task.title = new_title
    db.commit()
    return {"id": task.id, "title": task.title}


def update_description(db: Session, task_id: int, new_description, user_id: str) -> Dict[str, Any]:
    if not isinstance(new_description, str):
        raise ValidationFailed("Description must be a string")
    if len(new_description) > 2000:
        raise ValidationFailed("Description cannot exceed 2000 characters")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    task.description = new_description
    db.commit()
    return {"id": task.id, "description": task.description}


def update_status(db: Session, task_id: int, new_status, user_id: str) -> Dict[str, Any]:
    _validate_status(new_status)
    task = _get_task(db, task_id)
    _check_permission(task, user_id)

    previous = task.status
    task.status = new_status
    db.commit()
    if previous != new_status:
        notifications.notify_task_updated(
            db, user_id, task.id, f'Status of "{task.title}" changed to {new_status}'
        )
    return {"id": task.id, "status": task.status}


def update_priority(db: Session, task_id: int, new_priority, user_id: str) -> Dict[str, Any]:
    _validate_priority(new_priority)
    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    task.priority_bucket = new_priority
    db.commit()
    return {"id": task.id, "priority_bucket": task.priority_bucket}


def update_deadline(db: Session, task_id: int, new_deadline, user_id: str) -> Dict[str, Any]:
    if new_deadline is not None and not isinstance(new_deadline, str):
        raise ValidationFailed("Deadline must be a date string or null")

    parsed = None
    if new_deadline:
        parsed = parse_iso_datetime(new_deadline)
        if parsed is None:
            raise ValidationFailed("Invalid date format")
        if parsed < utcnow():
            logger.warning(f"Deadline of task {task_id} set to past date: {new_deadline}")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    task.deadline = parsed
    db.commit()

    when = format_date_to_sgt(parsed) if parsed else "no deadline"
    notifications.notify_task_updated(
        db, user_id, task.id, f'Deadline for "{task.title}" changed to {when}'
    )
    return {"id": task.id, "deadline": to_sgt_string(parsed)}


def update_notes(db: Session, task_id: int, new_notes, user_id: str) -> Dict[str, Any]:
    if not isinstance(new_notes, str):
        raise ValidationFailed("Notes must be a string")
    if len(new_notes) > 1000:
        raise ValidationFailed("Notes cannot exceed 1000 characters")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    task.notes = new_notes
    db.commit()
    return {"id": task.id, "notes": task.notes}


def update_project(db: Session, task_id: int, new_project_id, user_id: str) -> Dict[str, Any]:
    if isinstance(new_project_id, bool) or not isinstance(new_project_id, int) or new_project_id <= 0:
        raise ValidationFailed("Invalid project ID")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    if not db.query(Project).filter(Project.id == new_project_id).first():
        raise NotFound("Project not found")

    task.project_id = new_project_id
    _link_project_departments(db, new_project_id, task.assignee_ids)
    db.commit()
    return {"id": task.id, "project_id": task.project_id}


def update_recurrence(
    db: Session,
    task_id: int,
    recurrence_interval,
    recurrence_date,
    user_id: str
) -> Dict[str, Any]:
    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    _validate_interval(recurrence_interval)

    parsed = None
    if recurrence_interval > 0:
        if not recurrence_date:
            raise ValidationFailed("Recurrence date is required when setting up recurrence")
        parsed = parse_iso_datetime(recurrence_date)
        if parsed is None:
            raise ValidationFailed("Invalid recurrence date")
        if parsed < utcnow():
            raise ValidationFailed("Recurrence date cannot be in the past")

    task.recurrence_interval = recurrence_interval
    task.recurrence_date = parsed
    db.commit()
    return {
        "id": task.id,
        "recurrence_interval": task.recurrence_interval,
        "recurrence_date": to_sgt_string(parsed),
    }


FIELD_UPDATERS = {
    "title": update_title,
    "description": update_description,
    "status": update_status,
    "priority": update_priority,
    "deadline": update_deadline,
    "notes": update_notes,
}


def update_task_multiple(db: Session, task_id: int, updates: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Apply several field updates, checking permission once up front."""
    task = _get_task(db, task_id)
    _check_permission(task, user_id)

    results = {}
    for field, updater in FIELD_UPDATERS.items():
        if field in updates:
            results[field] = updater(db, task_id, updates[field], user_id)
    return results


# ============ TAGS ============

def add_tag(db: Session, task_id: int, tag_name, user_id: str) -> str:
    if not tag_name or not isinstance(tag_name, str):
        raise ValidationFailed("Tag name must be a non-empty string")
    cleaned = tag_name.strip()
    if not cleaned:
        raise ValidationFailed("Tag name cannot be empty")
    if len(cleaned) > 50:
        raise ValidationFailed("Tag name cannot exceed 50 characters")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)

    tag = _get_or_create_tag(db, cleaned)
    linked = db.query(TaskTag).filter(TaskTag.task_id == task_id, TaskTag.tag_id == tag.id).first()
    if linked:
        db.rollback()
        raise ValidationFailed("Tag already linked to this task")

    db.add(TaskTag(task_id=task_id, tag_id=tag.id))
    db.commit()
    return cleaned


def remove_tag(db: Session, task_id: int, tag_name, user_id: str) -> str:
    if not tag_name or not isinstance(tag_name, str):
        raise ValidationFailed("Tag name must be a non-empty string")

    task = _get_task(db, task_id)
    _check_permission(task, user_id)

    tag = db.query(Tag).filter(Tag.name == tag_name).first()
    if not tag:
        raise NotFound("Tag not found")

    db.query(TaskTag).filter(TaskTag.task_id == task_id, TaskTag.tag_id == tag.id).delete(
        synchronize_session=False
    )
    db.commit()
    return tag_name


# ============ ASSIGNEES ============

def add_assignee(db: Session, task_id: int, new_assignee_id, user_id: str) -> str:
    if not new_assignee_id or not isinstance(new_assignee_id, str):
        raise ValidationFailed("Assignee ID must be a non-empty string")

    task = _get_task(db, task_id)
    _check_permission(task, user_id, "You do not have permission to update assignees for this task")

    if not db.query(User).filter(User.id == new_assignee_id).first():
        raise NotFound("User not found")
    current = task.assignee_ids
    if len(current) >= MAX_ASSIGNEES:
        raise ValidationFailed("Cannot exceed 5 total assignees")
    if new_assignee_id in current:
        raise ValidationFailed("User already assigned to this task")

    db.add(TaskAssignment(task_id=task_id, assignee_id=new_assignee_id, assignor_id=user_id))
    notifications.notify_new_task_assignment(
        db, new_assignee_id, user_id, task.id, task.title, commit=False
    )
    _link_project_departments(db, task.project_id, [new_assignee_id])
    db.commit()

    event_publisher.publish_event("task.assigned", {
        "task_id": task.id,
        "assignee_id": new_assignee_id,
        "assignor_id": user_id,
    })
    return new_assignee_id


def remove_assignee(db: Session, task_id: int, assignee_id, user_id: str) -> str:
    if not assignee_id or not isinstance(assignee_id, str):
        raise ValidationFailed("Assignee ID must be a non-empty string")

    if not is_manager(get_roles_for_user(db, user_id)):
        raise PermissionDenied("Only managers can remove assignees from tasks")

    task = _get_task(db, task_id)
    current = task.assignee_ids
    if assignee_id not in current:
        raise NotFound("Assignee not found on this task")
    if len(current) <= 1:
        raise ValidationFailed("Cannot remove assignee. A task must have at least 1 assignee.")

    db.query(TaskAssignment).filter(
        TaskAssignment.task_id == task_id, TaskAssignment.assignee_id == assignee_id
    ).delete(synchronize_session=False)
    db.commit()
    return assignee_id


# ============ COMMENTS ============

def _clean_comment(content) -> str:
    if not content or not isinstance(content, str) or not content.strip():
        raise ValidationFailed("Comment content cannot be empty")
    if len(content.strip()) > 5000:
        raise ValidationFailed("Comment cannot exceed 5000 characters")
    return content.strip()


def add_comment(db: Session, task_id: int, content, user_id: str) -> Dict[str, Any]:
    cleaned = _clean_comment(content)
    task = _get_task(db, task_id)

    comment = TaskComment(task_id=task_id, user_id=user_id, content=cleaned)
    db.add(comment)
    db.commit()
    db.refresh(comment)

    notifications.notify_new_comment(db, user_id, task.id, task.title)
    event_publisher.publish_event("comment.added", {
        "task_id": task.id,
        "comment_id": comment.id,
        "user_id": user_id,
    })
    return {
        "id": comment.id,
        "content": comment.content,
        "created_at": _iso(comment.created_at),
        "user_id": comment.user_id,
    }


def update_comment(db: Session, task_id: int, comment_id: int, new_content, user_id: str) -> Dict[str, Any]:
    cleaned = _clean_comment(new_content)

    comment = db.query(TaskComment).filter(
        TaskComment.id == comment_id, TaskComment.task_id == task_id
    ).first()
    if not comment:
        raise NotFound("Comment not found")
    if comment.user_id != user_id:
        raise PermissionDenied("You can only edit your own comments")

    comment.content = cleaned
    comment.updated_at = utcnow()
    db.commit()
    return {"id": comment.id, "content": comment.content, "updated_at": _iso(comment.updated_at)}


def delete_comment(db: Session, task_id: int, comment_id: int, user_id: str) -> None:
    if not is_admin(get_roles_for_user(db, user_id)):
        raise PermissionDenied("Only admins can delete comments")

    deleted = db.query(TaskComment).filter(
        TaskComment.id == comment_id, TaskComment.task_id == task_id
    ).delete(
        synchronize_session=False
    )
    if not deleted:
        raise NotFound("Comment not found")
    db.commit()


# ============ ATTACHMENTS ============

def add_task_attachments(
    db: Session,
    task_id: int,
    files: List[AttachmentFile],
    user_id: str
) -> List[Dict[str, Any]]:
    task = _get_task(db, task_id)
    _check_permission(task, user_id)
    if not files:
        raise ValidationFailed("No valid files provided")

    existing_size = get_storage().size_of_prefix(f"tasks/{task_id}")
    _validate_attachments(files, existing_size)

    created = _store_attachments(db, task_id, files, user_id)
    try:
        db.commit()
    except Exception:
        _discard_stored(created)
        db.rollback()
        raise
    logger.info(f"Added {len(created)} attachment(s) to task {task_id}")
    return [{"id": a.id, "storage_path": a.storage_path} for a in created]


def get_task_attachment(db: Session, user, task_id: int, attachment_id: int) -> Tuple[TaskAttachment, Path]:
    """Resolve a downloadable attachment on a task ``user`` can see."""
    task = visible_tasks_query(db, user).filter(Task.id == task_id).first()
    if not task:
        raise NotFound("Task not found")

    attachment = db.query(TaskAttachment).filter(
        TaskAttachment.id == attachment_id, TaskAttachment.task_id == task_id
    ).first()
    if not attachment:
        raise NotFound("Attachment not found")

    try:
        path = get_storage().local_path(attachment.storage_path)
    except StorageError as e:
        logger.error(f"Attachment {attachment_id} of task {task_id} has no stored object: {e}")
        raise NotFound("Attachment file not found")
    return attachment, path


def remove_task_attachment(db: Session, task_id: int, attachment_id: int, user_id: str) -> Dict[str, Any]:
    task = _get_task(db, task_id)
    _check_permission(
        task, user_id, "You do not have permission to delete attachments from this task"
    )

    attachment = db.query(TaskAttachment).filter(
        TaskAttachment.id == attachment_id, TaskAttachment.task_id == task_id
    ).first()
    if not attachment:
        raise NotFound("Attachment not found")

    storage_path = attachment.storage_path
    db.delete(attachment)
    db.commit()
    get_storage().remove([storage_path])

    logger.info(f"Removed attachment {attachment_id} from task {task_id} ({storage_path})")
    return {"id": attachment_id, "removed": True, "storage_path": storage_path}
