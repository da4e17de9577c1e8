import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import FileResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from ..core.auth import get_current_user, CurrentUser
from ..core.database import get_db
from ..core.errors import TaskhubError, ValidationFailed, NotFound
from ..schemas.task import (
    TaskCreate, TaskCreated, TaskDetailResponse, TaskList, TaskResponse,
    UserSummary, ProjectSummary, ArchiveResult
)
from ..services import tasks as task_service
from ..services.archive import archive_task_service
from ..services.tasks import AttachmentFile, MAX_TOTAL_ATTACHMENT_SIZE
from ..utils.ical import generate_ical

logger = logging.getLogger(__name__)

router = APIRouter()


def _coerce_int(value) -> Optional[int]:
    """Accept ints and digit strings (multipart values arrive as text)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


async def _read_files(form) -> List[AttachmentFile]:
    files = []
    for key, value in form.multi_items():
        if key.startswith("file_") and isinstance(value, UploadFile):
            files.append(AttachmentFile(
                filename=value.filename or key,
                content_type=value.content_type or "application/octet-stream",
                data=await value.read(),
            ))
    return files


async def _parse_task_form(request: Request) -> Tuple[TaskCreate, List[AttachmentFile]]:
    form = await request.form()
    raw = form.get("taskData")
    if not raw or not isinstance(raw, str):
        raise ValidationFailed("Missing task data")

    try:
        payload = TaskCreate.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        raise ValidationFailed("Invalid task data format")

    files = await _read_files(form)
    if sum(f.size for f in files) > MAX_TOTAL_ATTACHMENT_SIZE:
        raise ValidationFailed("Total file size exceeds 50MB limit")
    return payload, files


@router.get("")
async def get_tasks(
    action: Optional[str] = Query(None, description="users | projects, or omit for tasks"),
    next_due: bool = Query(False, alias="nextDue", description="Roll recurring deadlines forward"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Visible tasks, or helper lists for the task creation form"""
    if action is None:
        tasks = task_service.get_user_tasks(db, current_user, next_due=next_due)
        return TaskList(tasks=[TaskResponse(**t) for t in tasks], total=len(tasks))
    if action == "users":
        users = task_service.get_all_users(db)
        return {"users": [UserSummary.model_validate(u) for u in users]}
    if action == "projects":
        projects = task_service.get_all_projects(db)
        return {"projects": [ProjectSummary.model_validate(p) for p in projects]}
    raise ValidationFailed('Invalid action parameter. Use "users" or "projects"')


@router.post("", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
async def create_task(
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task from multipart form data (``taskData`` JSON plus ``file_*`` parts)"""
    payload, files = await _parse_task_form(request)
    try:
        task_id = task_service.create_task(db, payload, current_user.user_id, files)
    except TaskhubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating task: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating task: {str(e)}"
        )
    return TaskCreated(taskId=task_id, message="Task created successfully")


@router.get("/export.ics")
async def export_tasks_ical(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the caller's visible tasks as an iCalendar file"""
    tasks = task_service.get_user_tasks(db, current_user)
    return Response(
        content=generate_ical(tasks),
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="taskhub-tasks.ics"'},
    )


@router.get("/{task_id}", response_model=TaskDetailResponse)
async def get_task(
    task_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get a specific task by ID"""
    task = task_service.get_task_by_id(db, current_user, task_id)
    if not task:
        raise NotFound("Task not found")
    return task


@router.get("/{task_id}/attachments/{attachment_id}")
async def download_attachment(
    task_id: int,
    attachment_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download an attachment of a task the caller can see"""
    attachment, path = task_service.get_task_attachment(db, current_user, task_id, attachment_id)
    return FileResponse(
        path,
        media_type=attachment.content_type or "application/octet-stream",
        filename=task_service.attachment_filename(attachment.storage_path),
    )


@router.post("/{task_id}/subtasks", response_model=TaskCreated, status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: int,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a task and link it under ``task_id``"""
    payload, files = await _parse_task_form(request)
    try:
        subtask_id = task_service.create_subtask(db, task_id, payload, current_user.user_id, files)
    except TaskhubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error creating subtask: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error creating subtask: {str(e)}"
        )
    return TaskCreated(taskId=subtask_id, message="Subtask created successfully")


@router.patch("/{task_id}/archive", response_model=ArchiveResult)
async def archive_task(
    task_id: int,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Archive or restore a task and its subtasks (managers only)"""
    try:
        body = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid JSON in request body")

    is_archived = body.get("is_archived") if isinstance(body, dict) else None
    if not isinstance(is_archived, bool):
        raise ValidationFailed("is_archived must be a boolean")

    try:
        affected = archive_task_service(db, current_user, task_id, is_archived)
    except TaskhubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error archiving task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error archiving task: {str(e)}"
        )

    verb = "archived" if is_archived else "restored"
    return ArchiveResult(
        taskId=task_id,
        affectedCount=affected,
        message=f"Task and {affected - 1} subtask(s) {verb} successfully",
    )


async def _read_updates(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationFailed("Invalid JSON in request body")
        if not isinstance(body, dict):
            raise ValidationFailed("Request body must be a JSON object")
        return body

    if "multipart/form-data" in content_type:
        form = await request.form()
        updates: Dict[str, Any] = {
            key: value for key, value in form.multi_items()
            if not key.startswith("file_") and isinstance(value, str)
        }
        files = await _read_files(form)
        if files:
            updates["files"] = files
        return updates

    raise ValidationFailed("Invalid content type")


def _require_int(updates: Dict[str, Any], key: str, message: str) -> int:
    value = _coerce_int(updates.get(key))
    if value is None:
        raise ValidationFailed(message)
    return value


def _require_str(updates: Dict[str, Any], key: str, message: str) -> str:
    value = updates.get(key)
    if not value or not isinstance(value, str):
        raise ValidationFailed(message)
    return value


def apply_task_action(db: Session, task_id: int, action: Optional[str], updates: Dict[str, Any], user_id: str):
    """Run one PATCH action against a task and return the JSON result."""
    if action == "updateTitle":
        return task_service.update_title(
            db, task_id, _require_str(updates, "title", "Title required"), user_id
        )

    if action == "updateDescription":
        return task_service.update_description(db, task_id, updates.get("description"), user_id)

    if action == "updateStatus":
        return task_service.update_status(
            db, task_id, _require_str(updates, "status", "Status required"), user_id
        )

    if action == "updatePriority":
        if updates.get("priority_bucket") is None:
            raise ValidationFailed("Priority required")
        priority = _coerce_int(updates["priority_bucket"])
        return task_service.update_priority(
            db, task_id, priority if priority is not None else updates["priority_bucket"], user_id
        )

    if action == "updateDeadline":
        return task_service.update_deadline(db, task_id, updates.get("deadline"), user_id)

    if action == "updateNotes":
        if "notes" not in updates:
            raise ValidationFailed("Notes required")
        return task_service.update_notes(db, task_id, updates["notes"], user_id)

    if action == "updateProject":
        project_id = _require_int(updates, "project_id", "Project ID required")
        return task_service.update_project(db, task_id, project_id, user_id)

    if action == "updateRecurrence":
        if updates.get("recurrenceInterval") is None:
            raise ValidationFailed("Recurrence interval required")
        interval = _require_int(
            updates, "recurrenceInterval", "Recurrence interval must be a number"
        )
        result = task_service.update_recurrence(
            db, task_id, interval, updates.get("recurrenceDate") or None, user_id
        )
        return {"success": True, "recurrence": result}

    if action == "updateMultiple":
        fields = updates.get("updates")
        if not isinstance(fields, dict) or not fields:
            raise ValidationFailed("Updates required")
        return {"success": True, "results": task_service.update_task_multiple(db, task_id, fields, user_id)}

    if action == "addAssignee":
        assignee_id = _require_str(updates, "assignee_id", "Assignee ID required")
        return {"success": True, "assignee_id": task_service.add_assignee(db, task_id, assignee_id, user_id)}

    if action == "removeAssignee":
        assignee_id = _require_str(updates, "assignee_id", "Assignee ID required")
        return {"success": True, "assignee_id": task_service.remove_assignee(db, task_id, assignee_id, user_id)}

    if action == "addTag":
        tag_name = _require_str(updates, "tag_name", "Tag name required")
        return {"success": True, "tag": task_service.add_tag(db, task_id, tag_name, user_id)}

    if action == "removeTag":
        tag_name = _require_str(updates, "tag_name", "Tag name required")
        return {"success": True, "tag": task_service.remove_tag(db, task_id, tag_name, user_id)}

    if action == "addAttachments":
        files = updates.get("files")
        if not files:
            raise ValidationFailed("No files provided")
        return {"success": True, "attachments": task_service.add_task_attachments(db, task_id, files, user_id)}

    if action == "removeAttachment":
        attachment_id = _require_int(updates, "attachment_id", "Attachment ID required")
        result = task_service.remove_task_attachment(db, task_id, attachment_id, user_id)
        return {"success": True, "removed_path": result["storage_path"]}

    if action == "addComment":
        content = updates.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailed("Comment content required")
        return {"success": True, "comment": task_service.add_comment(db, task_id, content, user_id)}

    if action == "updateComment":
        comment_id = _require_int(updates, "commentId", "Comment ID required")
        content = updates.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailed("Comment content required")
        return {"success": True, "comment": task_service.update_comment(db, task_id, comment_id, content, user_id)}

    if action == "deleteComment":
        comment_id = _require_int(updates, "commentId", "Comment ID required")
        task_service.delete_comment(db, task_id, comment_id, user_id)
        return {"success": True, "message": "Comment deleted successfully"}

    if action == "linkSubtask":
        subtask_id = _require_int(updates, "subtaskId", "Subtask ID required")
        task_service.link_subtask_to_parent(db, subtask_id, task_id, user_id)
        return {"success": True, "message": "Subtask linked successfully"}

    raise ValidationFailed("Invalid action")


@router.patch("/{task_id}")
async def update_task(
    task_id: int,
    request: Request,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Apply a single named update action (JSON or multipart body)"""
    updates = await _read_updates(request)
    action = updates.get("action")
    try:
        return apply_task_action(db, task_id, action, updates, current_user.user_id)
    except TaskhubError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Error updating task {task_id} ({action}): {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error updating task: {str(e)}"
        )
