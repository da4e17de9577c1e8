"""
Pydantic schemas for tasks.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    """
    Payload for creating a task or subtask.

    Required-field and range checks live in the task service.
    """
    project_id: Optional[int] = Field(None, description="Project the task belongs to")
    title: Optional[str] = Field(None, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    priority_bucket: Optional[int] = Field(None, description="Priority from 1 (low) to 10 (high)")
    status: Optional[str] = Field(None, description="Task status")
    assignee_ids: Optional[List[str]] = Field(None, description="Between 1 and 5 user IDs")
    deadline: Optional[str] = Field(None, description="ISO-8601 deadline")
    notes: Optional[str] = Field(None, description="Free-form notes")
    tags: List[str] = Field(default_factory=list, description="Tag names")
    recurrence_interval: int = Field(0, description="Recurrence in days: 0, 1, 7 or 30")
    recurrence_date: Optional[str] = Field(None, description="First occurrence for recurring tasks")


class TaskCreated(BaseModel):
    success: bool = True
    taskId: int
    message: str


class UserInfo(BaseModel):
    first_name: str
    last_name: str


class Creator(BaseModel):
    creator_id: str
    user_info: UserInfo


class Assignee(BaseModel):
    assignee_id: str
    user_info: UserInfo


class SubtaskSummary(BaseModel):
    id: int
    title: str
    status: str
    deadline: Optional[str] = None


class ProjectRef(BaseModel):
    id: int
    name: str


class TaskResponse(BaseModel):
    """Task as returned by list endpoints"""
    id: int = Field(..., description="Task ID")
    title: str
    description: Optional[str] = None
    priority: int
    status: str
    deadline: Optional[str] = None
    notes: Optional[str] = None
    recurrence_interval: int = 0
    recurrence_date: Optional[str] = None
    parent_task_id: Optional[int] = None
    project: Optional[ProjectRef] = None
    tags: List[str] = Field(default_factory=list)
    is_overdue: bool = False
    creator: Creator
    assignees: List[Assignee] = Field(default_factory=list)
    subtasks: List[SubtaskSummary] = Field(default_factory=list)
    attachments: List[str] = Field(default_factory=list, description="Storage paths")


class CommentUser(BaseModel):
    id: str
    first_name: str
    last_name: str


class CommentResponse(BaseModel):
    id: int
    content: str
    created_at: Optional[datetime] = None
    user_id: str
    user_info: CommentUser


class AttachmentResponse(BaseModel):
    id: int
    storage_path: str
    public_url: Optional[str] = None
    size: int = 0
    content_type: Optional[str] = None


class TaskDetailResponse(TaskResponse):
    """Single task with comments and attachment URLs"""
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    comments: List[CommentResponse] = Field(default_factory=list)


class TaskList(BaseModel):
    tasks: List[TaskResponse]
    total: int


class UserSummary(BaseModel):
    id: str
    first_name: str
    last_name: str

    class Config:
        from_attributes = True


class ProjectSummary(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class ArchiveResult(BaseModel):
    success: bool = True
    taskId: int
    affectedCount: int
    message: str
