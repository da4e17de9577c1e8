from typing import Optional, List
from pydantic import BaseModel


class ScheduleAssignee(BaseModel):
    id: str
    first_name: str
    last_name: str


class ScheduleTask(BaseModel):
    id: int
    title: str
    created_at: Optional[str] = None
    deadline: Optional[str] = None
    status: str
    updated_at: Optional[str] = None
    project_name: Optional[str] = None
    assignees: List[ScheduleAssignee] = []


class DeadlineUpdated(BaseModel):
    success: bool = True
    taskId: int
    deadline: Optional[str] = None
