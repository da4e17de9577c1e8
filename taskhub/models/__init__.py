# taskhub/models/__init__.py
"""Database models for Taskhub."""
from .user import Department, User, UserRole, Role
from .project import Project, ProjectDepartment
from .task import (
    Task, TaskAssignment, Tag, TaskTag, TaskComment, TaskAttachment,
    TaskStatus, RECURRENCE_INTERVALS,
)
from .notification import Notification, NotificationType
