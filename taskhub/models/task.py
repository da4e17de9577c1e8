import enum
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from ..core.database import Base
from ..utils.timezone import utcnow


class TaskStatus(str, enum.Enum):
    """Task status enumeration"""
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    BLOCKED = "Blocked"


# Allowed recurrence intervals in days (0 = not recurring)
RECURRENCE_INTERVALS = (0, 1, 7, 30)


class Task(Base):
    """Task model for database"""
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    priority_bucket = Column(Integer, nullable=False, default=5, index=True)
    status = Column(
        String(20),
        default=TaskStatus.TODO.value,
        nullable=False,
        index=True
    )
    deadline = Column(DateTime(timezone=True), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True, index=True)
    creator_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    recurrence_interval = Column(Integer, nullable=False, default=0)
    recurrence_date = Column(DateTime(timezone=True), nullable=True)

    is_archived = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=True)

    project = relationship("Project")
    assignments = relationship(
        "TaskAssignment", back_populates="task", cascade="all, delete-orphan"
    )
    tag_links = relationship("TaskTag", back_populates="task", cascade="all, delete-orphan")

    @property
    def assignee_ids(self) -> list:
        return [a.assignee_id for a in self.assignments]

    @property
    def tag_names(self) -> list:
        return [link.tag.name for link in self.tag_links]

    def __repr__(self):
        return f"<Task(id={self.id}, title='{self.title}', status='{self.status}')>"


class TaskAssignment(Base):
    """Assignment of a user to a task"""
    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "assignee_id", name="uq_task_assignee"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    assignee_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    assignor_id = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    task = relationship("Task", back_populates="assignments")


class Tag(Base):
    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)


class TaskTag(Base):
    __tablename__ = "task_tags"
    __table_args__ = (UniqueConstraint("task_id", "tag_id", name="uq_task_tag"),)

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    tag_id = Column(Integer, ForeignKey("tags.id"), nullable=False, index=True)

    task = relationship("Task", back_populates="tag_links")
    tag = relationship("Tag")


class TaskComment(Base):
    """Comment left on a task"""
    __tablename__ = "task_comments"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class TaskAttachment(Base):
    """File attached to a task; the bytes live in attachment storage"""
    __tablename__ = "task_attachments"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    storage_path = Column(String(500), nullable=False)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    content_type = Column(String(150), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
