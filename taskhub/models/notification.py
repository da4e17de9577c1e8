import enum
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from ..core.database import Base
from ..utils.timezone import utcnow


class NotificationType(str, enum.Enum):
    """Notification type enumeration"""
    TASK_ASSIGNED = "task_assigned"
    TASK_UPDATED = "task_updated"
    COMMENT_ADDED = "comment_added"
    DEADLINE_REMINDER = "deadline_reminder"


class Notification(Base):
    """In-app notification owned by a single user"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(30), nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=utcnow, nullable=True)
