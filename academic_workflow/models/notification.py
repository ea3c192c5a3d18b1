from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class NotificationCategory(str, enum.Enum):
    INFO = "info"
    ASSIGNMENT = "assignment"
    SUBMISSION = "submission"
    GRADING = "grading"
    ACADEMIC = "academic"
    ACTIVITY = "activity"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String, nullable=False, default=NotificationCategory.INFO.value)
    related_id = Column(Integer)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
