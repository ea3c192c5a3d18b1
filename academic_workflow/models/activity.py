from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class ActivityCategory(str, enum.Enum):
    EVENT = "event"
    ACHIEVEMENT = "achievement"
    SKILL = "skill"


class ActivityStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Activity(Base):
    """An achievement proof a student submits for staff verification"""
    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text)
    category = Column(String, nullable=False)
    # Reference to the uploaded proof, never the file itself
    file = Column(String)
    status = Column(String, nullable=False, default=ActivityStatus.PENDING.value, index=True)
    review_note = Column(Text)
    reviewed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    verified_by = Column(Integer, ForeignKey("users.id"))
