from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class AssignmentStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


# Fields a teacher may change while the assignment is still a draft
EDITABLE_FIELDS = ("title", "description", "instructions", "due_date", "max_points", "attachments")


class Assignment(Base):
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    instructions = Column(Text)
    due_date = Column(DateTime(timezone=True), nullable=False)
    max_points = Column(Integer, nullable=False, default=100)
    attachments = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=AssignmentStatus.DRAFT.value, index=True)
    published_at = Column(DateTime(timezone=True))
    closed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    classroom_id = Column(Integer, ForeignKey("classrooms.id"), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
