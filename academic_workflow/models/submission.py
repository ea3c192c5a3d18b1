from sqlalchemy import Column, Integer, Boolean, Text, String, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.sql import func
import enum
from ..core.database import Base


class SubmissionStatus(str, enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    RETURNED = "returned"


class Submission(Base):
    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text)
    attachments = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default=SubmissionStatus.DRAFT.value, index=True)
    submitted_at = Column(DateTime(timezone=True))
    is_late = Column(Boolean, nullable=False, default=False)

    # Grading; max_points is a snapshot of the assignment's value at grading time
    grade = Column(Integer)
    max_points = Column(Integer)
    feedback = Column(Text)
    graded_at = Column(DateTime(timezone=True))
    graded_by = Column(Integer, ForeignKey("users.id"))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    assignment_id = Column(Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    classroom_id = Column(Integer, ForeignKey("classrooms.id"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("assignment_id", "student_id", name="uq_submission_assignment_student"),
    )

    @property
    def is_graded(self) -> bool:
        return self.grade is not None
