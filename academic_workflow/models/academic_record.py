from sqlalchemy import Column, Integer, Float, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..core.database import Base


class AcademicRecord(Base):
    __tablename__ = "academic_records"

    id = Column(Integer, primary_key=True, index=True)
    semester = Column(Integer, nullable=False)
    sgpa = Column(Float)
    remarks = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_by = Column(Integer, ForeignKey("users.id"))

    subjects = relationship(
        "SubjectMark",
        back_populates="record",
        cascade="all, delete-orphan",
        order_by="SubjectMark.position",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "semester", name="uq_academic_record_student_semester"),
    )


class SubjectMark(Base):
    __tablename__ = "subject_marks"

    id = Column(Integer, primary_key=True, index=True)
    position = Column(Integer, nullable=False, default=0)
    code = Column(String, nullable=False)
    name = Column(String, nullable=False)
    internal_marks = Column(Float, nullable=False)
    end_term_marks = Column(Float, nullable=False)
    total = Column(Float, nullable=False)
    record_id = Column(Integer, ForeignKey("academic_records.id", ondelete="CASCADE"), nullable=False, index=True)

    record = relationship("AcademicRecord", back_populates="subjects")
