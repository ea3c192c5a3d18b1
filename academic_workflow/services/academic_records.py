from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from ..core.exceptions import ConflictError, EmptyInputError, NotFoundError, OutOfRangeError
from ..models.academic_record import AcademicRecord, SubjectMark
from ..models.user import User, UserRole
from ..utils.grades import compute_cgpa, compute_sgpa, subject_total
import logging

logger = logging.getLogger(__name__)


async def _require_student(session: AsyncSession, student_id: int) -> User:
    result = await session.execute(
        select(User).filter(User.id == student_id, User.role == UserRole.STUDENT.value)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise NotFoundError("Student", student_id)
    return student


def _build_subjects(subjects: List[dict]) -> List[SubjectMark]:
    if not subjects:
        raise EmptyInputError("Subjects list is required and must not be empty")

    marks = []
    for position, subject in enumerate(subjects):
        if not subject.get("code") or not subject.get("name"):
            raise OutOfRangeError("Each subject must have code and name")
        internal = subject.get("internal_marks")
        end_term = subject.get("end_term_marks")
        marks.append(SubjectMark(
            position=position,
            code=subject["code"],
            name=subject["name"],
            internal_marks=internal,
            end_term_marks=end_term,
            total=subject_total(internal, end_term),
        ))
    return marks


async def get_record(session: AsyncSession, record_id: int) -> AcademicRecord:
    result = await session.execute(select(AcademicRecord).filter(AcademicRecord.id == record_id))
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Academic record", record_id)
    return record


async def create_record(session: AsyncSession, student_id: int, semester: int, subjects: List[dict],
                        remarks: Optional[str] = None, created_by: Optional[int] = None) -> AcademicRecord:
    await _require_student(session, student_id)
    if isinstance(semester, bool) or not isinstance(semester, int) or semester < 1:
        raise OutOfRangeError("Semester must be a positive integer")

    marks = _build_subjects(subjects)
    sgpa = compute_sgpa(marks)

    existing = await session.execute(
        select(AcademicRecord.id).filter(
            AcademicRecord.student_id == student_id,
            AcademicRecord.semester == semester
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Academic record already exists for this semester")

    record = AcademicRecord(
        student_id=student_id,
        semester=semester,
        sgpa=sgpa,
        remarks=remarks or "",
        created_by=created_by,
        subjects=marks,
    )
    session.add(record)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ConflictError("Academic record already exists for this semester")

    logger.info(f"Academic record for student {student_id}, semester {semester} created (SGPA {sgpa})")
    return await get_record(session, record.id)


async def update_record(session: AsyncSession, record_id: int, subjects: Optional[List[dict]] = None,
                        remarks: Optional[str] = None) -> AcademicRecord:
    record = await get_record(session, record_id)

    if subjects is not None:
        marks = _build_subjects(subjects)
        record.subjects = marks
        record.sgpa = compute_sgpa(marks)

    if remarks is not None:
        record.remarks = remarks

    await session.commit()
    logger.info(f"Academic record {record_id} updated (SGPA {record.sgpa})")
    return await get_record(session, record_id)


async def delete_record(session: AsyncSession, record_id: int):
    record = await get_record(session, record_id)
    await session.delete(record)
    await session.commit()
    logger.info(f"Academic record {record_id} deleted")


async def list_records(session: AsyncSession, student_id: int) -> List[AcademicRecord]:
    await _require_student(session, student_id)
    result = await session.execute(
        select(AcademicRecord)
        .filter(AcademicRecord.student_id == student_id)
        .order_by(AcademicRecord.semester.desc())
    )
    return list(result.scalars().all())


async def latest_record(session: AsyncSession, student_id: int) -> AcademicRecord:
    result = await session.execute(
        select(AcademicRecord)
        .filter(AcademicRecord.student_id == student_id)
        .order_by(AcademicRecord.semester.desc())
        .limit(1)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise NotFoundError("Academic record", message="No academic records found")
    return record


async def cgpa_summary(session: AsyncSession, student_id: int) -> dict:
    result = await session.execute(
        select(AcademicRecord)
        .filter(AcademicRecord.student_id == student_id)
        .order_by(AcademicRecord.semester)
    )
    records = result.scalars().all()
    return {
        "cgpa": compute_cgpa(records),
        "total_semesters": len(records),
        "records": [{"semester": r.semester, "sgpa": r.sgpa} for r in records],
    }
