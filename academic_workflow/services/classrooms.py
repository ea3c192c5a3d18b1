"""
Classroom registry: classrooms, join codes and rosters.

The roster is the set of ``ClassroomMembership`` rows for a classroom; the
unique constraint on (classroom_id, student_id) keeps it a set even when two
joins race.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, delete, update, func
from ..core.exceptions import (
    AlreadyMemberError, ConflictError, ForbiddenError, InvalidStateError, NotFoundError
)
from ..models.classroom import Classroom, ClassroomMembership, ClassroomStatus
from ..models.user import User, UserRole
from ..utils.code_generator import generate_unique_join_code, normalize_join_code
import logging

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "section", "department", "description")


async def get_classroom(session: AsyncSession, classroom_id: int, lock: bool = False) -> Classroom:
    query = select(Classroom).filter(Classroom.id == classroom_id)
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    classroom = result.scalar_one_or_none()
    if not classroom:
        raise NotFoundError("Classroom", classroom_id)
    return classroom


async def require_active_classroom(session: AsyncSession, classroom_id: int) -> Classroom:
    """Capability check used before any assignment mutation"""
    classroom = await get_classroom(session, classroom_id, lock=True)
    if not classroom.is_active:
        raise InvalidStateError("Classroom is archived", current_state=classroom.status)
    return classroom


def _require_owner(classroom: Classroom, teacher_id: int, action: str):
    if classroom.teacher_id != teacher_id:
        logger.warning(f"User {teacher_id} tried to {action} classroom {classroom.id} owned by {classroom.teacher_id}")
        raise ForbiddenError(f"Only the classroom teacher can {action}")


async def _get_student(session: AsyncSession, student_id: int) -> User:
    result = await session.execute(
        select(User).filter(User.id == student_id, User.role == UserRole.STUDENT.value)
    )
    student = result.scalar_one_or_none()
    if not student:
        raise NotFoundError("Student", student_id)
    return student


async def is_member(session: AsyncSession, classroom_id: int, student_id: int) -> bool:
    result = await session.execute(
        select(ClassroomMembership.id).filter(
            ClassroomMembership.classroom_id == classroom_id,
            ClassroomMembership.student_id == student_id
        )
    )
    return result.scalar_one_or_none() is not None


async def roster_student_ids(session: AsyncSession, classroom_id: int) -> List[int]:
    result = await session.execute(
        select(ClassroomMembership.student_id)
        .filter(ClassroomMembership.classroom_id == classroom_id)
        .order_by(ClassroomMembership.id)
    )
    return list(result.scalars().all())


async def create_classroom(session: AsyncSession, teacher_id: int, name: str, section: str,
                           department: str, description: Optional[str] = None) -> Classroom:
    code = await generate_unique_join_code(session)
    classroom = Classroom(
        name=name,
        section=section,
        department=department,
        description=description,
        teacher_id=teacher_id,
        code=code,
        status=ClassroomStatus.ACTIVE.value
    )
    session.add(classroom)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning(f"Join code {code} was taken concurrently")
        raise ConflictError("Classroom code collision, please retry")

    await session.refresh(classroom)
    logger.info(f"Classroom {classroom.id} created by teacher {teacher_id} with code {code}")
    return classroom


async def update_classroom(session: AsyncSession, teacher_id: int, classroom_id: int, fields: dict) -> Classroom:
    classroom = await get_classroom(session, classroom_id)
    _require_owner(classroom, teacher_id, "update the classroom")
    if not classroom.is_active:
        raise InvalidStateError("Archived classrooms cannot be changed", current_state=classroom.status)

    for key, value in fields.items():
        if key in UPDATABLE_FIELDS and value is not None:
            setattr(classroom, key, value)

    await session.commit()
    await session.refresh(classroom)
    return classroom


async def join_by_code(session: AsyncSession, student_id: int, code: str) -> Classroom:
    result = await session.execute(
        select(Classroom).filter(Classroom.code == normalize_join_code(code)).with_for_update()
        .execution_options(populate_existing=True)
    )
    classroom = result.scalar_one_or_none()
    if not classroom:
        logger.warning(f"Join attempt with unknown code {code}")
        raise NotFoundError("Classroom", message="Classroom code not found")

    if not classroom.is_active:
        raise InvalidStateError("Classroom is archived", current_state=classroom.status)

    # Joining twice is an error, not a no-op
    if await is_member(session, classroom.id, student_id):
        raise AlreadyMemberError()

    await _insert_member(session, classroom.id, student_id)
    logger.info(f"Student {student_id} joined classroom {classroom.id}")
    return classroom


async def _insert_member(session: AsyncSession, classroom_id: int, student_id: int):
    session.add(ClassroomMembership(classroom_id=classroom_id, student_id=student_id))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise AlreadyMemberError()


async def _add_student(session: AsyncSession, classroom: Classroom, student_id: int) -> Classroom:
    if not classroom.is_active:
        raise InvalidStateError("Classroom is archived", current_state=classroom.status)
    await _get_student(session, student_id)
    if await is_member(session, classroom.id, student_id):
        raise AlreadyMemberError("Student is already in this classroom")

    await _insert_member(session, classroom.id, student_id)
    logger.info(f"Student {student_id} added to classroom {classroom.id}")
    return classroom


async def _remove_student(session: AsyncSession, classroom: Classroom, student_id: int) -> Classroom:
    if not classroom.is_active:
        raise InvalidStateError("Classroom is archived", current_state=classroom.status)

    # Removing a student who is not on the roster is a no-op
    result = await session.execute(
        delete(ClassroomMembership).where(
            ClassroomMembership.classroom_id == classroom.id,
            ClassroomMembership.student_id == student_id
        )
    )
    await session.commit()
    if result.rowcount:
        logger.info(f"Student {student_id} removed from classroom {classroom.id}")
    return classroom


async def add_student(session: AsyncSession, teacher_id: int, classroom_id: int, student_id: int) -> Classroom:
    classroom = await get_classroom(session, classroom_id, lock=True)
    _require_owner(classroom, teacher_id, "add students")
    return await _add_student(session, classroom, student_id)


async def remove_student(session: AsyncSession, teacher_id: int, classroom_id: int, student_id: int) -> Classroom:
    classroom = await get_classroom(session, classroom_id, lock=True)
    _require_owner(classroom, teacher_id, "remove students")
    return await _remove_student(session, classroom, student_id)


async def admin_add_student(session: AsyncSession, classroom_id: int, student_id: int) -> Classroom:
    classroom = await get_classroom(session, classroom_id, lock=True)
    return await _add_student(session, classroom, student_id)


async def admin_remove_student(session: AsyncSession, classroom_id: int, student_id: int) -> Classroom:
    classroom = await get_classroom(session, classroom_id, lock=True)
    return await _remove_student(session, classroom, student_id)


async def archive_classroom(session: AsyncSession, teacher_id: int, classroom_id: int) -> Classroom:
    classroom = await get_classroom(session, classroom_id)
    _require_owner(classroom, teacher_id, "archive the classroom")

    result = await session.execute(
        update(Classroom)
        .where(Classroom.id == classroom_id, Classroom.status == ClassroomStatus.ACTIVE.value)
        .values(status=ClassroomStatus.ARCHIVED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise InvalidStateError("Classroom is already archived", current_state=ClassroomStatus.ARCHIVED.value)

    await session.commit()
    await session.refresh(classroom)
    logger.info(f"Classroom {classroom_id} archived by teacher {teacher_id}")
    return classroom


async def get_roster(session: AsyncSession, classroom_id: int) -> List[User]:
    result = await session.execute(
        select(User)
        .join(ClassroomMembership, ClassroomMembership.student_id == User.id)
        .filter(ClassroomMembership.classroom_id == classroom_id)
        .order_by(User.name)
    )
    return list(result.scalars().all())


async def roster_size(session: AsyncSession, classroom_id: int) -> int:
    result = await session.execute(
        select(func.count(ClassroomMembership.id)).filter(ClassroomMembership.classroom_id == classroom_id)
    )
    return result.scalar() or 0


async def list_teacher_classrooms(session: AsyncSession, teacher_id: int) -> List[Classroom]:
    result = await session.execute(
        select(Classroom).filter(Classroom.teacher_id == teacher_id).order_by(Classroom.id.desc())
    )
    return list(result.scalars().all())


async def list_student_classrooms(session: AsyncSession, student_id: int) -> List[Classroom]:
    result = await session.execute(
        select(Classroom)
        .join(ClassroomMembership, ClassroomMembership.classroom_id == Classroom.id)
        .filter(ClassroomMembership.student_id == student_id)
        .order_by(Classroom.id.desc())
    )
    return list(result.scalars().all())


async def list_all_classrooms(session: AsyncSession, status: Optional[str] = None) -> List[Classroom]:
    query = select(Classroom).order_by(Classroom.id.desc())
    if status:
        query = query.filter(Classroom.status == status)
    result = await session.execute(query)
    return list(result.scalars().all())
