"""
Assignment lifecycle.

    draft --publish--> published --close--> closed

Transitions are compare-and-set updates against the stored status, so two
teacher sessions racing on the same assignment cannot both win.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from ..core.database import as_utc, utcnow
from ..core.exceptions import ForbiddenError, InvalidStateError, NotFoundError, OutOfRangeError
from ..core.notifications import NotificationSink, dispatch_notification
from ..models.assignment import Assignment, AssignmentStatus, EDITABLE_FIELDS
from ..models.notification import NotificationCategory
from ..models.submission import Submission
from ..models.user import UserRole
from .classrooms import get_classroom, is_member, require_active_classroom
from .submissions import MaterializationResult, materialize_placeholders
import logging

logger = logging.getLogger(__name__)

STUDENT_VISIBLE = (AssignmentStatus.PUBLISHED.value, AssignmentStatus.CLOSED.value)


@dataclass
class PublishResult:
    assignment: Assignment
    placeholders: MaterializationResult

    @property
    def complete(self) -> bool:
        return self.placeholders.complete


async def get_assignment(session: AsyncSession, assignment_id: int) -> Assignment:
    result = await session.execute(
        select(Assignment)
        .filter(Assignment.id == assignment_id)
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)
    return assignment


def _require_owner(assignment: Assignment, teacher_id: int, action: str):
    if assignment.teacher_id != teacher_id:
        logger.warning(f"User {teacher_id} tried to {action} assignment {assignment.id}")
        raise ForbiddenError(f"Only the assignment teacher can {action} it")


def _validate_fields(fields: dict):
    if "max_points" in fields and fields["max_points"] is not None:
        max_points = fields["max_points"]
        if isinstance(max_points, bool) or not isinstance(max_points, int) or max_points < 1:
            raise OutOfRangeError("Max points must be a positive integer")
    if "title" in fields and fields["title"] is not None and not fields["title"].strip():
        raise OutOfRangeError("Title must not be empty")


async def _transition(session: AsyncSession, assignment: Assignment, expected: AssignmentStatus,
                      target: AssignmentStatus, **values):
    result = await session.execute(
        update(Assignment)
        .where(Assignment.id == assignment.id, Assignment.status == expected.value)
        .values(status=target.value, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.refresh(assignment)
        raise InvalidStateError(
            f"Assignment must be {expected.value} to become {target.value}",
            current_state=assignment.status
        )


async def create_assignment(session: AsyncSession, teacher_id: int, classroom_id: int, fields: dict) -> Assignment:
    classroom = await get_classroom(session, classroom_id)
    if classroom.teacher_id != teacher_id:
        logger.warning(f"User {teacher_id} tried to create an assignment in classroom {classroom_id}")
        raise ForbiddenError("Only the classroom teacher can create assignments")
    await require_active_classroom(session, classroom_id)

    fields = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
    _validate_fields(fields)
    if "due_date" not in fields:
        raise OutOfRangeError("Due date is required")
    fields["due_date"] = as_utc(fields["due_date"])
    fields.setdefault("attachments", [])

    assignment = Assignment(
        classroom_id=classroom_id,
        teacher_id=teacher_id,
        status=AssignmentStatus.DRAFT.value,
        **fields
    )
    session.add(assignment)
    await session.commit()
    await session.refresh(assignment)
    logger.info(f"Assignment {assignment.id} created in classroom {classroom_id}")
    return assignment


async def edit_assignment(session: AsyncSession, teacher_id: int, assignment_id: int, fields: dict) -> Assignment:
    assignment = await get_assignment(session, assignment_id)
    _require_owner(assignment, teacher_id, "edit")
    await require_active_classroom(session, assignment.classroom_id)

    changes = {k: v for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
    if "due_date" in changes:
        changes["due_date"] = as_utc(changes["due_date"])

    # Content is only editable while the stored status is still draft
    if assignment.status != AssignmentStatus.DRAFT.value:
        raise InvalidStateError("Can only edit draft assignments", current_state=assignment.status)
    _validate_fields(changes)

    if changes:
        result = await session.execute(
            update(Assignment)
            .where(Assignment.id == assignment_id, Assignment.status == AssignmentStatus.DRAFT.value)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.refresh(assignment)
            raise InvalidStateError("Can only edit draft assignments", current_state=assignment.status)
        await session.commit()

    await session.refresh(assignment)
    logger.info(f"Assignment {assignment_id} updated: {sorted(changes)}")
    return assignment


async def publish_assignment(session: AsyncSession, teacher_id: int, assignment_id: int,
                             notifier: Optional[NotificationSink] = None,
                             now: Optional[datetime] = None) -> PublishResult:
    assignment = await get_assignment(session, assignment_id)
    _require_owner(assignment, teacher_id, "publish")
    await require_active_classroom(session, assignment.classroom_id)

    await _transition(
        session, assignment, AssignmentStatus.DRAFT, AssignmentStatus.PUBLISHED,
        published_at=as_utc(now) or utcnow()
    )
    placeholders = await materialize_placeholders(session, assignment)
    await session.commit()
    await session.refresh(assignment)
    logger.info(f"Assignment {assignment_id} published")

    result = await session.execute(
        select(Submission.student_id).filter(Submission.assignment_id == assignment_id)
    )
    for student_id in result.scalars().all():
        await dispatch_notification(
            notifier,
            student_id,
            "New Assignment",
            f"{assignment.title} has been published",
            NotificationCategory.ASSIGNMENT.value,
            assignment.id
        )
    return PublishResult(assignment=assignment, placeholders=placeholders)


async def sync_placeholders(session: AsyncSession, teacher_id: int, assignment_id: int) -> MaterializationResult:
    """Create placeholders for students who joined after publish"""
    assignment = await get_assignment(session, assignment_id)
    _require_owner(assignment, teacher_id, "update")
    if assignment.status != AssignmentStatus.PUBLISHED.value:
        raise InvalidStateError("Assignment is not published", current_state=assignment.status)

    placeholders = await materialize_placeholders(session, assignment)
    await session.commit()
    return placeholders


async def close_assignment(session: AsyncSession, teacher_id: int, assignment_id: int,
                           now: Optional[datetime] = None) -> Assignment:
    assignment = await get_assignment(session, assignment_id)
    _require_owner(assignment, teacher_id, "close")

    await _transition(
        session, assignment, AssignmentStatus.PUBLISHED, AssignmentStatus.CLOSED,
        closed_at=as_utc(now) or utcnow()
    )
    await session.commit()
    await session.refresh(assignment)
    logger.info(f"Assignment {assignment_id} closed")
    return assignment


async def delete_assignment(session: AsyncSession, teacher_id: int, assignment_id: int) -> int:
    """Delete the assignment and all of its submissions. Returns the number of submissions removed."""
    assignment = await get_assignment(session, assignment_id)
    _require_owner(assignment, teacher_id, "delete")
    await require_active_classroom(session, assignment.classroom_id)

    removed = await session.execute(delete(Submission).where(Submission.assignment_id == assignment_id))
    await session.execute(delete(Assignment).where(Assignment.id == assignment_id))
    await session.commit()
    logger.info(f"Assignment {assignment_id} deleted with {removed.rowcount} submissions")
    return removed.rowcount


async def get_assignment_for(session: AsyncSession, user_id: int, role: str, assignment_id: int) -> Assignment:
    assignment = await get_assignment(session, assignment_id)
    if role == UserRole.ADMIN.value or assignment.teacher_id == user_id:
        return assignment
    if (
        role == UserRole.STUDENT.value
        and assignment.status in STUDENT_VISIBLE
        and await is_member(session, assignment.classroom_id, user_id)
    ):
        return assignment
    # Drafts are invisible to everybody but the owner
    raise NotFoundError("Assignment", assignment_id)


async def list_classroom_assignments(session: AsyncSession, user_id: int, role: str,
                                     classroom_id: int) -> List[Assignment]:
    classroom = await get_classroom(session, classroom_id)
    query = select(Assignment).filter(Assignment.classroom_id == classroom_id)

    if role == UserRole.STUDENT.value:
        if not await is_member(session, classroom_id, user_id):
            raise ForbiddenError("You are not enrolled in this classroom")
        query = query.filter(Assignment.status.in_(STUDENT_VISIBLE))
    elif role != UserRole.ADMIN.value and classroom.teacher_id != user_id:
        raise ForbiddenError("Only the classroom teacher can list its assignments")

    result = await session.execute(query.order_by(Assignment.due_date, Assignment.id))
    return list(result.scalars().all())
