"""
Achievement proofs (activities): pending -> approved | rejected.

Students record events, achievements and skills with an optional proof
reference. Staff verify them. A teacher may only review activities of
students enrolled in one of their classrooms; admins may review any.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from ..core.database import as_utc, utcnow
from ..core.exceptions import ForbiddenError, InvalidStateError, NotFoundError, OutOfRangeError
from ..core.notifications import NotificationSink, dispatch_notification
from ..models.activity import Activity, ActivityCategory, ActivityStatus
from ..models.classroom import Classroom, ClassroomMembership
from ..models.notification import NotificationCategory
from ..models.user import User, UserRole
import logging

logger = logging.getLogger(__name__)

CATEGORIES = tuple(c.value for c in ActivityCategory)
STATUSES = tuple(s.value for s in ActivityStatus)


def _teacher_students(teacher_id: int):
    return (
        select(ClassroomMembership.student_id)
        .join(Classroom, ClassroomMembership.classroom_id == Classroom.id)
        .filter(Classroom.teacher_id == teacher_id)
    )


def _check_filters(category: Optional[str], status: Optional[str] = None):
    if category is not None and category not in CATEGORIES:
        raise OutOfRangeError(f"Category must be one of {', '.join(CATEGORIES)}")
    if status is not None and status not in STATUSES:
        raise OutOfRangeError(f"Status must be one of {', '.join(STATUSES)}")


async def get_activity(session: AsyncSession, activity_id: int) -> Activity:
    result = await session.execute(
        select(Activity)
        .filter(Activity.id == activity_id)
        .execution_options(populate_existing=True)
    )
    activity = result.scalar_one_or_none()
    if not activity:
        raise NotFoundError("Activity", activity_id)
    return activity


async def submit_activity(session: AsyncSession, student_id: int, title: str, category: str,
                          description: Optional[str] = None, file: Optional[str] = None) -> Activity:
    result = await session.execute(
        select(User).filter(User.id == student_id, User.role == UserRole.STUDENT.value)
    )
    if not result.scalar_one_or_none():
        raise NotFoundError("Student", student_id)

    if not title or not title.strip():
        raise OutOfRangeError("Title is required")
    if category not in CATEGORIES:
        raise OutOfRangeError(f"Category must be one of {', '.join(CATEGORIES)}")
    if file is not None and not isinstance(file, str):
        raise OutOfRangeError("Proof must be a file reference")

    activity = Activity(
        student_id=student_id,
        title=title.strip(),
        description=description,
        category=category,
        file=file,
        status=ActivityStatus.PENDING.value
    )
    session.add(activity)
    await session.commit()
    await session.refresh(activity)
    logger.info(f"Student {student_id} submitted activity {activity.id} ({category})")
    return activity


async def list_student_activities(session: AsyncSession, student_id: int, category: Optional[str] = None,
                                  status: Optional[str] = None) -> List[Activity]:
    _check_filters(category, status)
    query = select(Activity).filter(Activity.student_id == student_id)
    if category:
        query = query.filter(Activity.category == category)
    if status:
        query = query.filter(Activity.status == status)

    result = await session.execute(query.order_by(Activity.created_at.desc(), Activity.id.desc()))
    return list(result.scalars().all())


async def list_pending_activities(session: AsyncSession, reviewer_id: int, role: str,
                                  category: Optional[str] = None) -> List[Activity]:
    _check_filters(category)
    query = select(Activity).filter(Activity.status == ActivityStatus.PENDING.value)
    if role != UserRole.ADMIN.value:
        query = query.filter(Activity.student_id.in_(_teacher_students(reviewer_id)))
    if category:
        query = query.filter(Activity.category == category)

    result = await session.execute(query.order_by(Activity.created_at.desc(), Activity.id.desc()))
    return list(result.scalars().all())


async def _require_reviewer(session: AsyncSession, reviewer_id: int, role: str, activity: Activity):
    if role == UserRole.ADMIN.value:
        return
    result = await session.execute(
        _teacher_students(reviewer_id).filter(ClassroomMembership.student_id == activity.student_id).limit(1)
    )
    if result.scalar_one_or_none() is None:
        logger.warning(f"User {reviewer_id} tried to review activity {activity.id}")
        raise ForbiddenError("Only a teacher of this student can review the activity")


async def _review(session: AsyncSession, reviewer_id: int, role: str, activity_id: int, target: ActivityStatus,
                  note: Optional[str], notifier: Optional[NotificationSink], now: Optional[datetime]) -> Activity:
    activity = await get_activity(session, activity_id)
    await _require_reviewer(session, reviewer_id, role, activity)

    result = await session.execute(
        update(Activity)
        .where(Activity.id == activity_id, Activity.status == ActivityStatus.PENDING.value)
        .values(
            status=target.value,
            verified_by=reviewer_id,
            review_note=note,
            reviewed_at=as_utc(now) or utcnow()
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await session.refresh(activity)
        raise InvalidStateError("Activity has already been reviewed", current_state=activity.status)

    await session.commit()
    await session.refresh(activity)
    logger.info(f"Activity {activity_id} {target.value} by user {reviewer_id}")

    await dispatch_notification(
        notifier,
        activity.student_id,
        f"Activity {target.value.capitalize()}",
        f"Your activity '{activity.title}' was {target.value}",
        NotificationCategory.ACTIVITY.value,
        activity.id
    )
    return activity


async def approve_activity(session: AsyncSession, reviewer_id: int, role: str, activity_id: int,
                           note: Optional[str] = None, notifier: Optional[NotificationSink] = None,
                           now: Optional[datetime] = None) -> Activity:
    return await _review(session, reviewer_id, role, activity_id, ActivityStatus.APPROVED, note, notifier, now)


async def reject_activity(session: AsyncSession, reviewer_id: int, role: str, activity_id: int,
                          note: Optional[str] = None, notifier: Optional[NotificationSink] = None,
                          now: Optional[datetime] = None) -> Activity:
    return await _review(session, reviewer_id, role, activity_id, ActivityStatus.REJECTED, note, notifier, now)


async def activity_counts(session: AsyncSession, student_id: Optional[int] = None) -> dict:
    """Counts by status and by category, for one student or everybody"""
    by_status = select(Activity.status, func.count(Activity.id)).group_by(Activity.status)
    by_category = select(Activity.category, func.count(Activity.id)).group_by(Activity.category)
    if student_id is not None:
        by_status = by_status.filter(Activity.student_id == student_id)
        by_category = by_category.filter(Activity.student_id == student_id)

    statuses = {s: 0 for s in STATUSES}
    statuses.update(dict((await session.execute(by_status)).all()))
    categories = {c: 0 for c in CATEGORIES}
    categories.update(dict((await session.execute(by_category)).all()))

    return {
        "total": sum(statuses.values()),
        **statuses,
        "by_category": categories,
    }
