"""
Submission lifecycle: draft -> submitted -> returned.

Placeholders (draft submissions) are materialised when an assignment is
published. The unique constraint on (assignment_id, student_id) is what
guarantees one submission per student; the existence checks here only
avoid needless failed inserts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from ..core.database import as_utc, utcnow
from ..core.exceptions import (
    ConflictError, ForbiddenError, InvalidStateError, NotFoundError, OutOfRangeError
)
from ..core.notifications import NotificationSink, dispatch_notification
from ..models.assignment import Assignment, AssignmentStatus
from ..models.notification import NotificationCategory
from ..models.submission import Submission, SubmissionStatus
from .classrooms import is_member, roster_student_ids
import logging

logger = logging.getLogger(__name__)


@dataclass
class MaterializationResult:
    created: int = 0
    already_present: int = 0
    missing_student_ids: List[int] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing_student_ids


async def _find_submission(session: AsyncSession, assignment_id: int, student_id: int,
                           lock: bool = False) -> Optional[Submission]:
    query = select(Submission).filter(
        Submission.assignment_id == assignment_id,
        Submission.student_id == student_id
    )
    if lock:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def ensure_submission(session: AsyncSession, assignment: Assignment,
                            student_id: int) -> Tuple[Submission, bool]:
    """Return the student's submission, creating a draft if there is none."""
    existing = await _find_submission(session, assignment.id, student_id)
    if existing:
        return existing, False

    submission = Submission(
        assignment_id=assignment.id,
        student_id=student_id,
        classroom_id=assignment.classroom_id,
        status=SubmissionStatus.DRAFT.value,
        attachments=[],
        is_late=False
    )
    try:
        async with session.begin_nested():
            session.add(submission)
    except IntegrityError:
        # Created by a concurrent request between the check and the insert
        logger.info(f"Submission for assignment {assignment.id}, student {student_id} already exists")
        existing = await _find_submission(session, assignment.id, student_id)
        if existing is None:
            raise
        return existing, False
    return submission, True


async def materialize_placeholders(session: AsyncSession, assignment: Assignment) -> MaterializationResult:
    """
    Create one draft submission per student currently on the roster.

    Safe to re-run. Does not commit; the caller owns the transaction.
    """
    outcome = MaterializationResult()
    student_ids = await roster_student_ids(session, assignment.classroom_id)

    for student_id in student_ids:
        _, created = await ensure_submission(session, assignment, student_id)
        if created:
            outcome.created += 1
        else:
            outcome.already_present += 1

    await session.flush()
    result = await session.execute(
        select(Submission.student_id).filter(Submission.assignment_id == assignment.id)
    )
    present = set(result.scalars().all())
    outcome.missing_student_ids = [sid for sid in student_ids if sid not in present]

    if outcome.missing_student_ids:
        logger.warning(
            f"Assignment {assignment.id}: no placeholder for students {outcome.missing_student_ids}"
        )
    logger.info(
        f"Assignment {assignment.id}: {outcome.created} placeholders created, "
        f"{outcome.already_present} already present"
    )
    return outcome


async def get_assignment_for_update(session: AsyncSession, assignment_id: int) -> Assignment:
    result = await session.execute(
        select(Assignment)
        .filter(Assignment.id == assignment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)
    return assignment


async def submit(session: AsyncSession, student_id: int, assignment_id: int, content: Optional[str],
                 attachments: Optional[List[str]] = None, notifier: Optional[NotificationSink] = None,
                 now: Optional[datetime] = None) -> Submission:
    now = as_utc(now) or utcnow()
    assignment = await get_assignment_for_update(session, assignment_id)

    if not await is_member(session, assignment.classroom_id, student_id):
        raise ForbiddenError("You are not enrolled in this classroom")

    if assignment.status != AssignmentStatus.PUBLISHED.value:
        raise InvalidStateError("Assignment is not open for submissions", current_state=assignment.status)

    submission = await _find_submission(session, assignment.id, student_id, lock=True)
    if submission is not None:
        # Drafts and returned work may be handed in again; a pending hand-in may not
        if submission.status == SubmissionStatus.SUBMITTED.value:
            raise ConflictError("You have already submitted this assignment")
    else:
        # Students who joined after publish get their row on first submit
        submission, _ = await ensure_submission(session, assignment, student_id)

    submission.content = content
    submission.attachments = list(attachments or [])
    submission.status = SubmissionStatus.SUBMITTED.value
    submission.submitted_at = now
    submission.is_late = now > as_utc(assignment.due_date)

    await session.commit()
    await session.refresh(submission)
    logger.info(
        f"Student {student_id} submitted assignment {assignment.id}"
        f"{' (late)' if submission.is_late else ''}"
    )

    await dispatch_notification(
        notifier,
        assignment.teacher_id,
        "New Submission",
        f"Student submitted {assignment.title}",
        NotificationCategory.SUBMISSION.value,
        submission.id
    )
    return submission


async def get_submission(session: AsyncSession, submission_id: int) -> Submission:
    result = await session.execute(select(Submission).filter(Submission.id == submission_id))
    submission = result.scalar_one_or_none()
    if not submission:
        raise NotFoundError("Submission", submission_id)
    return submission


async def _load_for_teacher(session: AsyncSession, teacher_id: int, submission_id: int,
                            action: str) -> Tuple[Submission, Assignment]:
    result = await session.execute(
        select(Submission)
        .filter(Submission.id == submission_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    submission = result.scalar_one_or_none()
    if not submission:
        raise NotFoundError("Submission", submission_id)

    result = await session.execute(select(Assignment).filter(Assignment.id == submission.assignment_id))
    assignment = result.scalar_one()
    if assignment.teacher_id != teacher_id:
        logger.warning(f"User {teacher_id} tried to {action} submission {submission_id}")
        raise ForbiddenError(f"Only the assignment teacher can {action} submissions")
    return submission, assignment


async def grade_submission(session: AsyncSession, teacher_id: int, submission_id: int, grade: int,
                           feedback: Optional[str] = None, notifier: Optional[NotificationSink] = None,
                           now: Optional[datetime] = None) -> Submission:
    submission, assignment = await _load_for_teacher(session, teacher_id, submission_id, "grade")

    if isinstance(grade, bool) or not isinstance(grade, int) or grade < 0 or grade > assignment.max_points:
        raise OutOfRangeError(f"Grade must be between 0 and {assignment.max_points}")

    submission.grade = grade
    submission.max_points = assignment.max_points
    submission.feedback = feedback
    submission.graded_at = as_utc(now) or utcnow()
    submission.graded_by = teacher_id
    submission.status = SubmissionStatus.RETURNED.value

    await session.commit()
    await session.refresh(submission)
    logger.info(f"Submission {submission_id} graded {grade}/{assignment.max_points} by teacher {teacher_id}")

    await dispatch_notification(
        notifier,
        submission.student_id,
        "Assignment Graded",
        f"Your submission has been graded: {grade}/{assignment.max_points}",
        NotificationCategory.GRADING.value,
        submission.id
    )
    return submission


async def return_for_revision(session: AsyncSession, teacher_id: int, submission_id: int,
                              feedback: Optional[str] = None, notifier: Optional[NotificationSink] = None,
                              now: Optional[datetime] = None) -> Submission:
    submission, _ = await _load_for_teacher(session, teacher_id, submission_id, "return")

    submission.feedback = feedback
    submission.graded_at = as_utc(now) or utcnow()
    submission.graded_by = teacher_id
    submission.status = SubmissionStatus.RETURNED.value

    await session.commit()
    await session.refresh(submission)
    logger.info(f"Submission {submission_id} returned for revision by teacher {teacher_id}")

    await dispatch_notification(
        notifier,
        submission.student_id,
        "Assignment Returned",
        "Your submission needs revision. Please check the feedback.",
        NotificationCategory.SUBMISSION.value,
        submission.id
    )
    return submission


async def get_submission_for(session: AsyncSession, user_id: int, submission_id: int) -> Submission:
    """Visible to the submitting student and the assignment teacher"""
    submission = await get_submission(session, submission_id)
    if submission.student_id == user_id:
        return submission

    result = await session.execute(
        select(Assignment.teacher_id).filter(Assignment.id == submission.assignment_id)
    )
    if result.scalar_one_or_none() != user_id:
        raise ForbiddenError("You cannot view this submission")
    return submission


async def list_assignment_submissions(session: AsyncSession, teacher_id: int, assignment_id: int) -> List[Submission]:
    result = await session.execute(select(Assignment).filter(Assignment.id == assignment_id))
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)
    if assignment.teacher_id != teacher_id:
        raise ForbiddenError("Only the assignment teacher can view submissions")

    result = await session.execute(
        select(Submission)
        .filter(Submission.assignment_id == assignment_id)
        .order_by(Submission.submitted_at.desc(), Submission.id)
    )
    return list(result.scalars().all())


async def list_student_submissions(session: AsyncSession, student_id: int, classroom_id: int) -> List[Submission]:
    result = await session.execute(
        select(Submission)
        .filter(Submission.classroom_id == classroom_id, Submission.student_id == student_id)
        .order_by(Submission.submitted_at.desc(), Submission.id)
    )
    return list(result.scalars().all())
