from datetime import timedelta

import pytest
from sqlalchemy import select, func

from academic_workflow.core.database import as_utc
from academic_workflow.core.exceptions import (
    ConflictError, ForbiddenError, InvalidStateError, OutOfRangeError
)
from academic_workflow.models.submission import Submission, SubmissionStatus
from academic_workflow.models.user import UserRole
from academic_workflow.services import analytics as analytics_service
from academic_workflow.services import assignments as assignment_service
from academic_workflow.services import classrooms as classroom_service
from academic_workflow.services import submissions as submission_service

from conftest import FailingNotifier, make_user


@pytest.mark.asyncio
async def test_submit_on_time(db_session, teacher, students, published_assignment, notifier):
    submission = await submission_service.submit(
        db_session, students[0].id, published_assignment.id, 'My answer',
        attachments=['https://files.example/answer.pdf'], notifier=notifier
    )

    assert submission.status == SubmissionStatus.SUBMITTED.value
    assert submission.submitted_at is not None
    assert submission.is_late is False
    assert submission.attachments == ['https://files.example/answer.pdf']
    assert notifier.titles_for(teacher.id) == ['New Submission']


@pytest.mark.asyncio
async def test_submit_after_due_date_is_late(db_session, students, published_assignment):
    due = as_utc(published_assignment.due_date)

    late = await submission_service.submit(
        db_session, students[0].id, published_assignment.id, 'Sorry', now=due + timedelta(hours=1)
    )
    exactly_on_time = await submission_service.submit(
        db_session, students[1].id, published_assignment.id, 'Just made it', now=due
    )

    assert late.is_late is True
    assert exactly_on_time.is_late is False


@pytest.mark.asyncio
async def test_submit_twice_conflicts(db_session, students, published_assignment):
    await submission_service.submit(db_session, students[0].id, published_assignment.id, 'first')

    with pytest.raises(ConflictError):
        await submission_service.submit(db_session, students[0].id, published_assignment.id, 'second')


@pytest.mark.asyncio
async def test_submit_requires_published(db_session, teacher, students, draft_assignment):
    with pytest.raises(InvalidStateError):
        await submission_service.submit(db_session, students[0].id, draft_assignment.id, 'early')

    await assignment_service.publish_assignment(db_session, teacher.id, draft_assignment.id)
    await assignment_service.close_assignment(db_session, teacher.id, draft_assignment.id)

    with pytest.raises(InvalidStateError):
        await submission_service.submit(db_session, students[0].id, draft_assignment.id, 'too late')


@pytest.mark.asyncio
async def test_submit_requires_membership(db_session, published_assignment):
    outsider = await make_user(db_session, UserRole.STUDENT)
    with pytest.raises(ForbiddenError):
        await submission_service.submit(db_session, outsider.id, published_assignment.id, 'let me in')


@pytest.mark.asyncio
async def test_late_joiner_gets_submission_on_submit(db_session, enrolled_classroom, published_assignment):
    newcomer = await make_user(db_session, UserRole.STUDENT)
    await classroom_service.join_by_code(db_session, newcomer.id, enrolled_classroom.code)

    submission = await submission_service.submit(db_session, newcomer.id, published_assignment.id, 'hello')

    assert submission.status == SubmissionStatus.SUBMITTED.value
    count = await db_session.execute(
        select(func.count(Submission.id)).filter(
            Submission.assignment_id == published_assignment.id,
            Submission.student_id == newcomer.id
        )
    )
    assert count.scalar() == 1


@pytest.mark.asyncio
async def test_grade_snapshots_max_points(db_session, teacher, students, published_assignment, notifier):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'work')

    graded = await submission_service.grade_submission(
        db_session, teacher.id, submission.id, 42, feedback='Solid', notifier=notifier
    )

    assert graded.status == SubmissionStatus.RETURNED.value
    assert graded.grade == 42
    assert graded.max_points == published_assignment.max_points == 50
    assert graded.feedback == 'Solid'
    assert graded.graded_by == teacher.id
    assert graded.graded_at is not None
    assert notifier.titles_for(students[0].id)[-1] == 'Assignment Graded'


@pytest.mark.asyncio
@pytest.mark.parametrize('grade', [-1, 51, None, True, 42.5, '40'])
async def test_grade_out_of_range(db_session, teacher, students, published_assignment, grade):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'work')
    submission_id = submission.id

    with pytest.raises(OutOfRangeError):
        await submission_service.grade_submission(db_session, teacher.id, submission_id, grade, feedback='Nope')

    unchanged = await submission_service.get_submission(db_session, submission_id)
    assert unchanged.status == SubmissionStatus.SUBMITTED.value
    assert unchanged.grade is None
    assert unchanged.max_points is None
    assert unchanged.feedback is None
    assert unchanged.graded_at is None


@pytest.mark.asyncio
async def test_grade_bounds_inclusive(db_session, teacher, students, published_assignment):
    first = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'a')
    second = await submission_service.submit(db_session, students[1].id, published_assignment.id, 'b')

    assert (await submission_service.grade_submission(db_session, teacher.id, first.id, 0)).grade == 0
    assert (await submission_service.grade_submission(db_session, teacher.id, second.id, 50)).grade == 50


@pytest.mark.asyncio
async def test_only_assignment_teacher_grades(db_session, other_teacher, students, published_assignment):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'work')

    # Ownership is checked before the grade value
    with pytest.raises(ForbiddenError):
        await submission_service.grade_submission(db_session, other_teacher.id, submission.id, 500)
    with pytest.raises(ForbiddenError):
        await submission_service.return_for_revision(db_session, other_teacher.id, submission.id, 'nope')


@pytest.mark.asyncio
async def test_graded_submission_can_be_handed_in_again(db_session, teacher, students, published_assignment):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'work')
    await submission_service.grade_submission(db_session, teacher.id, submission.id, 30)

    again = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'better work')

    assert again.id == submission.id
    assert again.status == SubmissionStatus.SUBMITTED.value
    assert again.content == 'better work'
    # The recorded score stays until the teacher grades again
    assert again.grade == 30
    assert again.max_points == 50

    with pytest.raises(ConflictError):
        await submission_service.submit(db_session, students[0].id, published_assignment.id, 'third try')


@pytest.mark.asyncio
async def test_return_for_revision_keeps_grade(db_session, teacher, students, published_assignment, notifier):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'v1')
    await submission_service.grade_submission(db_session, teacher.id, submission.id, 45)

    returned = await submission_service.return_for_revision(
        db_session, teacher.id, submission.id, feedback='Add tests', notifier=notifier
    )
    assert returned.status == SubmissionStatus.RETURNED.value
    assert returned.grade == 45
    assert returned.max_points == 50
    assert returned.is_graded is True
    assert returned.feedback == 'Add tests'
    assert notifier.titles_for(students[0].id)[-1] == 'Assignment Returned'

    summary = await analytics_service.assignment_summary(db_session, teacher.id, published_assignment.id)
    assert summary['total_graded'] == 1
    assert summary['average_grade'] == 90.0

    resubmitted = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'v2')
    assert resubmitted.id == submission.id
    assert resubmitted.status == SubmissionStatus.SUBMITTED.value
    assert resubmitted.content == 'v2'


@pytest.mark.asyncio
async def test_return_without_grade_is_feedback_only(db_session, teacher, students, published_assignment):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'draft idea')

    returned = await submission_service.return_for_revision(db_session, teacher.id, submission.id, 'Expand this')

    assert returned.status == SubmissionStatus.RETURNED.value
    assert returned.grade is None
    assert returned.is_graded is False


@pytest.mark.asyncio
async def test_placeholder_can_be_graded(db_session, teacher, students, published_assignment):
    placeholder = await db_session.execute(
        select(Submission).filter(
            Submission.assignment_id == published_assignment.id,
            Submission.student_id == students[2].id
        )
    )
    submission = placeholder.scalar_one()

    graded = await submission_service.grade_submission(db_session, teacher.id, submission.id, 0, 'Not submitted')
    assert graded.status == SubmissionStatus.RETURNED.value
    assert graded.grade == 0


@pytest.mark.asyncio
async def test_failing_notifier_never_fails_the_operation(db_session, teacher, students, published_assignment):
    failing = FailingNotifier()

    submission = await submission_service.submit(
        db_session, students[0].id, published_assignment.id, 'work', notifier=failing
    )
    graded = await submission_service.grade_submission(
        db_session, teacher.id, submission.id, 45, notifier=failing
    )

    assert submission.status in (SubmissionStatus.SUBMITTED.value, SubmissionStatus.RETURNED.value)
    assert graded.grade == 45


@pytest.mark.asyncio
async def test_submission_visibility(db_session, teacher, other_teacher, students, published_assignment):
    submission = await submission_service.submit(db_session, students[0].id, published_assignment.id, 'mine')

    assert (await submission_service.get_submission_for(db_session, students[0].id, submission.id)).id == submission.id
    assert (await submission_service.get_submission_for(db_session, teacher.id, submission.id)).id == submission.id

    with pytest.raises(ForbiddenError):
        await submission_service.get_submission_for(db_session, students[1].id, submission.id)
    with pytest.raises(ForbiddenError):
        await submission_service.get_submission_for(db_session, other_teacher.id, submission.id)


@pytest.mark.asyncio
async def test_submission_listings(db_session, teacher, other_teacher, students, enrolled_classroom,
                                   published_assignment):
    await submission_service.submit(db_session, students[0].id, published_assignment.id, 'work')

    all_rows = await submission_service.list_assignment_submissions(db_session, teacher.id, published_assignment.id)
    assert len(all_rows) == 3

    with pytest.raises(ForbiddenError):
        await submission_service.list_assignment_submissions(db_session, other_teacher.id, published_assignment.id)

    mine = await submission_service.list_student_submissions(db_session, students[0].id, enrolled_classroom.id)
    assert [s.student_id for s in mine] == [students[0].id]
    assert mine[0].status == SubmissionStatus.SUBMITTED.value
