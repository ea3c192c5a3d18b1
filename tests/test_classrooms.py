import pytest
from sqlalchemy import select

from academic_workflow.core.exceptions import (
    AlreadyMemberError, ConflictError, ForbiddenError, InvalidStateError, NotFoundError
)
from academic_workflow.models.classroom import ClassroomMembership, ClassroomStatus
from academic_workflow.models.user import UserRole
from academic_workflow.services import assignments as assignment_service
from academic_workflow.services import classrooms as classroom_service
from academic_workflow.utils import code_generator

from conftest import future, make_user


@pytest.mark.asyncio
async def test_create_classroom_assigns_code(db_session, teacher):
    classroom = await classroom_service.create_classroom(
        db_session, teacher.id, name='Algorithms', section='B', department='Computer Science'
    )

    assert classroom.teacher_id == teacher.id
    assert classroom.status == ClassroomStatus.ACTIVE.value
    assert len(classroom.code) == 8
    assert await classroom_service.roster_size(db_session, classroom.id) == 0


@pytest.mark.asyncio
async def test_join_codes_are_unique(db_session, teacher):
    codes = set()
    for i in range(5):
        classroom = await classroom_service.create_classroom(
            db_session, teacher.id, name=f'Class {i}', section='A', department='Physics'
        )
        codes.add(classroom.code)
    assert len(codes) == 5


@pytest.mark.asyncio
async def test_code_generation_gives_up_after_collisions(db_session, classroom, monkeypatch):
    monkeypatch.setattr(code_generator, 'generate_join_code', lambda: classroom.code)

    with pytest.raises(ConflictError):
        await code_generator.generate_unique_join_code(db_session, max_attempts=3)


@pytest.mark.asyncio
async def test_join_by_code(db_session, classroom, student):
    joined = await classroom_service.join_by_code(db_session, student.id, classroom.code.lower())

    assert joined.id == classroom.id
    assert await classroom_service.is_member(db_session, classroom.id, student.id)


@pytest.mark.asyncio
async def test_join_twice_is_rejected(db_session, classroom, student):
    await classroom_service.join_by_code(db_session, student.id, classroom.code)

    with pytest.raises(AlreadyMemberError):
        await classroom_service.join_by_code(db_session, student.id, classroom.code)

    assert await classroom_service.roster_size(db_session, classroom.id) == 1


@pytest.mark.asyncio
async def test_roster_unique_constraint_backs_up_check(db_session, classroom, student, monkeypatch):
    # The failed insert rolls back the session and expires loaded objects
    classroom_id, code, student_id = classroom.id, classroom.code, student.id
    await classroom_service.join_by_code(db_session, student_id, code)

    async def never_member(*args, **kwargs):
        return False

    # Simulate a second join that raced past the membership check
    monkeypatch.setattr(classroom_service, 'is_member', never_member)
    with pytest.raises(AlreadyMemberError):
        await classroom_service.join_by_code(db_session, student_id, code)

    result = await db_session.execute(
        select(ClassroomMembership).filter(ClassroomMembership.classroom_id == classroom_id)
    )
    assert len(result.scalars().all()) == 1


@pytest.mark.asyncio
async def test_join_unknown_code(db_session, student):
    with pytest.raises(NotFoundError) as exc:
        await classroom_service.join_by_code(db_session, student.id, 'ZZZZZZZZ')
    assert exc.value.message == 'Classroom code not found'


@pytest.mark.asyncio
async def test_join_archived_classroom(db_session, teacher, classroom, student):
    await classroom_service.archive_classroom(db_session, teacher.id, classroom.id)

    with pytest.raises(InvalidStateError):
        await classroom_service.join_by_code(db_session, student.id, classroom.code)


@pytest.mark.asyncio
async def test_add_student_by_teacher(db_session, teacher, classroom, student):
    await classroom_service.add_student(db_session, teacher.id, classroom.id, student.id)

    roster = await classroom_service.get_roster(db_session, classroom.id)
    assert [s.id for s in roster] == [student.id]

    with pytest.raises(AlreadyMemberError):
        await classroom_service.add_student(db_session, teacher.id, classroom.id, student.id)


@pytest.mark.asyncio
async def test_add_unknown_or_non_student(db_session, teacher, classroom, other_teacher):
    with pytest.raises(NotFoundError):
        await classroom_service.add_student(db_session, teacher.id, classroom.id, 99999)
    with pytest.raises(NotFoundError):
        await classroom_service.add_student(db_session, teacher.id, classroom.id, other_teacher.id)


@pytest.mark.asyncio
async def test_only_owner_manages_roster(db_session, other_teacher, classroom, student):
    with pytest.raises(ForbiddenError):
        await classroom_service.add_student(db_session, other_teacher.id, classroom.id, student.id)
    with pytest.raises(ForbiddenError):
        await classroom_service.remove_student(db_session, other_teacher.id, classroom.id, student.id)


@pytest.mark.asyncio
async def test_remove_absent_student_is_noop(db_session, teacher, classroom, student):
    await classroom_service.remove_student(db_session, teacher.id, classroom.id, student.id)
    assert await classroom_service.roster_size(db_session, classroom.id) == 0


@pytest.mark.asyncio
async def test_remove_then_rejoin(db_session, teacher, classroom, student):
    await classroom_service.join_by_code(db_session, student.id, classroom.code)
    await classroom_service.remove_student(db_session, teacher.id, classroom.id, student.id)
    assert not await classroom_service.is_member(db_session, classroom.id, student.id)

    await classroom_service.join_by_code(db_session, student.id, classroom.code)
    assert await classroom_service.is_member(db_session, classroom.id, student.id)


@pytest.mark.asyncio
async def test_admin_roster_wrappers_skip_ownership(db_session, classroom, student):
    await classroom_service.admin_add_student(db_session, classroom.id, student.id)
    assert await classroom_service.is_member(db_session, classroom.id, student.id)

    await classroom_service.admin_remove_student(db_session, classroom.id, student.id)
    assert not await classroom_service.is_member(db_session, classroom.id, student.id)


@pytest.mark.asyncio
async def test_archive(db_session, teacher, other_teacher, classroom, student):
    with pytest.raises(ForbiddenError):
        await classroom_service.archive_classroom(db_session, other_teacher.id, classroom.id)

    archived = await classroom_service.archive_classroom(db_session, teacher.id, classroom.id)
    assert archived.status == ClassroomStatus.ARCHIVED.value

    with pytest.raises(InvalidStateError):
        await classroom_service.archive_classroom(db_session, teacher.id, classroom.id)
    with pytest.raises(InvalidStateError):
        await classroom_service.add_student(db_session, teacher.id, classroom.id, student.id)
    with pytest.raises(InvalidStateError):
        await classroom_service.update_classroom(db_session, teacher.id, classroom.id, {'name': 'Renamed'})


@pytest.mark.asyncio
async def test_archived_classroom_rejects_assignments(db_session, teacher, classroom):
    draft = await assignment_service.create_assignment(
        db_session, teacher.id, classroom.id, {'title': 'Essay', 'due_date': future()}
    )
    await classroom_service.archive_classroom(db_session, teacher.id, classroom.id)

    with pytest.raises(InvalidStateError):
        await assignment_service.create_assignment(
            db_session, teacher.id, classroom.id, {'title': 'Another', 'due_date': future()}
        )
    with pytest.raises(InvalidStateError):
        await assignment_service.publish_assignment(db_session, teacher.id, draft.id)


@pytest.mark.asyncio
async def test_archived_classroom_freezes_existing_assignments(db_session, teacher, classroom):
    draft = await assignment_service.create_assignment(
        db_session, teacher.id, classroom.id, {'title': 'Essay', 'due_date': future()}
    )
    draft_id = draft.id
    await classroom_service.archive_classroom(db_session, teacher.id, classroom.id)

    with pytest.raises(InvalidStateError):
        await assignment_service.edit_assignment(db_session, teacher.id, draft_id, {'title': 'Changed'})
    with pytest.raises(InvalidStateError):
        await assignment_service.delete_assignment(db_session, teacher.id, draft_id)

    kept = await assignment_service.get_assignment(db_session, draft_id)
    assert kept.title == 'Essay'


@pytest.mark.asyncio
async def test_update_classroom_keeps_code_and_owner(db_session, teacher, classroom):
    code = classroom.code
    updated = await classroom_service.update_classroom(
        db_session, teacher.id, classroom.id,
        {'name': 'Advanced Data Structures', 'code': 'HIJACKED', 'teacher_id': 12345}
    )

    assert updated.name == 'Advanced Data Structures'
    assert updated.code == code
    assert updated.teacher_id == teacher.id


@pytest.mark.asyncio
async def test_listings(db_session, teacher, other_teacher, classroom, student):
    other = await classroom_service.create_classroom(
        db_session, other_teacher.id, name='Optics', section='C', department='Physics'
    )
    await classroom_service.join_by_code(db_session, student.id, other.code)

    assert [c.id for c in await classroom_service.list_teacher_classrooms(db_session, teacher.id)] == [classroom.id]
    assert [c.id for c in await classroom_service.list_student_classrooms(db_session, student.id)] == [other.id]
    assert len(await classroom_service.list_all_classrooms(db_session)) == 2

    await classroom_service.archive_classroom(db_session, other_teacher.id, other.id)
    archived = await classroom_service.list_all_classrooms(db_session, status=ClassroomStatus.ARCHIVED.value)
    assert [c.id for c in archived] == [other.id]


@pytest.mark.asyncio
async def test_roster_sorted_by_name(db_session, teacher, classroom):
    zoe = await make_user(db_session, UserRole.STUDENT, name='Zoe Park')
    amir = await make_user(db_session, UserRole.STUDENT, name='Amir Khan')
    for s in (zoe, amir):
        await classroom_service.add_student(db_session, teacher.id, classroom.id, s.id)

    roster = await classroom_service.get_roster(db_session, classroom.id)
    assert [s.name for s in roster] == ['Amir Khan', 'Zoe Park']
