import pytest

from academic_workflow.core.exceptions import ConflictError, EmptyInputError, NotFoundError, OutOfRangeError
from academic_workflow.services import academic_records as record_service


def subjects(*totals):
    """Split each total evenly between internal and end-term marks"""
    return [
        {'code': f'CS{100 + i}', 'name': f'Subject {i}', 'internal_marks': t / 2, 'end_term_marks': t / 2}
        for i, t in enumerate(totals)
    ]


@pytest.mark.asyncio
async def test_create_record_computes_totals_and_sgpa(db_session, student, admin_user):
    record = await record_service.create_record(
        db_session, student.id, 1, subjects(90, 80, 70), remarks='Good start', created_by=admin_user.id
    )

    assert record.semester == 1
    assert record.sgpa == 8.0
    assert [s.total for s in record.subjects] == [90, 80, 70]
    assert [s.code for s in record.subjects] == ['CS100', 'CS101', 'CS102']
    assert record.remarks == 'Good start'
    assert record.created_by == admin_user.id


@pytest.mark.asyncio
async def test_duplicate_semester_conflicts(db_session, student):
    await record_service.create_record(db_session, student.id, 2, subjects(75))

    with pytest.raises(ConflictError):
        await record_service.create_record(db_session, student.id, 2, subjects(88))


@pytest.mark.asyncio
async def test_record_validation(db_session, student, teacher):
    with pytest.raises(NotFoundError):
        await record_service.create_record(db_session, 99999, 1, subjects(80))
    with pytest.raises(NotFoundError):
        await record_service.create_record(db_session, teacher.id, 1, subjects(80))
    with pytest.raises(OutOfRangeError):
        await record_service.create_record(db_session, student.id, 0, subjects(80))
    with pytest.raises(EmptyInputError):
        await record_service.create_record(db_session, student.id, 1, [])
    with pytest.raises(OutOfRangeError):
        await record_service.create_record(
            db_session, student.id, 1,
            [{'code': 'CS1', 'name': 'Bad', 'internal_marks': 120, 'end_term_marks': 10}]
        )

    assert await record_service.list_records(db_session, student.id) == []


@pytest.mark.asyncio
async def test_update_recomputes_sgpa(db_session, student):
    record = await record_service.create_record(db_session, student.id, 1, subjects(60, 60))
    assert record.sgpa == 6.0

    updated = await record_service.update_record(db_session, record.id, subjects=subjects(90, 100, 80))

    assert updated.sgpa == 9.0
    assert len(updated.subjects) == 3

    remarks_only = await record_service.update_record(db_session, record.id, remarks='Improved')
    assert remarks_only.sgpa == 9.0
    assert remarks_only.remarks == 'Improved'


@pytest.mark.asyncio
async def test_update_rejects_empty_subjects(db_session, student):
    record = await record_service.create_record(db_session, student.id, 1, subjects(70))

    with pytest.raises(EmptyInputError):
        await record_service.update_record(db_session, record.id, subjects=[])


@pytest.mark.asyncio
async def test_list_latest_and_cgpa(db_session, student):
    await record_service.create_record(db_session, student.id, 1, subjects(80))
    await record_service.create_record(db_session, student.id, 3, subjects(75))
    await record_service.create_record(db_session, student.id, 2, subjects(90))

    records = await record_service.list_records(db_session, student.id)
    assert [r.semester for r in records] == [3, 2, 1]

    latest = await record_service.latest_record(db_session, student.id)
    assert latest.semester == 3

    summary = await record_service.cgpa_summary(db_session, student.id)
    # (8.0 + 9.0 + 7.5) / 3
    assert summary['cgpa'] == 8.17
    assert summary['total_semesters'] == 3
    assert [r['semester'] for r in summary['records']] == [1, 2, 3]


@pytest.mark.asyncio
async def test_cgpa_without_records(db_session, student):
    summary = await record_service.cgpa_summary(db_session, student.id)
    assert summary == {'cgpa': 0, 'total_semesters': 0, 'records': []}

    with pytest.raises(NotFoundError):
        await record_service.latest_record(db_session, student.id)


@pytest.mark.asyncio
async def test_delete_record(db_session, student):
    record = await record_service.create_record(db_session, student.id, 1, subjects(80))

    await record_service.delete_record(db_session, record.id)

    assert await record_service.list_records(db_session, student.id) == []
    with pytest.raises(NotFoundError):
        await record_service.get_record(db_session, record.id)
