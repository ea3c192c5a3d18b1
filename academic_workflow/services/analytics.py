"""
Read-only aggregation over assignments, submissions, academic records and activities.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from ..core.database import as_utc, utcnow
from ..core.exceptions import ForbiddenError
from ..models.academic_record import AcademicRecord
from ..models.activity import Activity
from ..models.assignment import Assignment, AssignmentStatus
from ..models.classroom import Classroom, ClassroomMembership
from ..models.submission import Submission, SubmissionStatus
from ..models.user import User
from ..utils.grades import compute_cgpa, percentage, round2
from .activities import activity_counts
from .assignments import get_assignment
import logging

logger = logging.getLogger(__name__)

HANDED_IN = (SubmissionStatus.SUBMITTED.value, SubmissionStatus.RETURNED.value)


def _round(value: float, places: int = 1) -> float:
    """Half-up rounding, so 62.25 -> 62.3 and 50.5 -> 51"""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


async def assignment_summary(session: AsyncSession, teacher_id: int, assignment_id: int) -> dict:
    """
    Grading summary for one assignment.

    Percentages use the max_points snapshot taken when each submission was
    graded, not the assignment's current value.
    """
    assignment = await get_assignment(session, assignment_id)
    if assignment.teacher_id != teacher_id:
        raise ForbiddenError("Only the assignment teacher can view the grading summary")

    result = await session.execute(
        select(Submission, User)
        .join(User, Submission.student_id == User.id)
        .filter(Submission.assignment_id == assignment_id)
        .order_by(Submission.id)
    )
    rows = result.all()

    total_submitted = sum(1 for s, _ in rows if s.status in HANDED_IN)
    graded = [percentage(s.grade, s.max_points) for s, _ in rows if s.grade is not None]
    graded = [p for p in graded if p is not None]
    average_grade = round2(sum(graded) / len(graded)) if graded else 0

    logger.info(f"Summary for assignment {assignment_id}: {total_submitted} submitted, {len(graded)} graded")
    return {
        "assignment_id": assignment_id,
        "total_submitted": total_submitted,
        "total_graded": len(graded),
        "average_grade": average_grade,
        "submissions": [
            {
                "id": s.id,
                "student_id": student.id,
                "student_name": student.name,
                "student_email": student.email,
                "roll_number": student.roll_number,
                "submitted_at": as_utc(s.submitted_at),
                "is_late": s.is_late,
                "grade": s.grade,
                "max_points": s.max_points,
                "percentage": percentage(s.grade, s.max_points),
                "status": s.status,
            }
            for s, student in rows
        ],
    }


async def student_performance(session: AsyncSession, student_id: int, now: Optional[datetime] = None) -> dict:
    """Cross-classroom assignment statistics for one student"""
    now = as_utc(now) or utcnow()

    classrooms_result = await session.execute(
        select(Classroom)
        .join(ClassroomMembership, ClassroomMembership.classroom_id == Classroom.id)
        .filter(ClassroomMembership.student_id == student_id)
        .order_by(Classroom.id)
    )
    classrooms = classrooms_result.scalars().all()
    classroom_ids = [c.id for c in classrooms]

    assignments = []
    submissions = []
    if classroom_ids:
        assignments_result = await session.execute(
            select(Assignment).filter(
                Assignment.classroom_id.in_(classroom_ids),
                Assignment.status == AssignmentStatus.PUBLISHED.value
            )
        )
        assignments = assignments_result.scalars().all()

        submissions_result = await session.execute(
            select(Submission, Assignment)
            .join(Assignment, Submission.assignment_id == Assignment.id)
            .filter(
                Submission.student_id == student_id,
                Submission.classroom_id.in_(classroom_ids),
                Submission.status.in_(HANDED_IN)
            )
        )
        submissions = submissions_result.all()

    total_assignments = len(assignments)
    total_submissions = len(submissions)
    late = sum(1 for s, _ in submissions if s.is_late)

    graded = [(s, a) for s, a in submissions if s.grade is not None and s.max_points]
    percentages = [percentage(s.grade, s.max_points) for s, _ in graded]

    # Most recent first, then flipped so charts read left to right
    by_recency = sorted(graded, key=lambda pair: as_utc(pair[0].submitted_at) or now, reverse=True)
    trend = [
        {
            "assignment_id": a.id,
            "title": a.title,
            "grade": s.grade,
            "max_points": s.max_points,
            "percentage": int(_round(percentage(s.grade, s.max_points), 0)),
            "submitted_at": as_utc(s.submitted_at),
            "is_late": s.is_late,
            "feedback": s.feedback,
        }
        for s, a in by_recency
    ]
    trend.reverse()

    recent = sorted(submissions, key=lambda pair: as_utc(pair[0].submitted_at) or now, reverse=True)[:10]
    recent_submissions = [
        {
            "assignment_id": a.id,
            "title": a.title,
            "submitted_at": as_utc(s.submitted_at),
            "is_late": s.is_late,
            "grade": s.grade,
            "max_points": s.max_points,
            "graded": s.grade is not None,
        }
        for s, a in recent
    ]

    submitted_ids = {a.id for _, a in submissions}
    pending = sorted(
        (a for a in assignments if a.id not in submitted_ids),
        key=lambda a: as_utc(a.due_date)
    )
    pending_assignments = [
        {
            "assignment_id": a.id,
            "classroom_id": a.classroom_id,
            "title": a.title,
            "due_date": as_utc(a.due_date),
            "max_points": a.max_points,
            "is_overdue": now > as_utc(a.due_date),
        }
        for a in pending
    ]

    return {
        "overview": {
            "total_classrooms": len(classrooms),
            "total_assignments": total_assignments,
            "total_submissions": total_submissions,
            "submission_rate": int(_round(total_submissions / total_assignments * 100, 0)) if total_assignments else 0,
            "late_submissions": late,
            "on_time_submissions": total_submissions - late,
            "pending_assignments": len(pending_assignments),
        },
        "performance": {
            "total_graded": len(graded),
            "average_percentage": _round(sum(percentages) / len(percentages)) if percentages else 0,
            "peak_score": _round(max(percentages)) if percentages else 0,
            "lowest_score": _round(min(percentages)) if percentages else 0,
            "grades_above_80": sum(1 for p in percentages if p >= 80),
            "grades_60_to_79": sum(1 for p in percentages if 60 <= p < 80),
            "grades_below_60": sum(1 for p in percentages if p < 60),
        },
        "classrooms": [
            {"id": c.id, "name": c.name, "section": c.section, "department": c.department}
            for c in classrooms
        ],
        "trend": trend,
        "recent_submissions": recent_submissions,
        "pending": pending_assignments,
        "activities": await activity_counts(session, student_id),
    }


def _distribution(values) -> dict:
    return {
        "excellent": sum(1 for v in values if v >= 9),
        "good": sum(1 for v in values if 8 <= v < 9),
        "average": sum(1 for v in values if 7 <= v < 8),
        "below_average": sum(1 for v in values if v < 7),
    }


async def academic_overview(session: AsyncSession) -> dict:
    """Population-wide SGPA/CGPA statistics for admins"""
    result = await session.execute(
        select(AcademicRecord, User)
        .join(User, AcademicRecord.student_id == User.id)
        .order_by(AcademicRecord.semester)
    )
    rows = result.all()

    sgpa_values = [r.sgpa for r, _ in rows if r.sgpa is not None]
    average_sgpa = sum(sgpa_values) / len(sgpa_values) if sgpa_values else 0

    by_student = defaultdict(list)
    students = {}
    for record, student in rows:
        by_student[student.id].append(record)
        students[student.id] = student

    cgpas = {student_id: compute_cgpa(records) for student_id, records in by_student.items()}
    average_cgpa = sum(cgpas.values()) / len(cgpas) if cgpas else 0

    semester_result = await session.execute(
        select(
            AcademicRecord.semester,
            func.count(AcademicRecord.id),
            func.avg(AcademicRecord.sgpa),
            func.max(AcademicRecord.sgpa),
            func.min(AcademicRecord.sgpa),
        )
        .group_by(AcademicRecord.semester)
        .order_by(AcademicRecord.semester)
    )
    by_semester = [
        {
            "semester": semester,
            "count": count,
            "average_sgpa": round2(avg) if avg is not None else 0,
            "max_sgpa": max_sgpa,
            "min_sgpa": min_sgpa,
        }
        for semester, count, avg, max_sgpa, min_sgpa in semester_result.all()
    ]

    top_students = sorted(
        (
            {
                "student_id": student_id,
                "name": students[student_id].name,
                "department": students[student_id].department or "N/A",
                "cgpa": cgpa,
                "semester_count": len(by_student[student_id]),
            }
            for student_id, cgpa in cgpas.items()
            if cgpa > 0
        ),
        key=lambda s: s["cgpa"],
        reverse=True
    )[:10]

    return {
        "overall": {
            "total_records": len(rows),
            "total_students": len(by_student),
            "average_sgpa": round2(average_sgpa),
            "average_cgpa": round2(average_cgpa),
            "distribution": _distribution(sgpa_values),
            "cgpa_distribution": _distribution(cgpas.values()),
        },
        "by_semester": by_semester,
        "top_students": top_students,
    }


async def activity_overview(session: AsyncSession, days: int = 30, now: Optional[datetime] = None) -> dict:
    """Activity counts plus daily submissions over the last ``days`` days"""
    now = as_utc(now) or utcnow()
    since = now - timedelta(days=days)

    result = await session.execute(
        select(Activity.created_at).filter(Activity.created_at >= since)
    )
    per_day = defaultdict(int)
    for created_at in result.scalars().all():
        per_day[as_utc(created_at).date().isoformat()] += 1

    return {
        **await activity_counts(session),
        "trend": [{"date": day, "count": per_day[day]} for day in sorted(per_day)],
    }
