from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, func
from pydantic import BaseModel, EmailStr
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, require_admin
from ..core.exceptions import ConflictError, NotFoundError, WorkflowError
from ..models.user import User, UserRole
from ..models.classroom import Classroom, ClassroomStatus
from ..models.assignment import Assignment, AssignmentStatus
from ..models.submission import Submission, SubmissionStatus
from ..models.academic_record import AcademicRecord
from ..models.notification import Notification
from ..models.activity import Activity, ActivityStatus
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    role: UserRole
    department: Optional[str] = None
    roll_number: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    department: Optional[str] = None
    roll_number: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    department: Optional[str] = None
    roll_number: Optional[str] = None

    class Config:
        from_attributes = True


class PlatformStats(BaseModel):
    students: int
    teachers: int
    admins: int
    active_classrooms: int
    archived_classrooms: int
    draft_assignments: int
    published_assignments: int
    closed_assignments: int
    pending_submissions: int
    returned_submissions: int
    academic_records: int
    unread_notifications: int
    pending_activities: int


# User directory
@router.get("/users", response_model=List[UserResponse])
async def get_users(role: Optional[UserRole] = Query(None), db: AsyncSession = Depends(get_db),
                    principal: Principal = Depends(require_admin)):
    try:
        query = select(User)
        if role:
            query = query.filter(User.role == role.value)
        result = await db.execute(query.order_by(User.name))
        return result.scalars().all()
    except Exception as e:
        logger.error(f"Error getting users: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving users")


@router.post("/users", response_model=UserResponse)
async def create_user(user: UserCreate, db: AsyncSession = Depends(get_db),
                      principal: Principal = Depends(require_admin)):
    try:
        existing_user = await db.execute(select(User).filter(User.email == user.email))
        if existing_user.scalar_one_or_none():
            raise ConflictError("Email already registered")

        db_user = User(
            name=user.name,
            email=user.email,
            role=user.role.value,
            department=user.department,
            roll_number=user.roll_number
        )
        db.add(db_user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Email already registered")
        await db.refresh(db_user)
        logger.info(f"User {db_user.id} ({db_user.role}) added to directory by admin {principal.user_id}")
        return db_user
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating user")


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db),
                   principal: Principal = Depends(require_admin)):
    try:
        result = await db.execute(select(User).filter(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise NotFoundError("User", user_id)
        return user
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving user")


@router.put("/users/{user_id}", response_model=UserResponse)
async def update_user(user_id: int, user: UserUpdate, db: AsyncSession = Depends(get_db),
                      principal: Principal = Depends(require_admin)):
    try:
        result = await db.execute(select(User).filter(User.id == user_id))
        db_user = result.scalar_one_or_none()
        if not db_user:
            raise NotFoundError("User", user_id)

        for key, value in user.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(db_user, key, value)
        await db.commit()
        await db.refresh(db_user)
        return db_user
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating user")


@router.get("/stats", response_model=PlatformStats)
async def get_platform_stats(db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_admin)):
    try:
        users = await db.execute(select(User.role, func.count(User.id)).group_by(User.role))
        by_role = dict(users.all())

        classrooms = await db.execute(
            select(Classroom.status, func.count(Classroom.id)).group_by(Classroom.status)
        )
        by_classroom_status = dict(classrooms.all())

        assignments = await db.execute(
            select(Assignment.status, func.count(Assignment.id)).group_by(Assignment.status)
        )
        by_assignment_status = dict(assignments.all())

        submissions = await db.execute(
            select(Submission.status, func.count(Submission.id)).group_by(Submission.status)
        )
        by_submission_status = dict(submissions.all())

        records_count = await db.execute(select(func.count(AcademicRecord.id)))
        unread_count = await db.execute(
            select(func.count(Notification.id)).filter(Notification.read == False)
        )
        pending_activities = await db.execute(
            select(func.count(Activity.id)).filter(Activity.status == ActivityStatus.PENDING.value)
        )

        return PlatformStats(
            students=by_role.get(UserRole.STUDENT.value, 0),
            teachers=by_role.get(UserRole.TEACHER.value, 0),
            admins=by_role.get(UserRole.ADMIN.value, 0),
            active_classrooms=by_classroom_status.get(ClassroomStatus.ACTIVE.value, 0),
            archived_classrooms=by_classroom_status.get(ClassroomStatus.ARCHIVED.value, 0),
            draft_assignments=by_assignment_status.get(AssignmentStatus.DRAFT.value, 0),
            published_assignments=by_assignment_status.get(AssignmentStatus.PUBLISHED.value, 0),
            closed_assignments=by_assignment_status.get(AssignmentStatus.CLOSED.value, 0),
            pending_submissions=by_submission_status.get(SubmissionStatus.SUBMITTED.value, 0),
            returned_submissions=by_submission_status.get(SubmissionStatus.RETURNED.value, 0),
            academic_records=records_count.scalar() or 0,
            unread_notifications=unread_count.scalar() or 0,
            pending_activities=pending_activities.scalar() or 0
        )
    except Exception as e:
        logger.error(f"Error getting platform stats: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving platform statistics")
