from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token, require_teacher, require_student, require_staff
from ..core.exceptions import WorkflowError, ForbiddenError
from ..models.user import UserRole
from ..services import classrooms as classroom_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


# Request/Response Models
class ClassroomCreate(BaseModel):
    name: str
    section: str
    department: str
    description: Optional[str] = None


class ClassroomUpdate(BaseModel):
    name: Optional[str] = None
    section: Optional[str] = None
    department: Optional[str] = None
    description: Optional[str] = None


class ClassroomResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    section: str
    department: str
    code: str
    status: str
    teacher_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StudentInfo(BaseModel):
    id: int
    name: str
    email: str
    department: Optional[str] = None
    roll_number: Optional[str] = None

    class Config:
        from_attributes = True


class ClassroomDetail(ClassroomResponse):
    students: List[StudentInfo]
    student_count: int


class JoinRequest(BaseModel):
    code: str


class StudentRef(BaseModel):
    student_id: int


async def _ensure_can_view(db: AsyncSession, principal: Principal, classroom_id: int):
    classroom = await classroom_service.get_classroom(db, classroom_id)
    if principal.is_admin or classroom.teacher_id == principal.user_id:
        return classroom
    if principal.role == UserRole.STUDENT.value and await classroom_service.is_member(
        db, classroom_id, principal.user_id
    ):
        return classroom
    raise ForbiddenError("You do not have access to this classroom")


@router.post("", response_model=ClassroomResponse)
async def create_classroom(classroom: ClassroomCreate, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(require_teacher)):
    try:
        return await classroom_service.create_classroom(
            db,
            principal.user_id,
            name=classroom.name,
            section=classroom.section,
            department=classroom.department,
            description=classroom.description
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating classroom: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating classroom")


@router.get("", response_model=List[ClassroomResponse])
async def list_classrooms(status: Optional[str] = Query(None), db: AsyncSession = Depends(get_db),
                          principal: Principal = Depends(verify_token)):
    """Teachers see their own classrooms, students the ones they joined, admins all of them"""
    try:
        if principal.role == UserRole.TEACHER.value:
            return await classroom_service.list_teacher_classrooms(db, principal.user_id)
        if principal.role == UserRole.STUDENT.value:
            return await classroom_service.list_student_classrooms(db, principal.user_id)
        return await classroom_service.list_all_classrooms(db, status=status)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing classrooms: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving classrooms")


@router.post("/join", response_model=ClassroomResponse)
async def join_classroom(request: JoinRequest, db: AsyncSession = Depends(get_db),
                         principal: Principal = Depends(require_student)):
    try:
        return await classroom_service.join_by_code(db, principal.user_id, request.code)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error joining classroom with code {request.code}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error joining classroom")


@router.get("/{classroom_id}", response_model=ClassroomDetail)
async def get_classroom(classroom_id: int, db: AsyncSession = Depends(get_db),
                        principal: Principal = Depends(verify_token)):
    try:
        classroom = await _ensure_can_view(db, principal, classroom_id)
        students = await classroom_service.get_roster(db, classroom_id)

        detail = ClassroomResponse.model_validate(classroom).model_dump()
        return ClassroomDetail(
            **detail,
            students=[StudentInfo.model_validate(s) for s in students],
            student_count=len(students)
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting classroom {classroom_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving classroom")


@router.put("/{classroom_id}", response_model=ClassroomResponse)
async def update_classroom(classroom_id: int, classroom: ClassroomUpdate, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(require_teacher)):
    try:
        return await classroom_service.update_classroom(
            db, principal.user_id, classroom_id, classroom.model_dump(exclude_unset=True)
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating classroom {classroom_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating classroom")


@router.post("/{classroom_id}/archive", response_model=ClassroomResponse)
async def archive_classroom(classroom_id: int, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_teacher)):
    try:
        return await classroom_service.archive_classroom(db, principal.user_id, classroom_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error archiving classroom {classroom_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error archiving classroom")


# Roster
@router.get("/{classroom_id}/students", response_model=List[StudentInfo])
async def get_roster(classroom_id: int, db: AsyncSession = Depends(get_db),
                     principal: Principal = Depends(require_staff)):
    try:
        classroom = await classroom_service.get_classroom(db, classroom_id)
        if not principal.is_admin and classroom.teacher_id != principal.user_id:
            raise ForbiddenError("Only the classroom teacher can view the roster")
        return await classroom_service.get_roster(db, classroom_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting roster for classroom {classroom_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving students")


@router.post("/{classroom_id}/students", response_model=ClassroomResponse)
async def add_student(classroom_id: int, request: StudentRef, db: AsyncSession = Depends(get_db),
                      principal: Principal = Depends(require_staff)):
    try:
        if principal.is_admin:
            return await classroom_service.admin_add_student(db, classroom_id, request.student_id)
        return await classroom_service.add_student(db, principal.user_id, classroom_id, request.student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error adding student {request.student_id} to classroom {classroom_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error adding student")


@router.delete("/{classroom_id}/students/{student_id}", response_model=ClassroomResponse)
async def remove_student(classroom_id: int, student_id: int, db: AsyncSession = Depends(get_db),
                         principal: Principal = Depends(require_staff)):
    try:
        if principal.is_admin:
            return await classroom_service.admin_remove_student(db, classroom_id, student_id)
        return await classroom_service.remove_student(db, principal.user_id, classroom_id, student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error removing student {student_id} from classroom {classroom_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error removing student")
