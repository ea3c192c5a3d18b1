from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token, require_staff
from ..core.exceptions import WorkflowError, ForbiddenError
from ..models.user import UserRole
from ..services import academic_records as record_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class SubjectInput(BaseModel):
    code: str
    name: str
    internal_marks: float
    end_term_marks: float


class RecordCreate(BaseModel):
    semester: int
    subjects: List[SubjectInput]
    remarks: Optional[str] = None


class RecordUpdate(BaseModel):
    subjects: Optional[List[SubjectInput]] = None
    remarks: Optional[str] = None


class SubjectResponse(BaseModel):
    code: str
    name: str
    internal_marks: float
    end_term_marks: float
    total: float

    class Config:
        from_attributes = True


class RecordResponse(BaseModel):
    id: int
    student_id: int
    semester: int
    sgpa: float
    remarks: str
    subjects: List[SubjectResponse]
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SemesterSgpa(BaseModel):
    semester: int
    sgpa: Optional[float] = None


class CgpaResponse(BaseModel):
    cgpa: float
    total_semesters: int
    records: List[SemesterSgpa]


def _ensure_can_view(principal: Principal, student_id: int):
    # Staff can read anybody's marks, students only their own
    if principal.role == UserRole.STUDENT.value and principal.user_id != student_id:
        raise ForbiddenError("You can only view your own academic records")


@router.post("/students/{student_id}/marks", response_model=RecordResponse)
async def add_marks(student_id: int, record: RecordCreate, db: AsyncSession = Depends(get_db),
                    principal: Principal = Depends(require_staff)):
    try:
        return await record_service.create_record(
            db,
            student_id,
            record.semester,
            [subject.model_dump() for subject in record.subjects],
            remarks=record.remarks,
            created_by=principal.user_id
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error adding marks for student {student_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error adding academic record")


@router.get("/students/{student_id}/marks", response_model=List[RecordResponse])
async def get_marks(student_id: int, db: AsyncSession = Depends(get_db),
                    principal: Principal = Depends(verify_token)):
    try:
        _ensure_can_view(principal, student_id)
        return await record_service.list_records(db, student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting marks for student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving academic records")


@router.get("/students/{student_id}/marks/latest", response_model=RecordResponse)
async def get_latest_marks(student_id: int, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(verify_token)):
    try:
        _ensure_can_view(principal, student_id)
        return await record_service.latest_record(db, student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting latest marks for student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving academic record")


@router.get("/students/{student_id}/cgpa", response_model=CgpaResponse)
async def get_cgpa(student_id: int, db: AsyncSession = Depends(get_db),
                   principal: Principal = Depends(verify_token)):
    try:
        _ensure_can_view(principal, student_id)
        return await record_service.cgpa_summary(db, student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error computing CGPA for student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error calculating CGPA")


@router.put("/marks/{record_id}", response_model=RecordResponse)
async def update_marks(record_id: int, record: RecordUpdate, db: AsyncSession = Depends(get_db),
                       principal: Principal = Depends(require_staff)):
    try:
        subjects = None
        if record.subjects is not None:
            subjects = [subject.model_dump() for subject in record.subjects]
        return await record_service.update_record(db, record_id, subjects=subjects, remarks=record.remarks)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating academic record {record_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating academic record")


@router.delete("/marks/{record_id}")
async def delete_marks(record_id: int, db: AsyncSession = Depends(get_db),
                       principal: Principal = Depends(require_staff)):
    try:
        await record_service.delete_record(db, record_id)
        return {"message": "Academic record deleted"}
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error deleting academic record {record_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting academic record")
