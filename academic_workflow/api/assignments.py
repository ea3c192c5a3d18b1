from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token, require_teacher
from ..core.exceptions import WorkflowError
from ..core.notifications import NotificationSink, get_notifier
from ..services import assignments as assignment_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class AssignmentCreate(BaseModel):
    title: str
    description: str = ""
    instructions: Optional[str] = None
    due_date: datetime
    max_points: int = 100
    attachments: List[str] = []


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    due_date: Optional[datetime] = None
    max_points: Optional[int] = None
    attachments: Optional[List[str]] = None


class AssignmentResponse(BaseModel):
    id: int
    classroom_id: int
    teacher_id: int
    title: str
    description: str
    instructions: Optional[str] = None
    due_date: datetime
    max_points: int
    attachments: List[str]
    status: str
    published_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PlaceholderReport(BaseModel):
    created: int
    already_present: int
    missing_student_ids: List[int]


class PublishResponse(BaseModel):
    assignment: AssignmentResponse
    placeholders: PlaceholderReport
    warnings: List[str]


class DeleteResponse(BaseModel):
    message: str
    submissions_deleted: int


def _report(outcome) -> PlaceholderReport:
    return PlaceholderReport(
        created=outcome.created,
        already_present=outcome.already_present,
        missing_student_ids=outcome.missing_student_ids
    )


@router.post("/classrooms/{classroom_id}/assignments", response_model=AssignmentResponse)
async def create_assignment(classroom_id: int, assignment: AssignmentCreate, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_teacher)):
    try:
        return await assignment_service.create_assignment(
            db, principal.user_id, classroom_id, assignment.model_dump()
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error creating assignment in classroom {classroom_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error creating assignment")


@router.get("/classrooms/{classroom_id}/assignments", response_model=List[AssignmentResponse])
async def list_assignments(classroom_id: int, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(verify_token)):
    try:
        return await assignment_service.list_classroom_assignments(
            db, principal.user_id, principal.role, classroom_id
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error listing assignments for classroom {classroom_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving assignments")


@router.get("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def get_assignment(assignment_id: int, db: AsyncSession = Depends(get_db),
                         principal: Principal = Depends(verify_token)):
    try:
        return await assignment_service.get_assignment_for(db, principal.user_id, principal.role, assignment_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting assignment {assignment_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving assignment")


@router.put("/assignments/{assignment_id}", response_model=AssignmentResponse)
async def edit_assignment(assignment_id: int, assignment: AssignmentUpdate, db: AsyncSession = Depends(get_db),
                          principal: Principal = Depends(require_teacher)):
    try:
        return await assignment_service.edit_assignment(
            db, principal.user_id, assignment_id, assignment.model_dump(exclude_unset=True)
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error updating assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating assignment")


@router.post("/assignments/{assignment_id}/publish", response_model=PublishResponse)
async def publish_assignment(assignment_id: int, db: AsyncSession = Depends(get_db),
                             principal: Principal = Depends(require_teacher),
                             notifier: NotificationSink = Depends(get_notifier)):
    try:
        result = await assignment_service.publish_assignment(
            db, principal.user_id, assignment_id, notifier=notifier
        )
        warnings = []
        if not result.complete:
            warnings.append(
                f"No submission placeholder for {len(result.placeholders.missing_student_ids)} student(s); "
                f"run sync-placeholders to retry"
            )
        return PublishResponse(
            assignment=AssignmentResponse.model_validate(result.assignment),
            placeholders=_report(result.placeholders),
            warnings=warnings
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error publishing assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error publishing assignment")


@router.post("/assignments/{assignment_id}/sync-placeholders", response_model=PlaceholderReport)
async def sync_placeholders(assignment_id: int, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_teacher)):
    try:
        outcome = await assignment_service.sync_placeholders(db, principal.user_id, assignment_id)
        return _report(outcome)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error syncing placeholders for assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error syncing submissions")


@router.post("/assignments/{assignment_id}/close", response_model=AssignmentResponse)
async def close_assignment(assignment_id: int, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(require_teacher)):
    try:
        return await assignment_service.close_assignment(db, principal.user_id, assignment_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error closing assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error closing assignment")


@router.delete("/assignments/{assignment_id}", response_model=DeleteResponse)
async def delete_assignment(assignment_id: int, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_teacher)):
    try:
        removed = await assignment_service.delete_assignment(db, principal.user_id, assignment_id)
        return DeleteResponse(message="Assignment deleted", submissions_deleted=removed)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error deleting assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting assignment")
