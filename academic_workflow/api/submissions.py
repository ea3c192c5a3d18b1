from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token, require_teacher, require_student
from ..core.exceptions import WorkflowError
from ..core.notifications import NotificationSink, get_notifier
from ..services import submissions as submission_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class SubmitRequest(BaseModel):
    content: Optional[str] = None
    attachments: List[str] = []


class GradeRequest(BaseModel):
    grade: int
    feedback: Optional[str] = None


class ReturnRequest(BaseModel):
    feedback: Optional[str] = None


class SubmissionResponse(BaseModel):
    id: int
    assignment_id: int
    student_id: int
    classroom_id: int
    content: Optional[str] = None
    attachments: List[str]
    status: str
    submitted_at: Optional[datetime] = None
    is_late: bool
    grade: Optional[int] = None
    max_points: Optional[int] = None
    is_graded: bool = False
    feedback: Optional[str] = None
    graded_at: Optional[datetime] = None
    graded_by: Optional[int] = None

    class Config:
        from_attributes = True


@router.post("/assignments/{assignment_id}/submit", response_model=SubmissionResponse)
async def submit_assignment(assignment_id: int, submission: SubmitRequest, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_student),
                            notifier: NotificationSink = Depends(get_notifier)):
    try:
        return await submission_service.submit(
            db,
            principal.user_id,
            assignment_id,
            content=submission.content,
            attachments=submission.attachments,
            notifier=notifier
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error submitting assignment {assignment_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error submitting assignment")


@router.get("/assignments/{assignment_id}/submissions", response_model=List[SubmissionResponse])
async def get_assignment_submissions(assignment_id: int, db: AsyncSession = Depends(get_db),
                                     principal: Principal = Depends(require_teacher)):
    try:
        return await submission_service.list_assignment_submissions(db, principal.user_id, assignment_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting submissions for assignment {assignment_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving submissions")


@router.get("/classrooms/{classroom_id}/submissions/me", response_model=List[SubmissionResponse])
async def get_my_submissions(classroom_id: int, db: AsyncSession = Depends(get_db),
                             principal: Principal = Depends(require_student)):
    try:
        return await submission_service.list_student_submissions(db, principal.user_id, classroom_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting submissions in classroom {classroom_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving submissions")


@router.get("/submissions/{submission_id}", response_model=SubmissionResponse)
async def get_submission(submission_id: int, db: AsyncSession = Depends(get_db),
                         principal: Principal = Depends(verify_token)):
    try:
        if principal.is_admin:
            return await submission_service.get_submission(db, submission_id)
        return await submission_service.get_submission_for(db, principal.user_id, submission_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting submission {submission_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving submission")


@router.post("/submissions/{submission_id}/grade", response_model=SubmissionResponse)
async def grade_submission(submission_id: int, request: GradeRequest, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(require_teacher),
                           notifier: NotificationSink = Depends(get_notifier)):
    try:
        return await submission_service.grade_submission(
            db, principal.user_id, submission_id, request.grade,
            feedback=request.feedback, notifier=notifier
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error grading submission {submission_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error grading submission")


@router.post("/submissions/{submission_id}/return", response_model=SubmissionResponse)
async def return_submission(submission_id: int, request: ReturnRequest, db: AsyncSession = Depends(get_db),
                            principal: Principal = Depends(require_teacher),
                            notifier: NotificationSink = Depends(get_notifier)):
    try:
        return await submission_service.return_for_revision(
            db, principal.user_id, submission_id,
            feedback=request.feedback, notifier=notifier
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error returning submission {submission_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error returning submission")
