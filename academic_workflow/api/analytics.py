from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.database import get_db
from ..core.auth import Principal, require_admin, require_staff, require_student, require_teacher
from ..core.exceptions import WorkflowError
from ..services import analytics as analytics_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me")
async def get_my_performance(db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_student)):
    """Assignment statistics for the calling student"""
    try:
        return await analytics_service.student_performance(db, principal.user_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting performance for student {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving assignment statistics")


@router.get("/students/{student_id}")
async def get_student_performance(student_id: int, db: AsyncSession = Depends(get_db),
                                  principal: Principal = Depends(require_staff)):
    try:
        return await analytics_service.student_performance(db, student_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting performance for student {student_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving assignment statistics")


@router.get("/assignments/{assignment_id}")
async def get_grading_summary(assignment_id: int, db: AsyncSession = Depends(get_db),
                              principal: Principal = Depends(require_teacher)):
    try:
        return await analytics_service.assignment_summary(db, principal.user_id, assignment_id)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting grading summary for assignment {assignment_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving grading summary")


@router.get("/academics")
async def get_academic_overview(db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_admin)):
    try:
        return await analytics_service.academic_overview(db)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting academic analytics: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving academic analytics")


@router.get("/activities")
async def get_activity_overview(db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_admin)):
    try:
        return await analytics_service.activity_overview(db)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting activity analytics: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving activity analytics")
