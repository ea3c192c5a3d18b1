from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token, require_staff, require_student
from ..core.exceptions import WorkflowError, ForbiddenError
from ..core.notifications import NotificationSink, get_notifier
from ..models.user import UserRole
from ..services import activities as activity_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class ActivityCreate(BaseModel):
    title: str
    category: str
    description: Optional[str] = None
    file: Optional[str] = None


class ReviewRequest(BaseModel):
    note: Optional[str] = None


class ActivityResponse(BaseModel):
    id: int
    student_id: int
    title: str
    description: Optional[str] = None
    category: str
    file: Optional[str] = None
    status: str
    verified_by: Optional[int] = None
    review_note: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.post("", response_model=ActivityResponse, status_code=201)
async def add_activity(activity: ActivityCreate, db: AsyncSession = Depends(get_db),
                       principal: Principal = Depends(require_student)):
    try:
        return await activity_service.submit_activity(
            db,
            principal.user_id,
            activity.title,
            activity.category,
            description=activity.description,
            file=activity.file
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error adding activity for student {principal.user_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error adding activity")


@router.get("", response_model=List[ActivityResponse])
async def get_my_activities(category: Optional[str] = None, status: Optional[str] = None,
                            db: AsyncSession = Depends(get_db), principal: Principal = Depends(require_student)):
    try:
        return await activity_service.list_student_activities(db, principal.user_id, category, status)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting activities for student {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving activities")


@router.get("/pending", response_model=List[ActivityResponse])
async def get_pending_activities(category: Optional[str] = None, db: AsyncSession = Depends(get_db),
                                 principal: Principal = Depends(require_staff)):
    """Pending activities the caller may review"""
    try:
        return await activity_service.list_pending_activities(db, principal.user_id, principal.role, category)
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting pending activities: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving pending activities")


@router.get("/{activity_id}", response_model=ActivityResponse)
async def get_activity(activity_id: int, db: AsyncSession = Depends(get_db),
                       principal: Principal = Depends(verify_token)):
    try:
        activity = await activity_service.get_activity(db, activity_id)
        if principal.role == UserRole.STUDENT.value and activity.student_id != principal.user_id:
            raise ForbiddenError("You can only view your own activities")
        return activity
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting activity {activity_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving activity")


@router.put("/{activity_id}/approve", response_model=ActivityResponse)
async def approve_activity(activity_id: int, review: ReviewRequest, db: AsyncSession = Depends(get_db),
                           principal: Principal = Depends(require_staff),
                           notifier: NotificationSink = Depends(get_notifier)):
    try:
        return await activity_service.approve_activity(
            db, principal.user_id, principal.role, activity_id, note=review.note, notifier=notifier
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error approving activity {activity_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error approving activity")


@router.put("/{activity_id}/reject", response_model=ActivityResponse)
async def reject_activity(activity_id: int, review: ReviewRequest, db: AsyncSession = Depends(get_db),
                          principal: Principal = Depends(require_staff),
                          notifier: NotificationSink = Depends(get_notifier)):
    try:
        return await activity_service.reject_activity(
            db, principal.user_id, principal.role, activity_id, note=review.note, notifier=notifier
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error rejecting activity {activity_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error rejecting activity")
