from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
from ..core.database import get_db
from ..core.auth import Principal, verify_token
from ..core.exceptions import NotFoundError, WorkflowError
from ..models.notification import Notification
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


class NotificationResponse(BaseModel):
    id: int
    title: str
    message: str
    category: str
    related_id: Optional[int] = None
    read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int


@router.get("", response_model=NotificationList)
async def get_notifications(unread_only: bool = Query(False), limit: int = Query(50, ge=1, le=200),
                            db: AsyncSession = Depends(get_db), principal: Principal = Depends(verify_token)):
    try:
        query = select(Notification).filter(Notification.user_id == principal.user_id)
        if unread_only:
            query = query.filter(Notification.read == False)
        result = await db.execute(query.order_by(Notification.id.desc()).limit(limit))

        unread = await db.execute(
            select(func.count(Notification.id)).filter(
                Notification.user_id == principal.user_id,
                Notification.read == False
            )
        )
        return NotificationList(
            notifications=[NotificationResponse.model_validate(n) for n in result.scalars().all()],
            unread_count=unread.scalar() or 0
        )
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error getting notifications for user {principal.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error retrieving notifications")


@router.put("/read-all")
async def mark_all_read(db: AsyncSession = Depends(get_db), principal: Principal = Depends(verify_token)):
    try:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == principal.user_id, Notification.read == False)
            .values(read=True)
        )
        await db.commit()
        return {"message": "All notifications marked as read", "updated": result.rowcount}
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error marking notifications read for user {principal.user_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating notifications")


@router.put("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: int, db: AsyncSession = Depends(get_db),
                    principal: Principal = Depends(verify_token)):
    try:
        result = await db.execute(
            select(Notification).filter(
                Notification.id == notification_id,
                Notification.user_id == principal.user_id
            )
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise NotFoundError("Notification", notification_id)

        notification.read = True
        await db.commit()
        await db.refresh(notification)
        return notification
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} read: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error updating notification")


@router.delete("/{notification_id}")
async def delete_notification(notification_id: int, db: AsyncSession = Depends(get_db),
                              principal: Principal = Depends(verify_token)):
    try:
        result = await db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == principal.user_id
            )
        )
        if not result.rowcount:
            raise NotFoundError("Notification", notification_id)
        await db.commit()
        return {"message": "Notification deleted"}
    except (WorkflowError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Error deleting notification {notification_id}: {e}")
        await db.rollback()
        raise HTTPException(status_code=500, detail="Error deleting notification")
