"""Notifications API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from sqlalchemy import func, select, update

from app.core.rbac import CurrentUser
from app.core.responses import page_offset, paginated_response
from app.db.session import DbSession
from app.models.notification import Notification
from app.schemas.notification import NotificationOut

router = APIRouter()


def _owned(db: DbSession, notification_id: int, user_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if not notification:
        raise HTTPException(status_code=404, detail="Notification not found")
    if notification.user_id != user_id:
        raise HTTPException(status_code=403, detail="Not authorized")
    return notification


@router.get("/")
def get_notifications(
    db: DbSession,
    current_user: CurrentUser,
    unread_only: bool = False,
    notification_type: Optional[str] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Get user notifications, newest first."""
    filters = [Notification.user_id == current_user.user_id]
    if unread_only:
        filters.append(Notification.is_read == False)  # noqa: E712
    if notification_type:
        filters.append(Notification.type == notification_type)

    total = db.scalar(select(func.count(Notification.id)).where(*filters))
    unread = db.scalar(
        select(func.count(Notification.id)).where(
            Notification.user_id == current_user.user_id,
            Notification.is_read == False,  # noqa: E712
        )
    )
    results = db.scalars(
        select(Notification)
        .where(*filters)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    ).all()
    items = [NotificationOut.model_validate(n).model_dump(mode="json") for n in results]
    return paginated_response(items, total, page=page, limit=limit, unread_count=unread)


@router.put("/{notification_id}/read")
def mark_notification_read(notification_id: int, db: DbSession, current_user: CurrentUser):
    """Mark a notification as read."""
    notification = _owned(db, notification_id, current_user.user_id)
    notification.is_read = True
    db.commit()
    return {"success": True}


@router.put("/read-all")
def mark_all_read(db: DbSession, current_user: CurrentUser):
    result = db.execute(
        update(Notification)
        .where(
            Notification.user_id == current_user.user_id,
            Notification.is_read == False,  # noqa: E712
        )
        .values(is_read=True)
    )
    db.commit()
    return {"success": True, "updated": result.rowcount}


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(notification_id: int, db: DbSession, current_user: CurrentUser):
    notification = _owned(db, notification_id, current_user.user_id)
    db.delete(notification)
    db.commit()
