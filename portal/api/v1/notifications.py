from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from portal.core.security import get_current_user
from portal.db import models
from portal.db.session import get_db
from portal.services import notifications

router = APIRouter(tags=["Notificacoes"])


@router.get("/notifications")
def list_notifications(
    unread: bool = False,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [
        {
            "id": item.id,
            "title": item.title,
            "message": item.message,
            "is_read": item.is_read,
            "created_at": item.created_at.isoformat(),
        }
        for item in notifications.list_for_user(db, current_user, unread_only=unread)
    ]


@router.post("/notifications/{notification_id}/read")
def mark_read(
    notification_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not notifications.mark_read(db, current_user, notification_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notificacao nao encontrada")
    return {"status": "ok"}
