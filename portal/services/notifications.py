import logging
import uuid
from typing import Iterable

from sqlalchemy.orm import Session

from portal.db import models

logger = logging.getLogger("portal.notifications")


def notify_users(db: Session, user_ids: Iterable[str], title: str, message: str) -> int:
    """Grava uma notificacao por usuario. Falhas sao registradas e nunca propagadas.

    Deve ser chamada depois do commit da operacao principal: um rollback aqui
    nao pode desfazer a mudanca que gerou o aviso.
    """
    recipients = sorted({user_id for user_id in user_ids if user_id})
    if not recipients:
        return 0
    try:
        for user_id in recipients:
            db.add(
                models.Notification(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    title=title,
                    message=message,
                )
            )
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.warning("notification dispatch failed title=%s recipients=%s error=%s", title, len(recipients), exc)
        return 0
    logger.info("notification dispatched title=%s recipients=%s", title, len(recipients))
    return len(recipients)


def list_for_user(db: Session, user: models.User, unread_only: bool = False) -> list[models.Notification]:
    query = db.query(models.Notification).filter(models.Notification.user_id == user.id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    return query.order_by(models.Notification.created_at.desc()).all()


def mark_read(db: Session, user: models.User, notification_id: str) -> bool:
    notification = (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, models.Notification.user_id == user.id)
        .first()
    )
    if not notification:
        return False
    notification.is_read = True
    db.commit()
    return True
