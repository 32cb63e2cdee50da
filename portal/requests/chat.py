import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from portal.core.errors import ValidationFailed
from portal.db import models
from portal.requests import audit
from portal.requests.locking import check_version, commit, ensure_writable

MAX_MESSAGE_LENGTH = 4000


def list_messages(db: Session, request: models.ServiceRequest) -> list[models.ChatMessage]:
    return (
        db.query(models.ChatMessage)
        .filter(
            models.ChatMessage.entity_type == models.ENTITY_REQUEST,
            models.ChatMessage.entity_id == request.id,
        )
        .order_by(models.ChatMessage.seq)
        .all()
    )


def _next_seq(db: Session, request_id: str) -> int:
    current = (
        db.query(func.max(models.ChatMessage.seq))
        .filter(
            models.ChatMessage.entity_type == models.ENTITY_REQUEST,
            models.ChatMessage.entity_id == request_id,
        )
        .scalar()
    )
    return (current or 0) + 1


def post_message(
    db: Session,
    request: models.ServiceRequest,
    sender: models.User,
    text: str,
    expected_version: Optional[int] = None,
) -> models.ChatMessage:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationFailed("Mensagem vazia nao pode ser enviada")
    if len(cleaned) > MAX_MESSAGE_LENGTH:
        raise ValidationFailed(f"Mensagem acima de {MAX_MESSAGE_LENGTH} caracteres")
    ensure_writable(request)
    check_version(request, expected_version)

    now = datetime.utcnow()
    message = models.ChatMessage(
        id=str(uuid.uuid4()),
        entity_type=models.ENTITY_REQUEST,
        entity_id=request.id,
        seq=_next_seq(db, request.id),
        sender_id=sender.id,
        sender_name=sender.name,
        role=sender.role,
        message=cleaned,
        created_at=now,
    )
    db.add(message)
    audit.append_entry(db, request, f"Message posted by {sender.name}", sender.name, now=now)
    commit(db)
    db.refresh(message)
    return message


def message_to_dict(message: models.ChatMessage) -> dict:
    return {
        "id": message.id,
        "sender": message.sender_name,
        "role": message.role,
        "text": message.message,
        "timestamp": message.created_at,
    }
