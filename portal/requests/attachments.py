import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from portal.core.errors import NotFoundError, PermissionDenied, ValidationFailed
from portal.db import models
from portal.requests import audit
from portal.requests.locking import check_version, commit, ensure_writable
from portal.services.storage import build_object_name, get_storage, safe_delete

logger = logging.getLogger("portal.requests")

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024


def list_attachments(db: Session, request: models.ServiceRequest) -> list[models.RequestAttachment]:
    return (
        db.query(models.RequestAttachment)
        .filter(
            models.RequestAttachment.entity_type == models.ENTITY_REQUEST,
            models.RequestAttachment.entity_id == request.id,
        )
        .order_by(models.RequestAttachment.seq)
        .all()
    )


def _next_seq(db: Session, request_id: str) -> int:
    current = (
        db.query(func.max(models.RequestAttachment.seq))
        .filter(
            models.RequestAttachment.entity_type == models.ENTITY_REQUEST,
            models.RequestAttachment.entity_id == request_id,
        )
        .scalar()
    )
    return (current or 0) + 1


def _get(db: Session, request: models.ServiceRequest, attachment_id: str) -> models.RequestAttachment:
    attachment = (
        db.query(models.RequestAttachment)
        .filter(
            models.RequestAttachment.id == attachment_id,
            models.RequestAttachment.entity_type == models.ENTITY_REQUEST,
            models.RequestAttachment.entity_id == request.id,
        )
        .first()
    )
    if not attachment:
        raise NotFoundError("Anexo nao encontrado")
    return attachment


def add_attachment(
    db: Session,
    request: models.ServiceRequest,
    actor: models.User,
    file_name: str,
    file_url: str,
    content_type: Optional[str] = None,
    size: Optional[int] = None,
    expected_version: Optional[int] = None,
) -> models.RequestAttachment:
    """Registra os metadados de um arquivo ja gravado no blob store."""
    name = (file_name or "").strip()
    if not name or not file_url:
        raise ValidationFailed("Nome e URL do anexo sao obrigatorios")
    ensure_writable(request)
    check_version(request, expected_version)

    now = datetime.utcnow()
    attachment = models.RequestAttachment(
        id=str(uuid.uuid4()),
        entity_type=models.ENTITY_REQUEST,
        entity_id=request.id,
        seq=_next_seq(db, request.id),
        file_name=name,
        file_url=file_url,
        content_type=content_type,
        size=size,
        uploaded_by=actor.name,
        created_at=now,
    )
    db.add(attachment)
    audit.append_entry(db, request, f"Attachment added: {name}", actor.name, now=now)
    commit(db)
    db.refresh(attachment)
    return attachment


def upload_attachment(
    db: Session,
    request: models.ServiceRequest,
    actor: models.User,
    file_name: str,
    data: bytes,
    content_type: Optional[str] = None,
    expected_version: Optional[int] = None,
) -> models.RequestAttachment:
    ensure_writable(request)
    if not data:
        raise ValidationFailed("Arquivo vazio")
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise ValidationFailed("Arquivo acima de 10MB")
    check_version(request, expected_version)
    object_name = build_object_name(request.id, "requests", file_name)
    file_url = get_storage().put(data, object_name, content_type=content_type)
    logger.info("attachment stored request=%s object=%s bytes=%s", request.protocol, object_name, len(data))
    try:
        return add_attachment(
            db,
            request,
            actor,
            file_name,
            file_url,
            content_type=content_type,
            size=len(data),
            expected_version=expected_version,
        )
    except Exception:
        safe_delete(file_url)
        raise


def read_attachment(
    db: Session, request: models.ServiceRequest, attachment_id: str
) -> tuple[models.RequestAttachment, bytes]:
    attachment = _get(db, request, attachment_id)
    return attachment, get_storage().get(attachment.file_url)


def remove_attachment(
    db: Session,
    request: models.ServiceRequest,
    actor: models.User,
    attachment_id: str,
    expected_version: Optional[int] = None,
) -> None:
    if actor.role != models.ROLE_STAFF:
        raise PermissionDenied("Somente a equipe interna pode remover anexos")
    ensure_writable(request)
    check_version(request, expected_version)
    attachment = _get(db, request, attachment_id)
    name = attachment.file_name
    db.delete(attachment)
    audit.append_entry(db, request, f"Attachment removed: {name}", actor.name)
    commit(db)


def attachment_to_dict(attachment: models.RequestAttachment) -> dict:
    return {
        "id": attachment.id,
        "name": attachment.file_name,
        "url": attachment.file_url,
        "uploadedBy": attachment.uploaded_by,
        "createdAt": attachment.created_at,
    }
