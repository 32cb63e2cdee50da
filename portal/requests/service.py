import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.core.errors import NotFoundError, PermissionDenied, ValidationFailed
from portal.db import models
from portal.requests import attachments as attachment_store
from portal.requests import audit
from portal.requests import chat as chat_thread
from portal.requests.documents import DocumentStore, SqlDocumentStore, emit_resolution_document
from portal.requests.locking import check_version, commit, ensure_writable
from portal.requests.schemas import (
    AttachmentSnapshot,
    AuditSnapshot,
    ChatSnapshot,
    PixOut,
    RequestDetailOut,
    RequestOut,
)
from portal.requests.state_machine import (
    RequestAction,
    RequestStatus,
    allowed_actions,
    initial_state,
    resolve_transition,
)
from portal.services import directory
from portal.services.notifications import notify_users

logger = logging.getLogger("portal.requests")

PROTOCOL_PREFIX = "REQ"
PROTOCOL_ATTEMPTS = 3

STATUS_LABELS = {
    RequestStatus.PENDING_PAYMENT.value: "Aguardando pagamento",
    RequestStatus.PAYMENT_UNDER_REVIEW.value: "Pagamento em analise",
    RequestStatus.REQUESTED.value: "Solicitado",
    RequestStatus.VIEWED.value: "Visualizado",
    RequestStatus.IN_PROGRESS.value: "Em andamento",
    RequestStatus.IN_VALIDATION.value: "Em validacao",
    RequestStatus.RESOLVED.value: "Resolvido",
}


def next_protocol(db: Session, now: Optional[datetime] = None) -> str:
    year = (now or datetime.utcnow()).year
    prefix = f"{PROTOCOL_PREFIX}-{year}-"
    rows = (
        db.query(models.ServiceRequest.protocol)
        .filter(models.ServiceRequest.protocol.like(f"{prefix}%"))
        .all()
    )
    sequences = [int(row[0][len(prefix):]) for row in rows if row[0][len(prefix):].isdigit()]
    return f"{prefix}{(max(sequences) if sequences else 0) + 1:06d}"


def create_request(
    db: Session,
    actor: models.User,
    title: Optional[str],
    type_id: Optional[str],
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> models.ServiceRequest:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("Titulo obrigatorio")
    if not type_id:
        raise ValidationFailed("Tipo de solicitacao obrigatorio")
    if actor.role != models.ROLE_CLIENT:
        raise PermissionDenied("Somente clientes abrem solicitacoes")
    if not actor.company_id:
        raise PermissionDenied("Seu perfil nao possui empresa vinculada")
    request_type = (
        db.query(models.RequestType)
        .filter(models.RequestType.id == type_id, models.RequestType.active.is_(True))
        .first()
    )
    if not request_type:
        raise ValidationFailed("Tipo de solicitacao invalido ou inativo")

    price = request_type.base_price or 0
    status, payment_status = initial_state(price)
    for attempt in range(1, PROTOCOL_ATTEMPTS + 1):
        created_at = now or datetime.utcnow()
        request = models.ServiceRequest(
            id=str(uuid.uuid4()),
            protocol=next_protocol(db, created_at),
            title=title,
            description=(description or "").strip() or None,
            request_type_id=request_type.id,
            price=price,
            status=status.value,
            payment_status=payment_status.value,
            client_id=actor.id,
            company_id=actor.company_id,
            created_at=created_at,
            updated_at=created_at,
        )
        db.add(request)
        audit.append_entry(db, request, "Created", actor.name, now=created_at)
        try:
            db.commit()
            break
        except IntegrityError:
            db.rollback()
            logger.warning("protocol collision protocol=%s attempt=%s", request.protocol, attempt)
            if attempt == PROTOCOL_ATTEMPTS:
                raise
    db.refresh(request)
    logger.info(
        "request created protocol=%s type=%s price=%s status=%s",
        request.protocol,
        request_type.name,
        price,
        request.status,
    )
    notify_users(
        db,
        directory.staff_user_ids(db),
        f"Nova solicitacao {request.protocol}",
        f"{actor.name} abriu '{request.title}' ({request_type.name}).",
    )
    return request


def get_request(db: Session, request_id: str) -> models.ServiceRequest:
    request = db.query(models.ServiceRequest).filter(models.ServiceRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Solicitacao nao encontrada")
    return request


def list_requests(
    db: Session,
    company_id: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = None,
    status: Optional[str] = None,
    trash: bool = False,
) -> list[models.ServiceRequest]:
    query = db.query(models.ServiceRequest)
    if trash:
        query = query.filter(models.ServiceRequest.deleted_at.isnot(None))
    else:
        query = query.filter(models.ServiceRequest.deleted_at.is_(None))
    if company_id:
        query = query.filter(models.ServiceRequest.company_id == company_id)
    if client_id:
        query = query.filter(models.ServiceRequest.client_id == client_id)
    if status:
        query = query.filter(models.ServiceRequest.status == status)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                models.ServiceRequest.protocol.ilike(term),
                models.ServiceRequest.title.ilike(term),
            )
        )
    order = models.ServiceRequest.deleted_at if trash else models.ServiceRequest.created_at
    return query.order_by(order.desc()).all()


def list_trash(db: Session, company_id: Optional[str] = None) -> list[models.ServiceRequest]:
    return list_requests(db, company_id=company_id, trash=True)


def _notify_status_change(db: Session, request: models.ServiceRequest) -> None:
    label = STATUS_LABELS.get(request.status, request.status)
    notify_users(
        db,
        [request.client_id],
        f"Solicitacao {request.protocol} atualizada",
        f"Status: {label}",
    )


def apply_action(
    db: Session,
    request: models.ServiceRequest,
    action: str,
    role: str,
    actor_name: str,
    expected_version: Optional[int] = None,
    document_store: Optional[DocumentStore] = None,
    now: Optional[datetime] = None,
) -> models.ServiceRequest:
    """Aplica uma transicao da tabela, com auditoria e efeitos colaterais, num unico commit.

    A confirmacao de pagamento (perfil system) e aceita mesmo com a solicitacao
    na lixeira: o dinheiro ja entrou. As demais acoes exigem solicitacao ativa.
    """
    if role != models.ROLE_SYSTEM:
        ensure_writable(request)
    check_version(request, expected_version)
    transition = resolve_transition(request.status, action, role)
    now = now or datetime.utcnow()
    previous = request.status

    audit_action = transition.audit_action
    store = document_store or SqlDocumentStore(db)
    emitted = None
    if transition.action == RequestAction.APPROVE:
        try:
            emitted = emit_resolution_document(db, request, store=store, now=now)
            request.document_id = emitted
            request.document_pending = False
            audit_action = f"{audit_action}; document generated"
        except Exception as exc:
            request.document_pending = True
            audit_action = f"{audit_action}; document emission failed, flagged for retry"
            logger.warning("resolution document failed protocol=%s error=%s", request.protocol, exc)

    request.status = transition.target.value
    if transition.payment_status is not None:
        request.payment_status = transition.payment_status.value
    audit.append_entry(db, request, audit_action, actor_name, now=now)
    try:
        commit(db)
    except Exception:
        if emitted:
            store.discard(emitted)
        raise
    db.refresh(request)
    logger.info(
        "request transition protocol=%s %s -> %s action=%s role=%s",
        request.protocol,
        previous,
        request.status,
        transition.action.value,
        role,
    )
    _notify_status_change(db, request)
    return request


def perform_action(
    db: Session,
    request: models.ServiceRequest,
    user: models.User,
    action: str,
    expected_version: Optional[int] = None,
    document_store: Optional[DocumentStore] = None,
) -> models.ServiceRequest:
    return apply_action(
        db,
        request,
        action,
        user.role,
        user.name,
        expected_version=expected_version,
        document_store=document_store,
    )


def open_request(db: Session, request: models.ServiceRequest, user: models.User) -> models.ServiceRequest:
    """Leitura do detalhe. A primeira abertura pela equipe marca como visualizado."""
    if (
        user.role == models.ROLE_STAFF
        and request.status == RequestStatus.REQUESTED.value
        and not request.is_deleted
    ):
        return apply_action(db, request, RequestAction.VIEW.value, user.role, user.name)
    return request


def soft_delete(
    db: Session,
    request: models.ServiceRequest,
    user: models.User,
    expected_version: Optional[int] = None,
) -> models.ServiceRequest:
    if user.role != models.ROLE_STAFF:
        raise PermissionDenied("Somente a equipe interna pode enviar solicitacoes para a lixeira")
    if request.is_deleted:
        return request
    check_version(request, expected_version)
    now = datetime.utcnow()
    request.deleted_at = now
    request.deleted_by = user.name
    audit.append_entry(db, request, f"Moved to trash by {user.name}", user.name, now=now)
    commit(db)
    db.refresh(request)
    logger.info("request trashed protocol=%s by=%s", request.protocol, user.name)
    return request


def restore(
    db: Session,
    request: models.ServiceRequest,
    user: models.User,
    expected_version: Optional[int] = None,
) -> models.ServiceRequest:
    if user.role != models.ROLE_STAFF:
        raise PermissionDenied("Somente a equipe interna pode restaurar solicitacoes")
    if not request.is_deleted:
        return request
    check_version(request, expected_version)
    request.deleted_at = None
    request.deleted_by = None
    audit.append_entry(db, request, f"Restored by {user.name}", user.name)
    commit(db)
    db.refresh(request)
    logger.info("request restored protocol=%s by=%s", request.protocol, user.name)
    return request


def retry_pending_documents(db: Session, document_store: Optional[DocumentStore] = None) -> int:
    pending = (
        db.query(models.ServiceRequest)
        .filter(
            models.ServiceRequest.document_pending.is_(True),
            models.ServiceRequest.status == RequestStatus.RESOLVED.value,
        )
        .all()
    )
    store = document_store or SqlDocumentStore(db)
    emitted = 0
    for request in pending:
        document_id = None
        try:
            document_id = emit_resolution_document(db, request, store=store)
            request.document_id = document_id
            request.document_pending = False
            audit.append_entry(db, request, "Resolution document generated on retry", audit.SYSTEM_ACTOR)
            commit(db)
        except Exception as exc:
            db.rollback()
            if document_id:
                store.discard(document_id)
            logger.warning("document retry failed protocol=%s error=%s", request.protocol, exc)
            continue
        emitted += 1
    logger.info("document retry finished pending=%s emitted=%s", len(pending), emitted)
    return emitted


def to_out(db: Session, request: models.ServiceRequest, role: str) -> RequestOut:
    return RequestOut(**_base_fields(db, request, role))


def to_detail(db: Session, request: models.ServiceRequest, role: str) -> RequestDetailOut:
    return RequestDetailOut(
        **_base_fields(db, request, role),
        attachments=[
            AttachmentSnapshot(
                id=item.id,
                name=item.file_name,
                url=item.file_url,
                uploaded_by=item.uploaded_by,
                created_at=item.created_at,
            )
            for item in attachment_store.list_attachments(db, request)
        ],
        chat=[ChatSnapshot(**chat_thread.message_to_dict(item)) for item in chat_thread.list_messages(db, request)],
        audit_log=[AuditSnapshot(**audit.entry_to_dict(item)) for item in request.audit_entries],
    )


def _base_fields(db: Session, request: models.ServiceRequest, role: str) -> dict:
    names = directory.display_names(db, request)
    pix = request.pix
    return {
        "id": request.id,
        "protocol": request.protocol,
        "title": request.title,
        "description": request.description,
        "type_id": request.request_type_id,
        "type_name": request.request_type.name if request.request_type else None,
        "price": request.price,
        "status": request.status,
        "payment_status": request.payment_status,
        "pix": PixOut(txid=pix.txid, payload_code=pix.payload_code, expires_at=pix.expires_at) if pix else None,
        "client_id": request.client_id,
        "client_name": names["client"],
        "company_id": request.company_id,
        "company_name": names["company"],
        "document_id": request.document_id,
        "document_pending": bool(request.document_pending),
        "deleted_at": request.deleted_at,
        "deleted_by": request.deleted_by,
        "version": request.version,
        "allowed_actions": [] if request.is_deleted else allowed_actions(request.status, role),
        "created_at": request.created_at,
        "updated_at": request.updated_at,
    }
