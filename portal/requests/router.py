import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from portal.core.authorization import enforce_request_scope, resolve_company_scope
from portal.core.errors import PortalError, http_error
from portal.core.security import get_current_user, require_roles
from portal.db import models
from portal.db.session import get_db
from portal.requests import attachments as attachment_store
from portal.requests import audit
from portal.requests import chat as chat_thread
from portal.requests import documents
from portal.requests import service
from portal.requests.schemas import ActionPayload, ChatPayload, RequestCreatePayload
from portal.services.storage import StorageError

logger = logging.getLogger("portal.requests")

router = APIRouter(tags=["Solicitacoes"])


def _internal_error():
    logger.exception("Erro interno em solicitacoes")
    return JSONResponse(status_code=500, content={"message": "Ocorreu um erro, tente novamente mais tarde"})


def _load(db: Session, user: models.User, request_id: str) -> models.ServiceRequest:
    request = service.get_request(db, request_id)
    enforce_request_scope(user, request)
    return request


def _detail(db: Session, request: models.ServiceRequest, user: models.User) -> dict:
    return service.to_detail(db, request, user.role).model_dump(mode="json", by_alias=True)


@router.post("/service-requests", status_code=status.HTTP_201_CREATED)
def create_request(
    payload: RequestCreatePayload,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = service.create_request(
            db, current_user, payload.title, payload.type_id, payload.description
        )
        return _detail(db, request, current_user)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests")
def list_requests(
    company_id: Optional[str] = None,
    client_id: Optional[str] = None,
    search: Optional[str] = Query(default=None, alias="q"),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        scoped_company = resolve_company_scope(current_user, company_id)
        rows = service.list_requests(
            db,
            company_id=scoped_company,
            client_id=client_id,
            search=search,
            status=status_filter,
        )
        return [service.to_out(db, row, current_user.role).model_dump(mode="json", by_alias=True) for row in rows]
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests/trash")
def list_trash(
    company_id: Optional[str] = None,
    current_user: models.User = Depends(require_roles(models.ROLE_STAFF)),
    db: Session = Depends(get_db),
):
    rows = service.list_trash(db, company_id=company_id)
    return [service.to_out(db, row, current_user.role).model_dump(mode="json", by_alias=True) for row in rows]


@router.post("/service-requests/documents/retry")
def retry_documents(
    current_user: models.User = Depends(require_roles(models.ROLE_STAFF)),
    db: Session = Depends(get_db),
):
    try:
        return {"emitted": service.retry_pending_documents(db)}
    except Exception:
        return _internal_error()


@router.get("/service-requests/{request_id}")
def get_request(
    request_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        request = service.open_request(db, request, current_user)
        return _detail(db, request, current_user)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/actions/{action}")
def perform_action(
    request_id: str,
    action: str,
    payload: Optional[ActionPayload] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        request = service.perform_action(
            db,
            request,
            current_user,
            action,
            expected_version=payload.expected_version if payload else None,
        )
        return _detail(db, request, current_user)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/chat", status_code=status.HTTP_201_CREATED)
def post_message(
    request_id: str,
    payload: ChatPayload,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        message = chat_thread.post_message(
            db, request, current_user, payload.text, expected_version=payload.expected_version
        )
        return chat_thread.message_to_dict(message)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/attachments", status_code=status.HTTP_201_CREATED)
def upload_attachment(
    request_id: str,
    file: UploadFile,
    expected_version: Optional[int] = Form(default=None),
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        attachment = attachment_store.upload_attachment(
            db,
            request,
            current_user,
            file.filename or "arquivo",
            file.file.read(),
            content_type=file.content_type,
            expected_version=expected_version,
        )
        return attachment_store.attachment_to_dict(attachment)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests/{request_id}/attachments/{attachment_id}")
def download_attachment(
    request_id: str,
    attachment_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        attachment, content = attachment_store.read_attachment(db, request, attachment_id)
        return Response(
            content=content,
            media_type=attachment.content_type or "application/octet-stream",
            headers={"Content-Disposition": f'attachment; filename="{attachment.file_name}"'},
        )
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except StorageError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except Exception:
        return _internal_error()


@router.delete("/service-requests/{request_id}/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attachment(
    request_id: str,
    attachment_id: str,
    expected_version: Optional[int] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        attachment_store.remove_attachment(
            db, request, current_user, attachment_id, expected_version=expected_version
        )
        return None
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/trash")
def move_to_trash(
    request_id: str,
    payload: Optional[ActionPayload] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        request = service.soft_delete(
            db, request, current_user, expected_version=payload.expected_version if payload else None
        )
        return _detail(db, request, current_user)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.post("/service-requests/{request_id}/restore")
def restore_request(
    request_id: str,
    payload: Optional[ActionPayload] = None,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        request = service.restore(
            db, request, current_user, expected_version=payload.expected_version if payload else None
        )
        return _detail(db, request, current_user)
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests/{request_id}/audit")
def get_audit(
    request_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        return [
            {**entry, "timestamp": entry["timestamp"].isoformat()}
            for entry in (audit.entry_to_dict(item) for item in request.audit_entries)
        ]
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()


@router.get("/service-requests/{request_id}/document")
def get_document(
    request_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        request = _load(db, current_user, request_id)
        return documents.document_to_dict(documents.get_document(db, request))
    except HTTPException:
        raise
    except PortalError as exc:
        raise http_error(exc) from exc
    except Exception:
        return _internal_error()
